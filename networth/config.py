"""
Application configuration using pydantic-settings.

Loads configuration from environment variables with sensible defaults and
builds the immutable pipeline configuration threaded through the parse stages.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ClassifierConfig:
    """Classification fan-out and categorizer settings."""

    max_concurrency: int = 5
    llm_model: str = "gpt-4o-mini"
    llm_confidence_threshold: float = 0.7


@dataclass(frozen=True)
class DuplicateDetectionConfig:
    """Duplicate scoring parameters. name_weight and value_weight must sum to 1."""

    name_weight: float
    value_weight: float
    similarity_threshold: float = 85.0
    value_tolerance_pct: float = 5.0
    max_matches: int = 3

    def __post_init__(self) -> None:
        if abs(self.name_weight + self.value_weight - 1.0) > 1e-6:
            raise ValueError(
                f"Duplicate weights must sum to 1 (got {self.name_weight} + {self.value_weight})"
            )
        if self.value_tolerance_pct <= 0:
            raise ValueError("Value tolerance must be positive")


@dataclass(frozen=True)
class StatementDateConfig:
    """Statement period grouping and snapshot matching windows."""

    same_period_tolerance_days: int = 0
    near_match_window_days: int = 15


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for one parse run."""

    duplicates: DuplicateDetectionConfig
    classifier: ClassifierConfig = ClassifierConfig()
    statement_dates: StatementDateConfig = StatementDateConfig()
    max_files_per_upload: int = 10
    max_upload_size_bytes: int = 50 * 1024 * 1024
    existing_assets_window: int = 1000
    snapshot_window: int = 50


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite:///./networth.db"

    # Uploads
    max_upload_size_mb: int = 50
    max_files_per_upload: int = 10

    # Application
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Classification
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    classification_concurrency: int = 5
    llm_confidence_threshold: float = 0.7

    # Duplicate detection
    duplicate_similarity_threshold: float = 85.0
    duplicate_value_tolerance_pct: float = 5.0
    duplicate_name_weight: float = 0.7
    duplicate_value_weight: float = 0.3
    max_duplicate_matches: int = 3
    existing_assets_window: int = 1000

    # Statement periods
    snapshot_window: int = 50
    same_period_tolerance_days: int = 0
    near_match_window_days: int = 15

    # Review sessions
    review_session_ttl_hours: int = 24

    @property
    def max_upload_size_bytes(self) -> int:
        """Get maximum upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def pipeline_config(self) -> PipelineConfig:
        """Build the immutable pipeline configuration from these settings."""
        return PipelineConfig(
            duplicates=DuplicateDetectionConfig(
                name_weight=self.duplicate_name_weight,
                value_weight=self.duplicate_value_weight,
                similarity_threshold=self.duplicate_similarity_threshold,
                value_tolerance_pct=self.duplicate_value_tolerance_pct,
                max_matches=self.max_duplicate_matches,
            ),
            classifier=ClassifierConfig(
                max_concurrency=self.classification_concurrency,
                llm_model=self.openai_model,
                llm_confidence_threshold=self.llm_confidence_threshold,
            ),
            statement_dates=StatementDateConfig(
                same_period_tolerance_days=self.same_period_tolerance_days,
                near_match_window_days=self.near_match_window_days,
            ),
            max_files_per_upload=self.max_files_per_upload,
            max_upload_size_bytes=self.max_upload_size_bytes,
            existing_assets_window=self.existing_assets_window,
            snapshot_window=self.snapshot_window,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
