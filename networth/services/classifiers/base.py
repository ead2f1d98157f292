"""
Classification types shared by all categorizers.
"""
from dataclasses import dataclass
from typing import Optional

from networth.models.snapshot import AssetClass, RiskLevel
from networth.services.extraction.base import RawAsset
from networth.services.taxonomy_service import Taxonomy


@dataclass(frozen=True)
class CategorizationResult:
    """What a categorizer proposes for one asset."""

    asset_class: str
    asset_subclass: str
    confidence: float
    reasoning: Optional[str] = None
    method: str = "unknown"


@dataclass(frozen=True)
class ClassifiedAsset:
    """A RawAsset with a validated class, subclass and taxonomy profile."""

    asset: RawAsset
    asset_class: AssetClass
    asset_subclass: str
    classification_confidence: float
    risk_level: RiskLevel
    expected_return_percentage: float
    reasoning: Optional[str] = None
    verified_via: Optional[str] = None

    @property
    def name(self) -> str:
        return self.asset.name

    @property
    def current_value(self) -> float:
        return self.asset.current_value

    @property
    def source_file(self) -> str:
        return self.asset.source_file


class AssetCategorizer:
    """
    Categorization collaborator.

    Implementations return None when they cannot place an asset and may raise
    on collaborator failure; the batch classifier treats both as a dropped asset.
    """

    name = "base"

    async def categorize(self, asset: RawAsset, taxonomy: Taxonomy) -> Optional[CategorizationResult]:
        raise NotImplementedError
