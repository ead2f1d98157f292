"""
Parse pipeline.

Runs extraction, merge, classification, duplicate detection and statement
period matching for one upload request, and records the attempt in the
upload log.
"""
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

import structlog
from sqlalchemy.orm import Session, joinedload

from networth.config import PipelineConfig
from networth.exceptions import NetworthError
from networth.middleware.logging import log_performance
from networth.models.snapshot import Asset
from networth.models.upload_log import UploadLog, UploadLogStatus
from networth.services.classifiers import AssetCategorizer, BatchClassifier
from networth.services.classifiers.batch import ClassificationFailure
from networth.services.duplicate_detector import (
    DuplicateDetector,
    DuplicateStats,
    ExistingAsset,
    ReviewableAsset,
)
from networth.services.extraction import Extractor, FileExtractionResult, UploadedDocument, merge_assets
from networth.services.extraction.extractor import ProgressCallback
from networth.services.snapshot_service import SnapshotService
from networth.services.statement_dates import StatementDateMatcher, StatementPeriodGroup
from networth.services.taxonomy_service import load_taxonomy

logger = structlog.get_logger(__name__)


@dataclass
class ParseOutcome:
    """Everything the review step needs from one upload."""

    file_results: List[FileExtractionResult]
    assets: List[ReviewableAsset]
    period_groups: List[StatementPeriodGroup]
    duplicate_stats: DuplicateStats
    classification_failures: List[ClassificationFailure] = field(default_factory=list)
    processing_time_ms: int = 0

    @property
    def file_errors(self) -> List[dict]:
        return [{"file_name": r.file_name, "error": r.error} for r in self.file_results if not r.success]

    @property
    def total_value(self) -> float:
        return sum(a.current_value for a in self.assets)


class ParsePipeline:
    """
    Orchestrates one parse request.

    Stages run in order; only classification fans out. Per-file and per-asset
    failures are collected in the outcome, and a stage raises only when it has
    nothing left to pass on.
    """

    def __init__(
        self,
        db: Session,
        config: PipelineConfig,
        categorizer: AssetCategorizer,
        date_matcher: Optional[StatementDateMatcher] = None,
    ):
        self._db = db
        self._config = config
        self._date_matcher = date_matcher or StatementDateMatcher(config.statement_dates)
        self._extractor = Extractor(
            self._date_matcher,
            max_files=config.max_files_per_upload,
            max_file_size_bytes=config.max_upload_size_bytes,
        )
        self._classifier = BatchClassifier(categorizer, config.classifier)
        self._detector = DuplicateDetector(config.duplicates)
        self._snapshots = SnapshotService(db)

    def _existing_assets(self, user_id: uuid.UUID) -> List[ExistingAsset]:
        rows = (
            self._db.query(Asset)
            .options(joinedload(Asset.snapshot))
            .filter(Asset.user_id == user_id, Asset.is_duplicate.is_(False))
            .order_by(Asset.created_at.desc())
            .limit(self._config.existing_assets_window)
            .all()
        )
        return [ExistingAsset.from_model(row) for row in rows]

    def _log_upload(
        self,
        user_id: uuid.UUID,
        documents: Sequence[UploadedDocument],
        status: UploadLogStatus,
        elapsed_ms: int,
        assets_parsed: int = 0,
        duplicates_found: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        file_types = {d.filename.rsplit(".", 1)[-1].lower() for d in documents if "." in d.filename}
        self._db.add(UploadLog(
            user_id=user_id,
            file_names=[d.filename for d in documents],
            file_type=file_types.pop() if len(file_types) == 1 else "mixed",
            file_size_bytes=sum(d.size for d in documents),
            status=status,
            assets_parsed=assets_parsed,
            duplicates_found=duplicates_found,
            processing_time_ms=elapsed_ms,
            error_message=error_message,
        ))
        self._db.commit()

    @log_performance("parse_pipeline")
    async def run(
        self,
        user_id: uuid.UUID,
        documents: Sequence[UploadedDocument],
        user_statement_date: Optional[date] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ParseOutcome:
        """
        Parse an upload into reviewable assets and statement periods.

        Raises:
            ValidationError: If the batch is empty or too large.
            ExtractionFailedError: If no file could be parsed.
            TaxonomyUnavailableError: If the taxonomy cannot be loaded.
            ClassificationFailedError: If no asset could be classified.
        """
        start_time = time.perf_counter()
        self._extractor.validate_batch(documents)

        try:
            batch = await self._extractor.extract_batch(documents, user_statement_date, on_progress)
            merged = merge_assets(batch.results)

            taxonomy = load_taxonomy(self._db)
            classification = await self._classifier.classify_all(merged, taxonomy)

            existing = self._existing_assets(user_id)
            reviewable = self._detector.detect(classification.classified, existing)

            snapshots = self._snapshots.recent_snapshots(user_id, self._config.snapshot_window)
            groups = self._date_matcher.match_groups(
                [(r.file_name, r.statement_date) for r in batch.successful],
                snapshots,
            )
        except NetworthError as e:
            elapsed_ms = int((time.perf_counter() - start_time) * 1000)
            self._log_upload(user_id, documents, UploadLogStatus.FAILED, elapsed_ms, error_message=e.message)
            raise

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        stats = self._detector.stats(reviewable)
        self._log_upload(
            user_id,
            documents,
            UploadLogStatus.COMPLETED,
            elapsed_ms,
            assets_parsed=len(reviewable),
            duplicates_found=stats.duplicates,
        )

        logger.info(
            "Upload parsed",
            files=len(documents),
            successful_files=len(batch.successful),
            assets=len(reviewable),
            duplicates=stats.duplicates,
            classification_failures=len(classification.failures),
            period_groups=len(groups),
            duration_ms=elapsed_ms,
        )

        return ParseOutcome(
            file_results=batch.results,
            assets=reviewable,
            period_groups=groups,
            duplicate_stats=stats,
            classification_failures=classification.failures,
            processing_time_ms=elapsed_ms,
        )
