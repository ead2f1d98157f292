"""
Batch classifier.

Fans categorization out over all merged assets with a semaphore so at most
N calls are in flight. Results are keyed by input index, so association with
the originating asset survives any completion order.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from networth.config import ClassifierConfig
from networth.exceptions import ClassificationFailedError
from networth.models.snapshot import AssetClass
from networth.services.classifiers.base import (
    AssetCategorizer,
    CategorizationResult,
    ClassifiedAsset,
)
from networth.services.extraction.base import RawAsset
from networth.services.taxonomy_service import Taxonomy

logger = structlog.get_logger(__name__)


@dataclass
class ClassificationFailure:
    """An asset dropped from classification."""

    index: int
    name: str
    source_file: str
    reason: str

    def to_dict(self) -> dict:
        return {"name": self.name, "source_file": self.source_file, "reason": self.reason}


@dataclass
class ClassificationBatchResult:
    """Classified assets in merged order, plus the ones that were dropped."""

    classified: List[ClassifiedAsset] = field(default_factory=list)
    failures: List[ClassificationFailure] = field(default_factory=list)
    processing_time_ms: float = 0.0


class BatchClassifier:
    """
    Service for classifying a batch of assets.

    Features:
    - Bounded concurrency against the categorization collaborator
    - Index-keyed result collection
    - Taxonomy validation of every proposed pair
    - Per-asset failure isolation
    """

    def __init__(self, categorizer: AssetCategorizer, config: Optional[ClassifierConfig] = None):
        self._categorizer = categorizer
        self._config = config or ClassifierConfig()

    def _to_classified(
        self,
        asset: RawAsset,
        result: Optional[CategorizationResult],
        taxonomy: Taxonomy,
    ) -> Tuple[Optional[ClassifiedAsset], Optional[str]]:
        if result is None:
            return None, "No classification returned"

        entry = taxonomy.lookup(result.asset_class, result.asset_subclass)
        if entry is None:
            return None, f"Invalid classification {result.asset_class}/{result.asset_subclass}"

        return ClassifiedAsset(
            asset=asset,
            asset_class=AssetClass(entry.asset_class),
            asset_subclass=entry.subclass_code,
            classification_confidence=result.confidence,
            risk_level=entry.risk_level,
            expected_return_percentage=entry.expected_return,
            reasoning=result.reasoning,
            verified_via=result.method,
        ), None

    async def classify_all(self, assets: Sequence[RawAsset], taxonomy: Taxonomy) -> ClassificationBatchResult:
        """
        Classify every asset.

        Args:
            assets: Merged raw assets.
            taxonomy: Active taxonomy; proposed pairs outside it are rejected.

        Returns:
            ClassificationBatchResult with at least one classified asset.

        Raises:
            ClassificationFailedError: If no asset could be classified.
        """
        start_time = time.perf_counter()
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def classify_one(index: int, asset: RawAsset):
            async with semaphore:
                try:
                    result = await self._categorizer.categorize(asset, taxonomy)
                    return index, result, None
                except Exception as e:
                    logger.warning(
                        "Asset classification failed",
                        name=asset.name[:50],
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return index, None, str(e) or type(e).__name__

        tasks = [asyncio.ensure_future(classify_one(i, a)) for i, a in enumerate(assets)]

        outcomes: Dict[int, Tuple[Optional[CategorizationResult], Optional[str]]] = {}
        for next_done in asyncio.as_completed(tasks):
            index, result, error = await next_done
            outcomes[index] = (result, error)

        batch = ClassificationBatchResult()
        for index, asset in enumerate(assets):
            result, error = outcomes.get(index, (None, "Classification did not complete"))
            classified, reason = (None, error) if error else self._to_classified(asset, result, taxonomy)
            if classified is not None:
                batch.classified.append(classified)
            else:
                batch.failures.append(ClassificationFailure(index, asset.name, asset.source_file, reason))

        batch.processing_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            "Classification complete",
            categorizer=self._categorizer.name,
            total=len(assets),
            classified=len(batch.classified),
            failed=len(batch.failures),
            max_concurrency=self._config.max_concurrency,
            duration_ms=batch.processing_time_ms,
        )

        if not batch.classified:
            raise ClassificationFailedError(len(batch.failures))
        return batch
