"""
Duplicate detector service.

Scores each newly classified asset against the user's stored holdings, and
against earlier assets of the same upload, with a weighted blend of name and
value similarity.
"""
import re
import uuid
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import structlog
from rapidfuzz import fuzz

from networth.config import DuplicateDetectionConfig
from networth.models.snapshot import Asset
from networth.services.classifiers.base import ClassifiedAsset

logger = structlog.get_logger(__name__)

CURRENT_UPLOAD_SOURCE = "Current upload"


class DuplicateMatchType(str, Enum):
    """Which signals agreed on a match."""

    EXACT = "exact"
    NAME_AND_VALUE = "name_and_value"
    NAME = "name"


@dataclass(frozen=True)
class ExistingAsset:
    """A stored holding used as a comparison target."""

    id: Optional[uuid.UUID]
    name: str
    current_value: float
    source: str
    snapshot_id: Optional[uuid.UUID] = None

    @classmethod
    def from_model(cls, asset: Asset) -> "ExistingAsset":
        snapshot = asset.snapshot
        source = asset.source_file or (snapshot.snapshot_name if snapshot is not None else "Existing holdings")
        return cls(
            id=asset.id,
            name=asset.name,
            current_value=float(asset.current_value),
            source=source,
            snapshot_id=asset.snapshot_id,
        )


@dataclass(frozen=True)
class DuplicateMatch:
    """One likely duplicate of a new asset."""

    existing_asset_id: Optional[str]
    existing_asset_name: str
    existing_value: float
    existing_source: str
    similarity_score: float
    match_type: DuplicateMatchType
    is_conflict: bool = False

    def to_dict(self) -> dict:
        return {
            "existing_asset_id": self.existing_asset_id,
            "existing_asset_name": self.existing_asset_name,
            "existing_value": self.existing_value,
            "existing_source": self.existing_source,
            "similarity_score": self.similarity_score,
            "match_type": self.match_type.value,
            "is_conflict": self.is_conflict,
        }


@dataclass
class ReviewableAsset:
    """A classified asset with duplicate flags, ready for user review."""

    classified: ClassifiedAsset
    is_duplicate: bool = False
    duplicate_matches: List[DuplicateMatch] = field(default_factory=list)
    is_selected: bool = True
    is_edited: bool = False

    @property
    def name(self) -> str:
        return self.classified.name

    @property
    def current_value(self) -> float:
        return self.classified.current_value


@dataclass
class DuplicateStats:
    """Summary of duplicate detection for one upload."""

    total: int = 0
    duplicates: int = 0
    conflicts: int = 0
    by_match_type: Dict[str, int] = field(default_factory=dict)

    @property
    def unique(self) -> int:
        return self.total - self.duplicates


class DuplicateDetector:
    """
    Service for flagging likely duplicate holdings.

    Score = name_weight * name_similarity + value_weight * value_similarity,
    both on a 0-100 scale. A pair whose values are outside tolerance scores 0
    on value and is never a match.
    """

    _NON_ALNUM = re.compile(r"[^a-z0-9]+")

    def __init__(self, config: DuplicateDetectionConfig):
        self._config = config

    @property
    def config(self) -> DuplicateDetectionConfig:
        return self._config

    @classmethod
    def normalize_name(cls, name: str) -> str:
        """Lowercase and reduce to alphanumeric tokens."""
        return " ".join(cls._NON_ALNUM.sub(" ", (name or "").lower()).split())

    def name_similarity(self, first: str, second: str) -> float:
        """Token-order-insensitive similarity of two names, 0-100."""
        a, b = self.normalize_name(first), self.normalize_name(second)
        if not a or not b:
            return 0.0
        if a == b:
            return 100.0
        return float(fuzz.token_sort_ratio(a, b))

    def value_similarity(self, first: float, second: float) -> float:
        """
        Closeness of two values within the tolerance, 0-100.

        The difference is taken relative to the larger magnitude; anything
        beyond the tolerance scores 0.
        """
        if first == second:
            return 100.0
        largest = max(abs(first), abs(second))
        if largest == 0:
            return 100.0
        diff_pct = abs(first - second) / largest * 100
        tolerance = self._config.value_tolerance_pct
        if diff_pct > tolerance:
            return 0.0
        return 100.0 * (1 - diff_pct / tolerance)

    def score(self, name_a: str, value_a: float, name_b: str, value_b: float) -> Tuple[float, float, float]:
        """
        Score a pair.

        Returns:
            (composite, name_similarity, value_similarity)
        """
        name_sim = self.name_similarity(name_a, name_b)
        value_sim = self.value_similarity(value_a, value_b)
        composite = self._config.name_weight * name_sim + self._config.value_weight * value_sim
        return composite, name_sim, value_sim

    @staticmethod
    def _match_type(name_sim: float, value_sim: float) -> DuplicateMatchType:
        if name_sim == 100 and value_sim == 100:
            return DuplicateMatchType.EXACT
        if name_sim >= 90 and value_sim >= 90:
            return DuplicateMatchType.NAME_AND_VALUE
        return DuplicateMatchType.NAME

    def _compare(
        self,
        asset: ClassifiedAsset,
        target_name: str,
        target_value: float,
    ) -> Optional[Tuple[float, float, float]]:
        composite, name_sim, value_sim = self.score(asset.name, asset.current_value, target_name, target_value)
        if value_sim == 0 or composite < self._config.similarity_threshold:
            return None
        return composite, name_sim, value_sim

    def find_matches(
        self,
        asset: ClassifiedAsset,
        existing: Sequence[ExistingAsset],
        earlier_in_batch: Sequence[ClassifiedAsset] = (),
    ) -> List[DuplicateMatch]:
        """
        Find ranked matches for one asset.

        Args:
            asset: Newly classified asset.
            existing: Stored holdings of the user.
            earlier_in_batch: Assets before this one in the same upload.

        Returns:
            Matches at or above the threshold, best first, capped.
        """
        scored: List[Tuple[float, DuplicateMatch]] = []

        for target in existing:
            hit = self._compare(asset, target.name, target.current_value)
            if hit is None:
                continue
            composite, name_sim, value_sim = hit
            scored.append((composite, DuplicateMatch(
                existing_asset_id=str(target.id) if target.id else None,
                existing_asset_name=target.name,
                existing_value=target.current_value,
                existing_source=target.source,
                similarity_score=round(composite / 100, 4),
                match_type=self._match_type(name_sim, value_sim),
                is_conflict=True,
            )))

        for sibling in earlier_in_batch:
            hit = self._compare(asset, sibling.name, sibling.current_value)
            if hit is None:
                continue
            composite, name_sim, value_sim = hit
            scored.append((composite, DuplicateMatch(
                existing_asset_id=None,
                existing_asset_name=sibling.name,
                existing_value=sibling.current_value,
                existing_source=f"{CURRENT_UPLOAD_SOURCE}: {sibling.source_file}" if sibling.source_file else CURRENT_UPLOAD_SOURCE,
                similarity_score=round(composite / 100, 4),
                match_type=self._match_type(name_sim, value_sim),
                is_conflict=False,
            )))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [match for _, match in scored[: self._config.max_matches]]

    def detect(
        self,
        assets: Sequence[ClassifiedAsset],
        existing: Sequence[ExistingAsset],
    ) -> List[ReviewableAsset]:
        """
        Flag duplicates across an upload.

        An asset is a duplicate when its best match reaches the threshold.
        Duplicates start deselected so they are not committed by default.
        """
        reviewable: List[ReviewableAsset] = []
        for index, asset in enumerate(assets):
            matches = self.find_matches(asset, existing, assets[:index])
            is_duplicate = bool(matches)
            reviewable.append(ReviewableAsset(
                classified=asset,
                is_duplicate=is_duplicate,
                duplicate_matches=matches,
                is_selected=not is_duplicate,
            ))

        stats = self.stats(reviewable)
        logger.info(
            "Duplicate detection complete",
            total=stats.total,
            duplicates=stats.duplicates,
            conflicts=stats.conflicts,
            compared_against=len(existing),
        )
        return reviewable

    @staticmethod
    def stats(reviewable: Sequence[ReviewableAsset]) -> DuplicateStats:
        """Summarize duplicates by best-match type."""
        counter: Counter = Counter()
        conflicts = 0
        for item in reviewable:
            if item.is_duplicate and item.duplicate_matches:
                best = item.duplicate_matches[0]
                counter[best.match_type.value] += 1
                if any(m.is_conflict for m in item.duplicate_matches):
                    conflicts += 1
        return DuplicateStats(
            total=len(reviewable),
            duplicates=sum(1 for item in reviewable if item.is_duplicate),
            conflicts=conflicts,
            by_match_type=dict(counter),
        )
