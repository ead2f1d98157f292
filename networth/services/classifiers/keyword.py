"""
Keyword categorizer.

Scores each taxonomy subclass by how many of its keyword patterns appear in
the asset name. Used on its own when no LLM is configured, and as the first
stage of the hybrid categorizer.
"""
import re
from typing import Optional

import structlog

from networth.services.classifiers.base import AssetCategorizer, CategorizationResult
from networth.services.extraction.base import RawAsset
from networth.services.taxonomy_service import Taxonomy

logger = structlog.get_logger(__name__)


class KeywordCategorizer(AssetCategorizer):
    """Rule-based categorizer driven by taxonomy keyword patterns."""

    name = "keyword"

    BASE_CONFIDENCE = 0.6
    CONFIDENCE_PER_HIT = 0.1
    MAX_CONFIDENCE = 0.95
    FALLBACK_CONFIDENCE = 0.3
    FALLBACK_PAIR = ("other", "other_assets")

    @staticmethod
    def _hits(text: str, keywords) -> int:
        count = 0
        for keyword in keywords:
            if re.search(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])", text):
                count += 1
        return count

    async def categorize(self, asset: RawAsset, taxonomy: Taxonomy) -> Optional[CategorizationResult]:
        return self.categorize_sync(asset, taxonomy)

    def categorize_sync(self, asset: RawAsset, taxonomy: Taxonomy) -> Optional[CategorizationResult]:
        """
        Pick the subclass with the most keyword hits.

        Ties go to the entry listed first in the taxonomy. With no hits the
        asset falls back to other/other_assets at low confidence, or None if
        the taxonomy has no such pair.
        """
        text = " ".join(filter(None, [asset.name, asset.notes])).lower()

        best = None
        best_hits = 0
        for entry in taxonomy:
            hits = self._hits(text, entry.keywords)
            if hits > best_hits:
                best, best_hits = entry, hits

        if best is not None:
            confidence = min(self.BASE_CONFIDENCE + self.CONFIDENCE_PER_HIT * best_hits, self.MAX_CONFIDENCE)
            return CategorizationResult(
                asset_class=best.asset_class.value,
                asset_subclass=best.subclass_code,
                confidence=round(confidence, 2),
                reasoning=f"Matched {best_hits} keyword(s) for {best.display_name}",
                method=self.name,
            )

        if taxonomy.lookup(*self.FALLBACK_PAIR) is not None:
            return CategorizationResult(
                asset_class=self.FALLBACK_PAIR[0],
                asset_subclass=self.FALLBACK_PAIR[1],
                confidence=self.FALLBACK_CONFIDENCE,
                reasoning="No keyword match",
                method=self.name,
            )

        logger.debug("Keyword categorizer found no match", name=asset.name[:50])
        return None
