"""
Hybrid categorizer combining identifier rules, keyword rules and the LLM.

Implements a cascade approach:
1. ISIN/ticker rules -> if confidence >= threshold, return
2. Keyword rules -> if confidence >= threshold, return
3. LLM -> for everything else, when one is configured
4. Best rule result if the LLM fails or returns nothing
"""
from dataclasses import dataclass
from typing import Optional

import structlog

from networth.exceptions import ExternalServiceError
from networth.services.classifiers.base import AssetCategorizer, CategorizationResult
from networth.services.classifiers.identifier import IdentifierCategorizer
from networth.services.classifiers.keyword import KeywordCategorizer
from networth.services.extraction.base import RawAsset
from networth.services.taxonomy_service import Taxonomy

logger = structlog.get_logger(__name__)


@dataclass
class CategorizationStats:
    """Which stage settled each asset."""

    total: int = 0
    identifier: int = 0
    keyword: int = 0
    llm: int = 0
    fallback: int = 0
    unclassified: int = 0

    @property
    def llm_pct(self) -> float:
        return (self.llm / self.total * 100) if self.total else 0


class HybridCategorizer(AssetCategorizer):
    """
    Cascade categorizer that keeps LLM calls to the assets rules can't settle.
    """

    name = "hybrid"

    def __init__(
        self,
        llm: Optional[AssetCategorizer] = None,
        keyword: Optional[KeywordCategorizer] = None,
        confidence_threshold: float = 0.7,
        identifier: Optional[IdentifierCategorizer] = None,
    ):
        self._identifier = identifier or IdentifierCategorizer()
        self._keyword = keyword or KeywordCategorizer()
        self._llm = llm
        self._threshold = confidence_threshold
        self.stats = CategorizationStats()

    async def categorize(self, asset: RawAsset, taxonomy: Taxonomy) -> Optional[CategorizationResult]:
        self.stats.total += 1

        id_result = self._identifier.categorize_sync(asset, taxonomy)
        if id_result is not None and id_result.confidence >= self._threshold:
            self.stats.identifier += 1
            return id_result

        rule_result = self._keyword.categorize_sync(asset, taxonomy)
        if rule_result is not None and rule_result.confidence >= self._threshold:
            self.stats.keyword += 1
            return rule_result

        if id_result is not None and (rule_result is None or id_result.confidence >= rule_result.confidence):
            rule_result = id_result

        llm_result = None
        if self._llm is not None:
            try:
                llm_result = await self._llm.categorize(asset, taxonomy)
            except ExternalServiceError as e:
                logger.warning("LLM unavailable, using rule result", name=asset.name[:50], error=e.message)

        if llm_result is not None and taxonomy.lookup(llm_result.asset_class, llm_result.asset_subclass):
            self.stats.llm += 1
            return llm_result

        if rule_result is not None:
            self.stats.fallback += 1
            return rule_result

        self.stats.unclassified += 1
        return llm_result
