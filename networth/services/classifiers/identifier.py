"""
Identifier categorizer.

Classifies securities from their ISIN or exchange ticker before any name
matching runs. Indian ISINs encode the security type in their prefix:

    INE...  equity shares and corporate debt issued by companies
    INF...  mutual fund units
    IN0/IN9 government and other public sector securities

Name hints only refine the subclass inside the family the identifier points
to; an asset without a usable identifier is left to the later stages.
"""
import re
from typing import List, Optional, Tuple

import structlog

from networth.services.classifiers.base import AssetCategorizer, CategorizationResult
from networth.services.extraction.base import RawAsset
from networth.services.taxonomy_service import Taxonomy

logger = structlog.get_logger(__name__)

ISIN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")
TICKER_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9&.\-]{0,19}$")

Rule = Tuple[re.Pattern, Tuple[str, str]]


def _rules(*pairs) -> List[Rule]:
    return [(re.compile(pattern, re.IGNORECASE), target) for pattern, target in pairs]


def isin_is_valid(isin: str) -> bool:
    """Check ISIN shape and its Luhn check digit."""
    if not ISIN_PATTERN.match(isin):
        return False
    digits = "".join(str(int(ch, 36)) for ch in isin[:-1])
    total = 0
    for position, ch in enumerate(reversed(digits)):
        value = int(ch)
        if position % 2 == 0:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return (10 - total % 10) % 10 == int(isin[-1])


class IdentifierCategorizer(AssetCategorizer):
    """Deterministic categorizer keyed on ISIN prefix and exchange ticker."""

    name = "identifier"

    VERIFIED_CONFIDENCE = 0.95
    PREFIX_CONFIDENCE = 0.85
    TICKER_CONFIDENCE = 0.8
    # Plain fund units with no name hint; low enough for later stages to refine.
    UNREFINED_FUND_CONFIDENCE = 0.6

    LISTED_EXCHANGES = frozenset({"NSE", "BSE"})

    COMPANY_RULES = _rules(
        (r"\b(ncd|debentures?|bonds?)\b", ("debt", "bonds")),
        (r"\breits?\b", ("real_estate", "reits")),
    )
    FUND_RULES = _rules(
        (r"\b(elss|tax saver|80c)\b", ("equity", "elss")),
        (r"\bgold\b", ("other", "gold_etf")),
        (r"\b(liquid|overnight|money market)\b", ("cash", "liquid_funds")),
        (r"\b(gilt|debt|income|bond|corporate bond|short duration|dynamic bond)\b", ("debt", "debt_mutual_funds")),
        (r"\b(index|nifty|sensex)\b", ("equity", "index_funds")),
        (r"\b(international|global|us equity|nasdaq)\b", ("equity", "international_equity")),
        (r"\b(pharma|technology|banking|infrastructure|sectoral|thematic)\b", ("equity", "sectoral_funds")),
        (r"\b(small ?cap)\b", ("equity", "small_cap_funds")),
        (r"\b(mid ?cap)\b", ("equity", "mid_cap_funds")),
        (r"\b(large ?cap|bluechip)\b", ("equity", "large_cap_funds")),
    )
    GOVERNMENT_RULES = _rules(
        (r"\b(sgb|sovereign gold|gold bond)\b", ("debt", "sovereign_gold_bonds")),
    )
    TICKER_RULES = _rules(
        (r"GOLD(BEES|ETF|IETF)?$", ("other", "gold_etf")),
        (r"(BEES|ETF|IETF)$", ("equity", "index_funds")),
    )

    @staticmethod
    def _match(rules: List[Rule], text: str) -> Optional[Tuple[str, str]]:
        for pattern, target in rules:
            if pattern.search(text):
                return target
        return None

    def _classify_isin(self, isin: str, name: str) -> Optional[Tuple[Tuple[str, str], float, str]]:
        prefix = isin[:3]
        if prefix == "INE":
            refined = self._match(self.COMPANY_RULES, name)
            if refined:
                return refined, self.VERIFIED_CONFIDENCE, "company security with debt or trust wording"
            return ("equity", "direct_stocks"), self.VERIFIED_CONFIDENCE, "company equity share"
        if prefix == "INF":
            refined = self._match(self.FUND_RULES, name)
            if refined:
                return refined, self.VERIFIED_CONFIDENCE, "mutual fund units"
            return ("equity", "large_cap_funds"), self.UNREFINED_FUND_CONFIDENCE, "mutual fund units"
        if prefix in ("IN0", "IN9"):
            refined = self._match(self.GOVERNMENT_RULES, name)
            if refined:
                return refined, self.VERIFIED_CONFIDENCE, "government gold bond"
            return ("debt", "bonds"), self.PREFIX_CONFIDENCE, "government or public sector security"
        return None

    def _classify_ticker(self, ticker: str, exchange: Optional[str]) -> Optional[Tuple[Tuple[str, str], float, str]]:
        if exchange and exchange.upper() not in self.LISTED_EXCHANGES:
            return None
        refined = self._match(self.TICKER_RULES, ticker)
        if refined:
            return refined, self.TICKER_CONFIDENCE, "exchange traded fund ticker"
        return ("equity", "direct_stocks"), self.TICKER_CONFIDENCE, "listed equity ticker"

    async def categorize(self, asset: RawAsset, taxonomy: Taxonomy) -> Optional[CategorizationResult]:
        return self.categorize_sync(asset, taxonomy)

    def categorize_sync(self, asset: RawAsset, taxonomy: Taxonomy) -> Optional[CategorizationResult]:
        """
        Classify from identifiers, ISIN first, then ticker.

        Returns None when the asset carries no valid identifier or the
        proposed pair is not in the active taxonomy.
        """
        name = " ".join(filter(None, [asset.name, asset.notes]))
        outcome = None
        source = None

        isin = (asset.isin or "").strip().upper()
        if isin:
            if isin_is_valid(isin):
                outcome = self._classify_isin(isin, name)
                source = f"ISIN {isin}"
            else:
                logger.debug("Ignoring malformed ISIN", name=asset.name[:50], isin=isin)

        ticker = (asset.ticker_symbol or "").strip().upper()
        if outcome is None and ticker and TICKER_PATTERN.match(ticker):
            outcome = self._classify_ticker(ticker, asset.exchange)
            source = f"ticker {ticker}"

        if outcome is None:
            return None

        (asset_class, subclass), confidence, kind = outcome
        if taxonomy.lookup(asset_class, subclass) is None:
            logger.debug("Identifier pair not in taxonomy", asset_class=asset_class, subclass=subclass)
            return None

        return CategorizationResult(
            asset_class=asset_class,
            asset_subclass=subclass,
            confidence=confidence,
            reasoning=f"Verified via {source}: {kind}",
            method=self.name,
        )
