"""
Unit tests for asset classification.
"""
import asyncio
import json
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from networth.config import ClassifierConfig, Settings
from networth.exceptions import ClassificationFailedError, ExternalServiceError
from networth.models.snapshot import AssetClass, RiskLevel
from networth.services.classifiers import (
    AssetCategorizer,
    BatchClassifier,
    CategorizationResult,
    HybridCategorizer,
    IdentifierCategorizer,
    KeywordCategorizer,
    LLMCategorizer,
    get_categorizer,
)
from networth.services.classifiers.identifier import isin_is_valid
from networth.services.extraction import RawAsset
from networth.services.taxonomy_service import Taxonomy


class FixedCategorizer(AssetCategorizer):
    """Returns a preset result and records how many calls overlap."""

    name = "fixed"

    def __init__(self, results=None, default=None, delay: float = 0.0, error: Optional[Exception] = None):
        self.results = results or {}
        self.default = default
        self.delay = delay
        self.error = error
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def categorize(self, asset, taxonomy):
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.results.get(asset.name, self.default)
        finally:
            self.in_flight -= 1


def result(asset_class: str, subclass: str, confidence: float = 0.85) -> CategorizationResult:
    return CategorizationResult(asset_class=asset_class, asset_subclass=subclass, confidence=confidence, method="fixed")


def fake_openai_client(content: str = "", error: Optional[Exception] = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.chat.completions.create = AsyncMock(side_effect=error)
    else:
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content=content))]
        response.usage.total_tokens = 42
        client.chat.completions.create = AsyncMock(return_value=response)
    return client


class TestKeywordCategorizer:
    """Tests for keyword rules."""

    @pytest.mark.parametrize(
        "name, expected_class, expected_subclass, confidence",
        [
            ("HDFC Bank Fixed Deposit", "debt", "fd_bank", 0.7),
            ("Nifty 50 Index Fund", "equity", "index_funds", 0.9),
            ("Reliance Industries equity share NSE", "equity", "direct_stocks", 0.9),
            ("Mystery Holding", "other", "other_assets", 0.3),
        ],
    )
    def test_categorize(self, taxonomy, name, expected_class, expected_subclass, confidence):
        outcome = KeywordCategorizer().categorize_sync(RawAsset(name, 1000.0), taxonomy)

        assert outcome.asset_class == expected_class
        assert outcome.asset_subclass == expected_subclass
        assert outcome.confidence == pytest.approx(confidence)
        assert outcome.method == "keyword"

    def test_keyword_needs_word_boundary(self, taxonomy):
        # "it" must not match inside "Infosys Limited"
        outcome = KeywordCategorizer().categorize_sync(RawAsset("Infosys Limited", 1000.0), taxonomy)

        assert outcome.asset_subclass == "other_assets"


class TestIdentifierCategorizer:
    """Tests for ISIN and ticker rules."""

    @pytest.mark.parametrize(
        "isin, expected",
        [
            ("INE002A01018", True),
            ("INF109K01Z48", True),
            ("IN0020160050", True),
            ("INE002A01019", False),
            ("INE002A0101", False),
            ("1NE002A01018", False),
        ],
    )
    def test_isin_is_valid(self, isin, expected):
        assert isin_is_valid(isin) is expected

    @pytest.mark.parametrize(
        "isin, name, expected_class, expected_subclass, confidence",
        [
            ("INE002A01018", "Reliance Industries Ltd", "equity", "direct_stocks", 0.95),
            ("INE009A01021", "Infosys NCD 2030", "debt", "bonds", 0.95),
            ("INF109K01Z48", "ICICI Prudential Nifty 50 Index Fund", "equity", "index_funds", 0.95),
            ("INF109K01Z48", "ICICI Prudential Liquid Fund", "cash", "liquid_funds", 0.95),
            ("INF109K01Z48", "ICICI Prudential Long Term Equity Fund (Tax Saver)", "equity", "elss", 0.95),
            ("INF109K01Z48", "ICICI Prudential Scheme", "equity", "large_cap_funds", 0.6),
            ("IN0020160050", "SGB 2016 Series I", "debt", "sovereign_gold_bonds", 0.95),
            ("IN0020160050", "7.26% GS 2033", "debt", "bonds", 0.85),
        ],
    )
    def test_isin_prefix(self, taxonomy, isin, name, expected_class, expected_subclass, confidence):
        outcome = IdentifierCategorizer().categorize_sync(RawAsset(name, 1000.0, isin=isin), taxonomy)

        assert (outcome.asset_class, outcome.asset_subclass) == (expected_class, expected_subclass)
        assert outcome.confidence == pytest.approx(confidence)
        assert outcome.method == "identifier"
        assert isin in outcome.reasoning

    def test_isin_is_normalized(self, taxonomy):
        outcome = IdentifierCategorizer().categorize_sync(
            RawAsset("Reliance", 1000.0, isin=" ine002a01018 "), taxonomy
        )

        assert outcome.asset_subclass == "direct_stocks"

    @pytest.mark.parametrize(
        "ticker, exchange, expected",
        [
            ("RELIANCE", "NSE", ("equity", "direct_stocks")),
            ("RELIANCE", None, ("equity", "direct_stocks")),
            ("GOLDBEES", "NSE", ("other", "gold_etf")),
            ("NIFTYBEES", "bse", ("equity", "index_funds")),
        ],
    )
    def test_ticker(self, taxonomy, ticker, exchange, expected):
        asset = RawAsset("Holding", 1000.0, ticker_symbol=ticker, exchange=exchange)

        outcome = IdentifierCategorizer().categorize_sync(asset, taxonomy)

        assert (outcome.asset_class, outcome.asset_subclass) == expected
        assert outcome.confidence == pytest.approx(0.8)

    def test_bad_check_digit_falls_through_to_ticker(self, taxonomy):
        asset = RawAsset("Reliance", 1000.0, isin="INE002A01019", ticker_symbol="RELIANCE", exchange="NSE")

        outcome = IdentifierCategorizer().categorize_sync(asset, taxonomy)

        assert outcome.reasoning.startswith("Verified via ticker RELIANCE")

    @pytest.mark.parametrize(
        "asset",
        [
            RawAsset("HDFC Bank FD", 1000.0),
            RawAsset("Apple Inc", 1000.0, ticker_symbol="AAPL", exchange="NASDAQ"),
            RawAsset("Foreign Bond", 1000.0, isin="US0378331005"),
        ],
    )
    def test_no_usable_identifier(self, taxonomy, asset):
        assert IdentifierCategorizer().categorize_sync(asset, taxonomy) is None

    def test_pair_outside_taxonomy_is_not_proposed(self, taxonomy):
        trimmed = Taxonomy([e for e in taxonomy if e.subclass_code != "direct_stocks"])

        outcome = IdentifierCategorizer().categorize_sync(RawAsset("Reliance", 1.0, isin="INE002A01018"), trimmed)

        assert outcome is None


class TestHybridCategorizer:
    """Tests for the keyword/LLM cascade."""

    @pytest.mark.asyncio
    async def test_confident_keyword_skips_llm(self, taxonomy):
        llm = FixedCategorizer(default=result("equity", "direct_stocks"))
        hybrid = HybridCategorizer(llm=llm)

        outcome = await hybrid.categorize(RawAsset("Nifty 50 Index Fund", 1000.0), taxonomy)

        assert outcome.asset_subclass == "index_funds"
        assert llm.calls == 0
        assert hybrid.stats.keyword == 1

    @pytest.mark.asyncio
    async def test_low_confidence_uses_llm(self, taxonomy):
        llm = FixedCategorizer(default=result("equity", "large_cap_funds", 0.8))
        hybrid = HybridCategorizer(llm=llm)

        outcome = await hybrid.categorize(RawAsset("Mirae Asset Emerging Opportunities", 1000.0), taxonomy)

        assert outcome.asset_subclass == "large_cap_funds"
        assert llm.calls == 1
        assert hybrid.stats.llm == 1

    @pytest.mark.asyncio
    async def test_invalid_llm_pair_falls_back(self, taxonomy):
        hybrid = HybridCategorizer(llm=FixedCategorizer(default=result("equity", "meme_stocks")))

        outcome = await hybrid.categorize(RawAsset("Mystery Holding", 1000.0), taxonomy)

        assert (outcome.asset_class, outcome.asset_subclass) == ("other", "other_assets")
        assert hybrid.stats.fallback == 1

    @pytest.mark.asyncio
    async def test_llm_outage_falls_back(self, taxonomy):
        llm = FixedCategorizer(error=ExternalServiceError("openai"))
        hybrid = HybridCategorizer(llm=llm)

        outcome = await hybrid.categorize(RawAsset("HDFC Bank FD", 1000.0), taxonomy)

        assert outcome.asset_subclass == "fd_bank"

        outcome = await hybrid.categorize(RawAsset("Mystery Holding", 1000.0), taxonomy)
        assert outcome.asset_subclass == "other_assets"
        assert hybrid.stats.fallback == 1

    @pytest.mark.asyncio
    async def test_isin_settles_before_keywords_and_llm(self, taxonomy):
        llm = FixedCategorizer(default=result("other", "other_assets"))
        hybrid = HybridCategorizer(llm=llm)

        outcome = await hybrid.categorize(RawAsset("Mystery Holding", 1000.0, isin="INE002A01018"), taxonomy)

        assert (outcome.asset_subclass, outcome.method) == ("direct_stocks", "identifier")
        assert llm.calls == 0
        assert hybrid.stats.identifier == 1
        assert hybrid.stats.keyword == 0

    @pytest.mark.asyncio
    async def test_unrefined_fund_still_asks_llm(self, taxonomy):
        llm = FixedCategorizer(default=result("equity", "mid_cap_funds", 0.8))
        hybrid = HybridCategorizer(llm=llm)

        outcome = await hybrid.categorize(RawAsset("ICICI Prudential Scheme", 1000.0, isin="INF109K01Z48"), taxonomy)

        assert outcome.asset_subclass == "mid_cap_funds"
        assert llm.calls == 1

    @pytest.mark.asyncio
    async def test_without_llm_prefers_stronger_rule_result(self, taxonomy):
        hybrid = HybridCategorizer()

        outcome = await hybrid.categorize(RawAsset("ICICI Prudential Scheme", 1000.0, isin="INF109K01Z48"), taxonomy)

        assert (outcome.asset_subclass, outcome.method) == ("large_cap_funds", "identifier")
        assert hybrid.stats.fallback == 1

        outcome = await hybrid.categorize(RawAsset("Mystery Holding", 1000.0), taxonomy)
        assert (outcome.asset_subclass, outcome.method) == ("other_assets", "keyword")

    def test_get_categorizer_without_key_skips_llm(self):
        categorizer = get_categorizer(Settings(openai_api_key=None))

        assert isinstance(categorizer, HybridCategorizer)
        assert categorizer._llm is None


class TestLLMCategorizer:
    """Tests for the OpenAI-backed categorizer."""

    def test_parse_response(self):
        categorizer = LLMCategorizer(api_key="test", client=fake_openai_client())

        parsed = categorizer._parse_response(json.dumps({
            "asset_class": "EQUITY",
            "asset_subclass": "Mid_Cap_Funds",
            "confidence": 1.7,
            "reasoning": "Mid cap fund",
        }))

        assert parsed.asset_class == "equity"
        assert parsed.asset_subclass == "mid_cap_funds"
        assert parsed.confidence == 1.0
        assert parsed.method == "llm"

    @pytest.mark.parametrize("content", ["not json", "{}", '{"asset_class": "equity"}'])
    def test_parse_unusable_response(self, content):
        categorizer = LLMCategorizer(api_key="test", client=fake_openai_client())

        assert categorizer._parse_response(content) is None

    @pytest.mark.asyncio
    async def test_categorize(self, taxonomy):
        content = json.dumps({"asset_class": "debt", "asset_subclass": "ppf", "confidence": 0.9})
        client = fake_openai_client(content)
        categorizer = LLMCategorizer(api_key="test", client=client)

        outcome = await categorizer.categorize(RawAsset("Public Provident Fund A/c", 150000.0), taxonomy)

        assert (outcome.asset_class, outcome.asset_subclass) == ("debt", "ppf")
        assert categorizer.call_count == 1
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "debt/ppf" in kwargs["messages"][1]["content"]

    def test_prompt_carries_isin_hint(self, taxonomy):
        categorizer = LLMCategorizer(api_key="test", client=fake_openai_client())
        asset = RawAsset("Axis Bluechip", 1000.0, isin="INF109K01Z48", exchange="NSE")

        prompt = categorizer._build_prompt(asset, taxonomy)

        assert "ISIN: INF109K01Z48 (INF prefix indicates mutual fund units)" in prompt
        assert "Exchange: NSE" in prompt

    @pytest.mark.asyncio
    async def test_api_error_raises_external_service_error(self, taxonomy):
        categorizer = LLMCategorizer(api_key="test", client=fake_openai_client(error=OpenAIError("down")))

        with pytest.raises(ExternalServiceError) as exc_info:
            await categorizer.categorize(RawAsset("Anything", 1.0), taxonomy)

        assert exc_info.value.details["service"] == "openai"


class TestBatchClassifier:
    """Tests for bounded-concurrency batch classification."""

    @pytest.mark.asyncio
    async def test_concurrency_is_capped(self, taxonomy):
        categorizer = FixedCategorizer(default=result("equity", "direct_stocks"), delay=0.01)
        classifier = BatchClassifier(categorizer, ClassifierConfig(max_concurrency=3))
        assets = [RawAsset(f"Stock {i}", 100.0 + i) for i in range(10)]

        batch = await classifier.classify_all(assets, taxonomy)

        assert categorizer.calls == 10
        assert categorizer.max_in_flight <= 3
        assert len(batch.classified) == 10

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self, taxonomy):
        class SlowFirst(FixedCategorizer):
            async def categorize(self, asset, taxonomy):
                await asyncio.sleep(0.05 if asset.name == "First" else 0)
                return result("equity", "direct_stocks")

        assets = [RawAsset("First", 1.0), RawAsset("Second", 2.0), RawAsset("Third", 3.0)]

        batch = await BatchClassifier(SlowFirst()).classify_all(assets, taxonomy)

        assert [c.name for c in batch.classified] == ["First", "Second", "Third"]

    @pytest.mark.asyncio
    async def test_taxonomy_profile_is_applied(self, taxonomy):
        categorizer = FixedCategorizer(default=result("debt", "fd_bank", 0.95))

        batch = await BatchClassifier(categorizer).classify_all([RawAsset("SBI FD", 50000.0)], taxonomy)

        classified = batch.classified[0]
        assert classified.asset_class == AssetClass.DEBT
        assert classified.risk_level == RiskLevel.VERY_LOW
        assert classified.expected_return_percentage == 6.5
        assert classified.classification_confidence == 0.95
        assert classified.verified_via == "fixed"

    @pytest.mark.asyncio
    async def test_settling_stage_is_recorded(self, taxonomy):
        assets = [RawAsset("Reliance Industries", 250000.0, isin="INE002A01018"), RawAsset("HDFC Bank FD", 1000.0)]

        batch = await BatchClassifier(HybridCategorizer()).classify_all(assets, taxonomy)

        assert [c.verified_via for c in batch.classified] == ["identifier", "keyword"]

    @pytest.mark.asyncio
    async def test_invalid_and_missing_results_are_dropped(self, taxonomy):
        categorizer = FixedCategorizer(
            results={
                "Good": result("equity", "direct_stocks"),
                "Invented": result("equity", "meme_stocks"),
            },
        )
        assets = [RawAsset("Good", 1.0), RawAsset("Invented", 2.0), RawAsset("Unknown", 3.0)]

        batch = await BatchClassifier(categorizer).classify_all(assets, taxonomy)

        assert [c.name for c in batch.classified] == ["Good"]
        assert [(f.index, f.reason) for f in batch.failures] == [
            (1, "Invalid classification equity/meme_stocks"),
            (2, "No classification returned"),
        ]

    @pytest.mark.asyncio
    async def test_categorizer_errors_are_isolated(self, taxonomy):
        class FailsOnce(FixedCategorizer):
            async def categorize(self, asset, taxonomy):
                if asset.name == "Broken":
                    raise RuntimeError("timeout")
                return result("equity", "direct_stocks")

        batch = await BatchClassifier(FailsOnce()).classify_all(
            [RawAsset("Broken", 1.0), RawAsset("Fine", 2.0)], taxonomy
        )

        assert [c.name for c in batch.classified] == ["Fine"]
        assert batch.failures[0].reason == "timeout"

    @pytest.mark.asyncio
    async def test_all_failing_raises(self, taxonomy):
        categorizer = FixedCategorizer(default=None)

        with pytest.raises(ClassificationFailedError) as exc_info:
            await BatchClassifier(categorizer).classify_all([RawAsset("A", 1.0), RawAsset("B", 2.0)], taxonomy)

        assert exc_info.value.details["failed_count"] == 2
