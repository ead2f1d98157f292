"""
Unit tests for duplicate detection.
"""
import uuid

import pytest

from networth.config import DuplicateDetectionConfig
from networth.models.snapshot import AssetClass, RiskLevel
from networth.services.classifiers import ClassifiedAsset
from networth.services.duplicate_detector import (
    CURRENT_UPLOAD_SOURCE,
    DuplicateDetector,
    DuplicateMatchType,
    ExistingAsset,
)
from networth.services.extraction import RawAsset


def classified(name: str, value: float, source_file: str = "upload.csv") -> ClassifiedAsset:
    return ClassifiedAsset(
        asset=RawAsset(name=name, current_value=value, source_file=source_file),
        asset_class=AssetClass.EQUITY,
        asset_subclass="direct_stocks",
        classification_confidence=0.8,
        risk_level=RiskLevel.VERY_HIGH,
        expected_return_percentage=15.0,
    )


def existing(name: str, value: float, source: str = "October 2024") -> ExistingAsset:
    return ExistingAsset(id=uuid.uuid4(), name=name, current_value=value, source=source)


@pytest.fixture
def detector() -> DuplicateDetector:
    return DuplicateDetector(DuplicateDetectionConfig(name_weight=0.7, value_weight=0.3))


class TestSimilarity:
    """Tests for the name and value components."""

    def test_normalize_name(self):
        assert DuplicateDetector.normalize_name("  HDFC Bank, Ltd. ") == "hdfc bank ltd"

    def test_name_similarity_ignores_token_order(self, detector: DuplicateDetector):
        assert detector.name_similarity("Bank HDFC", "hdfc bank") == 100.0

    def test_name_similarity_empty(self, detector: DuplicateDetector):
        assert detector.name_similarity("", "HDFC") == 0.0

    def test_value_similarity_equal(self, detector: DuplicateDetector):
        assert detector.value_similarity(1000, 1000) == 100.0

    def test_value_similarity_both_zero(self, detector: DuplicateDetector):
        assert detector.value_similarity(0, 0) == 100.0

    def test_value_similarity_outside_tolerance(self, detector: DuplicateDetector):
        assert detector.value_similarity(100000, 200000) == 0.0

    def test_value_similarity_scales_within_tolerance(self, detector: DuplicateDetector):
        # 500 / 100500 is just under 0.5%, a tenth of the 5% tolerance
        assert detector.value_similarity(100000, 100500) == pytest.approx(90.05, abs=0.01)


class TestFindMatches:
    """Tests for ranked matching."""

    def test_hdfc_pair_is_flagged(self, detector: DuplicateDetector):
        matches = detector.find_matches(
            classified("HDFC Bank Ltd", 100000),
            [existing("HDFC Bank Limited", 100500)],
        )

        assert len(matches) == 1
        assert matches[0].similarity_score == pytest.approx(0.877, abs=0.005)
        assert matches[0].is_conflict is True
        assert matches[0].match_type == DuplicateMatchType.NAME

    def test_values_far_apart_never_match(self, detector: DuplicateDetector):
        matches = detector.find_matches(
            classified("HDFC Bank Ltd", 100000),
            [existing("HDFC Bank Ltd", 200000)],
        )

        assert matches == []

    def test_exact_match_type(self, detector: DuplicateDetector):
        matches = detector.find_matches(classified("Infosys", 5000), [existing("INFOSYS", 5000)])

        assert matches[0].match_type == DuplicateMatchType.EXACT
        assert matches[0].similarity_score == 1.0

    def test_matches_sorted_and_capped(self):
        config = DuplicateDetectionConfig(name_weight=0.7, value_weight=0.3, max_matches=2)
        detector = DuplicateDetector(config)
        candidates = [
            existing("Infosys", 5100),
            existing("Infosys", 5000),
            existing("Infosys", 5050),
        ]

        matches = detector.find_matches(classified("Infosys", 5000), candidates)

        assert len(matches) == 2
        assert [m.existing_value for m in matches] == [5000, 5050]

    def test_intra_batch_match_is_not_conflict(self, detector: DuplicateDetector):
        first = classified("Nifty 50 Index Fund", 20000, source_file="zerodha.csv")
        second = classified("Nifty 50 Index Fund", 20000, source_file="groww.csv")

        matches = detector.find_matches(second, [], earlier_in_batch=[first])

        assert len(matches) == 1
        assert matches[0].is_conflict is False
        assert matches[0].existing_asset_id is None
        assert matches[0].existing_source == f"{CURRENT_UPLOAD_SOURCE}: zerodha.csv"


class TestDetect:
    """Tests for batch detection."""

    def test_duplicates_start_deselected(self, detector: DuplicateDetector):
        assets = [classified("Reliance Industries", 250000), classified("TCS", 80000)]

        reviewable = detector.detect(assets, [existing("Reliance Industries", 250000)])

        assert reviewable[0].is_duplicate is True
        assert reviewable[0].is_selected is False
        assert reviewable[1].is_duplicate is False
        assert reviewable[1].is_selected is True

    def test_order_preserved(self, detector: DuplicateDetector):
        names = ["TCS", "Infosys", "Wipro"]
        reviewable = detector.detect([classified(n, 1000 * (i + 1)) for i, n in enumerate(names)], [])

        assert [r.name for r in reviewable] == names

    def test_stats(self, detector: DuplicateDetector):
        assets = [
            classified("Reliance Industries", 250000),
            classified("TCS", 80000),
            classified("TCS", 80000),
        ]
        reviewable = detector.detect(assets, [existing("Reliance Industries", 250000)])

        stats = detector.stats(reviewable)

        assert stats.total == 3
        assert stats.duplicates == 2
        assert stats.conflicts == 1
        assert stats.unique == 1
        assert stats.by_match_type == {"exact": 2}


class TestConfig:
    """Tests for configuration validation."""

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            DuplicateDetectionConfig(name_weight=0.7, value_weight=0.7)

    def test_alternate_weights_also_flag_hdfc_pair(self):
        detector = DuplicateDetector(DuplicateDetectionConfig(name_weight=0.9, value_weight=0.1))

        matches = detector.find_matches(
            classified("HDFC Bank Ltd", 100000),
            [existing("HDFC Bank Limited", 100500)],
        )

        assert len(matches) == 1
