"""
Unit tests for statement date detection, grouping and snapshot matching.
"""
import uuid
from datetime import date

import pytest

from networth.config import StatementDateConfig
from networth.models.review import MergeDecision
from networth.models.snapshot import AssetSnapshot
from networth.services.statement_dates import (
    DateConfidence,
    DateSource,
    MatchType,
    StatementDateGuess,
    StatementDateMatcher,
    get_statement_date_matcher,
)


@pytest.fixture
def matcher() -> StatementDateMatcher:
    return StatementDateMatcher(StatementDateConfig())


def snapshot(statement_date, name: str = "Snapshot") -> AssetSnapshot:
    return AssetSnapshot(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        snapshot_name=name,
        snapshot_date=statement_date or date(2024, 1, 1),
        statement_date=statement_date,
    )


def guess(value, confidence=DateConfidence.HIGH, source=DateSource.DOCUMENT_CONTENT) -> StatementDateGuess:
    return StatementDateGuess(value, confidence, source)


class TestFilenameParsing:
    """Tests for dates embedded in file names."""

    def test_month_and_year_is_end_of_month(self, matcher: StatementDateMatcher):
        result = matcher.parse_filename("HDFC_Nov2024.pdf")

        assert result.date == date(2024, 11, 30)
        assert result.confidence == DateConfidence.MEDIUM
        assert result.source == DateSource.FILENAME

    def test_full_date(self, matcher: StatementDateMatcher):
        result = matcher.parse_filename("Statement_30-11-2024.csv")

        assert result.date == date(2024, 11, 30)
        assert result.confidence == DateConfidence.HIGH

    def test_iso_date(self, matcher: StatementDateMatcher):
        assert matcher.parse_filename("holdings_2024-02-29.xlsx").date == date(2024, 2, 29)

    def test_february_leap_year(self, matcher: StatementDateMatcher):
        assert matcher.parse_filename("zerodha-feb-2024.csv").date == date(2024, 2, 29)

    def test_year_only_is_low_confidence(self, matcher: StatementDateMatcher):
        result = matcher.parse_filename("portfolio_2024.xlsx")

        assert result.date == date(2024, 12, 31)
        assert result.confidence == DateConfidence.LOW

    def test_no_date(self, matcher: StatementDateMatcher):
        result = matcher.parse_filename("holdings.csv")

        assert result.date is None
        assert result.confidence == DateConfidence.LOW


class TestDocumentParsing:
    """Tests for dates found in document text."""

    def test_anchored_date_is_high_confidence(self, matcher: StatementDateMatcher):
        text = "Consolidated Account Statement\nHoldings as on 30-Nov-2024\nScheme  Units  Value"

        result = matcher.parse_document_text(text)

        assert result.date == date(2024, 11, 30)
        assert result.confidence == DateConfidence.HIGH
        assert result.source == DateSource.DOCUMENT_CONTENT

    def test_month_name_first(self, matcher: StatementDateMatcher):
        result = matcher.parse_document_text("Statement Date: November 30, 2024")

        assert result.date == date(2024, 11, 30)
        assert result.confidence == DateConfidence.HIGH

    def test_unanchored_date_is_medium_confidence(self, matcher: StatementDateMatcher):
        result = matcher.parse_document_text("Report generated 15/10/2024 for client")

        assert result.date == date(2024, 10, 15)
        assert result.confidence == DateConfidence.MEDIUM

    def test_invalid_date_ignored(self, matcher: StatementDateMatcher):
        assert matcher.parse_document_text("Ref 31/02/2024").date is None

    def test_empty_text(self, matcher: StatementDateMatcher):
        assert matcher.parse_document_text("").date is None


class TestResolve:
    """Tests for source priority."""

    def test_user_input_wins(self, matcher: StatementDateMatcher):
        result = matcher.resolve("HDFC_Nov2024.pdf", "As on 31-Oct-2024", user_date=date(2024, 12, 31))

        assert result.date == date(2024, 12, 31)
        assert result.source == DateSource.USER_INPUT
        assert result.confidence == DateConfidence.HIGH

    def test_document_beats_filename(self, matcher: StatementDateMatcher):
        result = matcher.resolve("HDFC_Nov2024.pdf", "Generated 15/10/2024")

        assert result.date == date(2024, 10, 15)
        assert result.source == DateSource.DOCUMENT_CONTENT

    def test_filename_used_when_document_has_no_date(self, matcher: StatementDateMatcher):
        result = matcher.resolve("HDFC_Nov2024.pdf", "Scheme Units Value")

        assert result.date == date(2024, 11, 30)
        assert result.source == DateSource.FILENAME

    def test_low_confidence_falls_back_to_upload_timestamp(self, matcher: StatementDateMatcher):
        result = matcher.resolve("portfolio_2024.xlsx", "")

        assert result.date is None
        assert result.source == DateSource.UPLOAD_TIMESTAMP
        assert result.confidence == DateConfidence.LOW


class TestGrouping:
    """Tests for statement period grouping."""

    def test_groups_by_exact_date(self, matcher: StatementDateMatcher):
        groups = matcher.group([
            ("a.pdf", guess(date(2024, 11, 30))),
            ("b.csv", guess(date(2024, 11, 30), DateConfidence.MEDIUM, DateSource.FILENAME)),
            ("c.csv", guess(date(2024, 10, 31))),
        ])

        assert [g.files for g in groups] == [["c.csv"], ["a.pdf", "b.csv"]]
        assert groups[1].statement_date == date(2024, 11, 30)
        assert groups[1].confidence == DateConfidence.MEDIUM
        assert groups[0].suggested_snapshot_name == "October 2024"

    def test_dateless_files_form_their_own_groups(self, matcher: StatementDateMatcher):
        groups = matcher.group([
            ("x.csv", guess(None, DateConfidence.LOW, DateSource.UPLOAD_TIMESTAMP)),
            ("a.pdf", guess(date(2024, 11, 30))),
            ("y.csv", guess(None, DateConfidence.LOW, DateSource.UPLOAD_TIMESTAMP)),
        ])

        assert [g.files for g in groups] == [["a.pdf"], ["x.csv"], ["y.csv"]]
        assert groups[1].statement_date is None
        assert groups[1].source == DateSource.UPLOAD_TIMESTAMP

    def test_tolerance_merges_nearby_dates(self):
        matcher = StatementDateMatcher(StatementDateConfig(same_period_tolerance_days=2))

        groups = matcher.group([
            ("a.pdf", guess(date(2024, 11, 30))),
            ("b.pdf", guess(date(2024, 11, 28))),
        ])

        assert len(groups) == 1
        assert groups[0].statement_date == date(2024, 11, 30)
        assert groups[0].suggested_snapshot_name == "November 28-30, 2024"

    def test_to_dict(self, matcher: StatementDateMatcher):
        group = matcher.match_groups([("a.pdf", guess(date(2024, 11, 30)))], [])[0]

        data = group.to_dict()

        assert data["statement_date"] == "2024-11-30"
        assert data["files"] == ["a.pdf"]
        assert data["match_result"]["match_type"] == "none"


class TestSnapshotMatching:
    """Tests for matching periods against existing snapshots."""

    def test_exact_match_suggests_merge(self, matcher: StatementDateMatcher):
        target = snapshot(date(2024, 11, 30), "November 2024")

        result = matcher.match([target], date(2024, 11, 30))

        assert result.match_type == MatchType.EXACT
        assert result.suggested_action == MergeDecision.MERGE
        assert result.matched_snapshot is target
        assert result.days_difference == 0

    def test_near_match_suggests_create_new(self, matcher: StatementDateMatcher):
        target = snapshot(date(2024, 11, 20))

        result = matcher.match([target], date(2024, 11, 30))

        assert result.match_type == MatchType.NEAR
        assert result.suggested_action == MergeDecision.CREATE_NEW
        assert result.matched_snapshot is target
        assert result.days_difference == 10

    def test_nearest_snapshot_wins(self, matcher: StatementDateMatcher):
        far = snapshot(date(2024, 10, 31))
        near = snapshot(date(2024, 11, 29))

        result = matcher.match([far, near], date(2024, 11, 30))

        assert result.matched_snapshot is near

    def test_outside_window_is_no_match(self, matcher: StatementDateMatcher):
        result = matcher.match([snapshot(date(2024, 10, 1))], date(2024, 11, 30))

        assert result.match_type == MatchType.NONE
        assert result.matched_snapshot is None
        assert result.days_difference == 60

    def test_undated_snapshots_are_excluded(self, matcher: StatementDateMatcher):
        result = matcher.match([snapshot(None)], date(2024, 11, 30))

        assert result.match_type == MatchType.NONE
        assert result.days_difference is None

    def test_no_statement_date(self, matcher: StatementDateMatcher):
        result = matcher.match([snapshot(date(2024, 11, 30))], None)

        assert result.match_type == MatchType.NONE
        assert result.suggested_action == MergeDecision.CREATE_NEW


class TestSnapshotNames:
    """Tests for suggested snapshot names."""

    @pytest.mark.parametrize(
        "dates, expected",
        [
            ([date(2024, 11, 30)], "November 2024"),
            ([date(2024, 11, 28), date(2024, 11, 30)], "November 28-30, 2024"),
            ([date(2024, 10, 31), date(2024, 11, 30)], "October 31 - November 30, 2024"),
            ([date(2024, 12, 31), date(2025, 1, 31)], "December 31, 2024 - January 31, 2025"),
        ],
    )
    def test_names(self, dates, expected):
        assert StatementDateMatcher.suggest_snapshot_name(dates) == expected

    def test_no_dates_uses_today(self):
        assert StatementDateMatcher.suggest_snapshot_name([], today=date(2025, 3, 5)) == "March 2025"


def test_singleton_matcher():
    assert get_statement_date_matcher() is get_statement_date_matcher()
