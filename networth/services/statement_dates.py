"""
Statement date service.

Detects the as-of date of each uploaded statement, groups files into statement
periods and matches each period against the user's existing snapshots to
recommend merging or creating a new snapshot.
"""
import calendar
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from networth.config import StatementDateConfig
from networth.models.review import MergeDecision
from networth.models.snapshot import AssetSnapshot
from networth.models.types import utcnow

logger = structlog.get_logger(__name__)


class DateConfidence(str, Enum):
    """How much the detected date can be trusted."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DateSource(str, Enum):
    """Where a statement date came from."""

    DOCUMENT_CONTENT = "document_content"
    FILENAME = "filename"
    USER_INPUT = "user_input"
    UPLOAD_TIMESTAMP = "upload_timestamp"


class MatchType(str, Enum):
    """How closely a statement period lines up with an existing snapshot."""

    EXACT = "exact"
    NEAR = "near"
    NONE = "none"


@dataclass(frozen=True)
class StatementDateGuess:
    """Detected statement date for one file."""

    date: Optional[date]
    confidence: DateConfidence
    source: DateSource
    original_text: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "statement_date": self.date.isoformat() if self.date else None,
            "confidence": self.confidence.value,
            "source": self.source.value,
            "original_text": self.original_text,
        }


@dataclass
class SnapshotMatchResult:
    """Outcome of matching one statement period against existing snapshots."""

    match_type: MatchType
    suggested_action: MergeDecision
    matched_snapshot: Optional[AssetSnapshot] = None
    days_difference: Optional[int] = None

    def to_dict(self) -> dict:
        snapshot = self.matched_snapshot
        return {
            "match_type": self.match_type.value,
            "suggested_action": self.suggested_action.value,
            "days_difference": self.days_difference,
            "matched_snapshot": {
                "id": str(snapshot.id),
                "snapshot_name": snapshot.snapshot_name,
                "statement_date": snapshot.statement_date.isoformat() if snapshot.statement_date else None,
            } if snapshot is not None else None,
        }


@dataclass
class StatementPeriodGroup:
    """Files that represent the same statement period."""

    statement_date: Optional[date]
    files: List[str] = field(default_factory=list)
    date_guesses: List[StatementDateGuess] = field(default_factory=list)
    suggested_snapshot_name: str = ""
    match_result: Optional[SnapshotMatchResult] = None

    @property
    def confidence(self) -> DateConfidence:
        """Weakest confidence among the grouped files."""
        order = [DateConfidence.LOW, DateConfidence.MEDIUM, DateConfidence.HIGH]
        if not self.date_guesses:
            return DateConfidence.LOW
        return min((g.confidence for g in self.date_guesses), key=order.index)

    @property
    def source(self) -> DateSource:
        if not self.date_guesses:
            return DateSource.UPLOAD_TIMESTAMP
        return self.date_guesses[0].source

    def to_dict(self) -> dict:
        return {
            "statement_date": self.statement_date.isoformat() if self.statement_date else None,
            "statement_date_confidence": self.confidence.value,
            "statement_date_source": self.source.value,
            "files": list(self.files),
            "suggested_snapshot_name": self.suggested_snapshot_name,
            "match_result": self.match_result.to_dict() if self.match_result else None,
        }


class StatementDateMatcher:
    """
    Service for statement date detection and snapshot matching.

    Features:
    - Parse dates from filenames and leading document text
    - Resolve one date per file by source priority
    - Group files into statement periods
    - Match each period to the closest dated snapshot
    """

    MONTH_MAP = {
        "jan": 1, "january": 1,
        "feb": 2, "february": 2,
        "mar": 3, "march": 3,
        "apr": 4, "april": 4,
        "may": 5,
        "jun": 6, "june": 6,
        "jul": 7, "july": 7,
        "aug": 8, "august": 8,
        "sep": 9, "sept": 9, "september": 9,
        "oct": 10, "october": 10,
        "nov": 11, "november": 11,
        "dec": 12, "december": 12,
    }

    _MONTH = r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?|sept?(?:ember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"

    # Full dates, each with the group order used to build the date
    DATE_PATTERNS: List[Tuple[str, str]] = [
        (r"(?<!\d)(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?!\d)", "ymd"),
        (r"(?<!\d)(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})(?!\d)", "dmy"),
        (r"(?<![\d])(\d{1,2})(?:st|nd|rd|th)?[\s\-/]*" + _MONTH + r"\.?[\s\-/,]*(\d{4})(?!\d)", "dMy"),
        (r"(?<![a-z])" + _MONTH + r"\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})(?!\d)", "Mdy"),
    ]

    FILENAME_MONTH_PATTERN = r"(?<![a-z])" + _MONTH + r"[_\-\s]*'?(\d{4})(?!\d)"
    FILENAME_YEAR_PATTERN = r"(?<!\d)(20\d{2})(?!\d)"

    # Phrases that anchor the statement date in document text
    ANCHOR_PATTERNS = [
        r"statement\s+period[^\n]{0,40}?\bto\b",
        r"period\s+(?:ended|ending)",
        r"\bas\s+(?:of|on|at)\b",
        r"statement\s+date",
        r"(?:portfolio\s+)?valuation\s+date",
        r"holdings?\s+(?:as\s+)?(?:of|on)",
        r"report\s+date",
    ]

    DOCUMENT_SCAN_CHARS = 2000

    def __init__(self, config: Optional[StatementDateConfig] = None):
        self._config = config or StatementDateConfig()

    # ------------------------------------------------------------------
    # Date detection
    # ------------------------------------------------------------------

    def _build_date(self, groups: Sequence[str], order: str) -> Optional[date]:
        try:
            if order == "ymd":
                year, month, day = int(groups[0]), int(groups[1]), int(groups[2])
            elif order == "dmy":
                day, month, year = int(groups[0]), int(groups[1]), int(groups[2])
            elif order == "dMy":
                day, month, year = int(groups[0]), self._month_number(groups[1]), int(groups[2])
            else:
                month, day, year = self._month_number(groups[0]), int(groups[1]), int(groups[2])
            return date(year, month, day)
        except (TypeError, ValueError):
            return None

    def _month_number(self, token: str) -> Optional[int]:
        token = token.lower().rstrip(".")
        return self.MONTH_MAP.get(token) or self.MONTH_MAP.get(token[:3])

    def find_date(self, text: str) -> Optional[Tuple[date, str]]:
        """
        Find the earliest valid full date in text.

        Args:
            text: Text to scan.

        Returns:
            (date, matched text) or None.
        """
        best: Optional[Tuple[int, date, str]] = None
        for pattern, order in self.DATE_PATTERNS:
            for match in re.finditer(pattern, text, re.IGNORECASE):
                parsed = self._build_date(match.groups(), order)
                if parsed is None:
                    continue
                if best is None or match.start() < best[0]:
                    best = (match.start(), parsed, match.group(0))
                break
        if best is None:
            return None
        return best[1], best[2]

    def parse_filename(self, filename: str) -> StatementDateGuess:
        """
        Parse a statement date from a file name.

        Handles names like "HDFC_Nov2024.pdf" and "Statement_30-11-2024.pdf".
        A bare month and year resolves to the last day of that month.
        """
        stem = Path(filename).stem

        for pattern, order in self.DATE_PATTERNS[:2]:
            match = re.search(pattern, stem)
            if match:
                parsed = self._build_date(match.groups(), order)
                if parsed:
                    return StatementDateGuess(parsed, DateConfidence.HIGH, DateSource.FILENAME, match.group(0))

        match = re.search(self.FILENAME_MONTH_PATTERN, stem, re.IGNORECASE)
        if match:
            month = self._month_number(match.group(1))
            year = int(match.group(2))
            if month:
                last_day = calendar.monthrange(year, month)[1]
                return StatementDateGuess(
                    date(year, month, last_day), DateConfidence.MEDIUM, DateSource.FILENAME, match.group(0)
                )

        match = re.search(self.FILENAME_YEAR_PATTERN, stem)
        if match:
            return StatementDateGuess(
                date(int(match.group(1)), 12, 31), DateConfidence.LOW, DateSource.FILENAME, match.group(0)
            )

        return StatementDateGuess(None, DateConfidence.LOW, DateSource.FILENAME)

    def parse_document_text(self, text: str) -> StatementDateGuess:
        """
        Parse a statement date from the leading text of a document.

        A date following an anchor phrase such as "As on" or "Statement Date"
        is high confidence; the first unanchored date is medium.
        """
        if not text:
            return StatementDateGuess(None, DateConfidence.LOW, DateSource.DOCUMENT_CONTENT)

        excerpt = text[: self.DOCUMENT_SCAN_CHARS]
        for anchor in self.ANCHOR_PATTERNS:
            for match in re.finditer(anchor, excerpt, re.IGNORECASE):
                window = excerpt[match.end(): match.end() + 40]
                found = self.find_date(window)
                if found:
                    return StatementDateGuess(found[0], DateConfidence.HIGH, DateSource.DOCUMENT_CONTENT, found[1])

        found = self.find_date(excerpt)
        if found:
            return StatementDateGuess(found[0], DateConfidence.MEDIUM, DateSource.DOCUMENT_CONTENT, found[1])

        return StatementDateGuess(None, DateConfidence.LOW, DateSource.DOCUMENT_CONTENT)

    def resolve(
        self,
        filename: str,
        document_text: str = "",
        user_date: Optional[date] = None,
    ) -> StatementDateGuess:
        """
        Pick one statement date for a file.

        Priority: user input, then document content, then filename. Low
        confidence guesses are ignored; with nothing usable the file falls back
        to its upload timestamp and carries no statement date.
        """
        if user_date is not None:
            return StatementDateGuess(user_date, DateConfidence.HIGH, DateSource.USER_INPUT)

        from_document = self.parse_document_text(document_text)
        if from_document.date and from_document.confidence != DateConfidence.LOW:
            return from_document

        from_filename = self.parse_filename(filename)
        if from_filename.date and from_filename.confidence != DateConfidence.LOW:
            return from_filename

        return StatementDateGuess(None, DateConfidence.LOW, DateSource.UPLOAD_TIMESTAMP)

    # ------------------------------------------------------------------
    # Grouping and matching
    # ------------------------------------------------------------------

    def group(self, file_dates: Iterable[Tuple[str, StatementDateGuess]]) -> List[StatementPeriodGroup]:
        """
        Group files into statement periods.

        A dated file joins the first group whose anchor date is within the
        same-period tolerance. Each dateless file is a group of its own.
        Dated groups come first, oldest first.
        """
        tolerance = self._config.same_period_tolerance_days
        dated: List[Tuple[date, StatementPeriodGroup]] = []
        dateless: List[StatementPeriodGroup] = []

        entries = list(file_dates)
        for filename, guess in sorted(
            (e for e in entries if e[1].date is not None), key=lambda e: e[1].date
        ):
            for anchor, group in dated:
                if abs((guess.date - anchor).days) <= tolerance:
                    group.files.append(filename)
                    group.date_guesses.append(guess)
                    group.statement_date = max(group.statement_date, guess.date)
                    break
            else:
                dated.append((guess.date, StatementPeriodGroup(
                    statement_date=guess.date,
                    files=[filename],
                    date_guesses=[guess],
                )))

        for filename, guess in entries:
            if guess.date is None:
                dateless.append(StatementPeriodGroup(
                    statement_date=None,
                    files=[filename],
                    date_guesses=[guess],
                ))

        groups = [group for _, group in dated] + dateless
        for group in groups:
            group.suggested_snapshot_name = self.suggest_snapshot_name(
                [g.date for g in group.date_guesses if g.date]
            )
        return groups

    def match(self, snapshots: Sequence[AssetSnapshot], statement_date: Optional[date]) -> SnapshotMatchResult:
        """
        Match a statement date against existing snapshots.

        Snapshots without a statement date never take part in matching.

        Args:
            snapshots: The user's recent snapshots, newest first.
            statement_date: Date of the statement period.

        Returns:
            SnapshotMatchResult with the suggested action.
        """
        if statement_date is None:
            return SnapshotMatchResult(MatchType.NONE, MergeDecision.CREATE_NEW)

        dated = [s for s in snapshots if s.statement_date is not None]
        if len(dated) < len(snapshots):
            logger.info(
                "Snapshots without statement date excluded from matching",
                excluded=len(snapshots) - len(dated),
                considered=len(dated),
            )
        if not dated:
            return SnapshotMatchResult(MatchType.NONE, MergeDecision.CREATE_NEW)

        nearest = min(dated, key=lambda s: abs((s.statement_date - statement_date).days))
        days = abs((nearest.statement_date - statement_date).days)

        if days == 0:
            return SnapshotMatchResult(MatchType.EXACT, MergeDecision.MERGE, nearest, days)
        if days <= self._config.near_match_window_days:
            return SnapshotMatchResult(MatchType.NEAR, MergeDecision.CREATE_NEW, nearest, days)
        return SnapshotMatchResult(MatchType.NONE, MergeDecision.CREATE_NEW, None, days)

    def match_groups(
        self,
        file_dates: Iterable[Tuple[str, StatementDateGuess]],
        snapshots: Sequence[AssetSnapshot],
    ) -> List[StatementPeriodGroup]:
        """Group files into periods and attach a snapshot match to each."""
        groups = self.group(file_dates)
        for group in groups:
            group.match_result = self.match(snapshots, group.statement_date)
            logger.debug(
                "Statement period matched",
                statement_date=str(group.statement_date),
                files=len(group.files),
                match_type=group.match_result.match_type.value,
                days_difference=group.match_result.days_difference,
            )
        return groups

    @staticmethod
    def suggest_snapshot_name(dates: Sequence[date], today: Optional[date] = None) -> str:
        """
        Build a display name for a snapshot.

        One date gives "November 2024"; several dates in one month give
        "November 28-30, 2024".
        """
        unique = sorted(set(dates))
        if not unique:
            fallback = today or utcnow().date()
            return f"{fallback:%B %Y}"

        first, last = unique[0], unique[-1]
        if first == last:
            return f"{first:%B %Y}"
        if (first.year, first.month) == (last.year, last.month):
            return f"{first:%B} {first.day}-{last.day}, {first.year}"
        if first.year == last.year:
            return f"{first:%B} {first.day} - {last:%B} {last.day}, {first.year}"
        return f"{first:%B} {first.day}, {first.year} - {last:%B} {last.day}, {last.year}"


_matcher_instance: Optional[StatementDateMatcher] = None


def get_statement_date_matcher(config: Optional[StatementDateConfig] = None) -> StatementDateMatcher:
    """Get singleton matcher instance, or a fresh one for an explicit config."""
    global _matcher_instance
    if config is not None:
        return StatementDateMatcher(config)
    if _matcher_instance is None:
        _matcher_instance = StatementDateMatcher()
    return _matcher_instance
