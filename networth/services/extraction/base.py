"""
Shared extraction types and row normalization.

Document parsers hand back grids of cells; this module finds the header row,
maps columns onto asset fields and turns each data row into a RawAsset.
"""
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import structlog

logger = structlog.get_logger(__name__)


class FileType(str, Enum):
    """Supported statement formats."""

    PDF = "pdf"
    CSV = "csv"
    XLSX = "xlsx"


EXTENSION_TYPES = {
    ".pdf": FileType.PDF,
    ".csv": FileType.CSV,
    ".xlsx": FileType.XLSX,
}

CONTENT_TYPES = {
    "application/pdf": FileType.PDF,
    "application/x-pdf": FileType.PDF,
    "text/csv": FileType.CSV,
    "application/csv": FileType.CSV,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": FileType.XLSX,
}

# Canonical field -> accepted header spellings (normalized)
COLUMN_ALIASES: Dict[str, List[str]] = {
    "name": [
        "asset name", "asset", "name", "security", "security name", "instrument",
        "holding", "scheme", "scheme name", "fund name", "stock", "company", "description",
    ],
    "current_value": [
        "current value", "value", "market value", "amount", "total", "current amount",
        "present value", "valuation", "closing value", "balance",
    ],
    "quantity": ["quantity", "qty", "units", "shares", "holdings", "no of shares", "balance units"],
    "purchase_price": [
        "purchase price", "cost", "buy price", "average price", "avg price",
        "avg cost", "average cost", "invested value", "cost value",
    ],
    "purchase_date": ["purchase date", "buy date", "date", "acquisition date", "investment date"],
    "isin": ["isin", "isin code"],
    "ticker_symbol": ["symbol", "ticker", "ticker symbol", "scrip", "scrip code"],
    "exchange": ["exchange"],
    "notes": ["notes", "remarks", "comment", "comments"],
}

HEADER_SCAN_ROWS = 20

_AMOUNT_NOISE = re.compile(r"(₹|\$|rs\.?|inr|,|\s)", re.IGNORECASE)
_HEADER_NOISE = re.compile(r"\(.*?\)|[^a-z0-9 ]")

DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%d-%b-%Y", "%d %b %Y", "%d-%b-%y", "%m/%d/%Y")


@dataclass(frozen=True)
class RawAsset:
    """A holding as read from one statement, before classification."""

    name: str
    current_value: float
    source_file: str = ""
    quantity: Optional[float] = None
    purchase_price: Optional[float] = None
    purchase_date: Optional[date] = None
    isin: Optional[str] = None
    ticker_symbol: Optional[str] = None
    exchange: Optional[str] = None
    notes: Optional[str] = None

    def with_source(self, source_file: str) -> "RawAsset":
        return replace(self, source_file=source_file)


@dataclass
class UploadedDocument:
    """One file received in an upload request."""

    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class ParsedDocument:
    """Raw output of a document parser."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    text: str = ""


class DocumentParser:
    """Base class for format-specific parsers."""

    file_type: FileType

    def parse(self, content: bytes, filename: str) -> ParsedDocument:
        raise NotImplementedError


def detect_file_type(filename: str, content_type: Optional[str] = None) -> Optional[FileType]:
    """Resolve the file type by extension, then by MIME type."""
    lowered = (filename or "").lower()
    for extension, file_type in EXTENSION_TYPES.items():
        if lowered.endswith(extension):
            return file_type
    if content_type:
        return CONTENT_TYPES.get(content_type.split(";")[0].strip().lower())
    return None


def normalize_header(header: Any) -> str:
    if header is None:
        return ""
    text = _HEADER_NOISE.sub(" ", str(header).lower())
    return " ".join(text.split())


def map_header_row(cells: Sequence[Any]) -> Dict[int, str]:
    """
    Map column indexes to canonical field names.

    Exact alias matches win; otherwise a header that starts with an alias is
    accepted. Each field is claimed by at most one column.
    """
    mapping: Dict[int, str] = {}
    claimed = set()
    normalized = [normalize_header(c) for c in cells]

    for exact in (True, False):
        for index, header in enumerate(normalized):
            if not header or index in mapping:
                continue
            for field_name, aliases in COLUMN_ALIASES.items():
                if field_name in claimed:
                    continue
                if exact:
                    hit = header in aliases
                else:
                    hit = any(header.startswith(alias + " ") for alias in aliases)
                if hit:
                    mapping[index] = field_name
                    claimed.add(field_name)
                    break
    return mapping


def rows_from_grid(grid: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    Turn a grid of cells into field-keyed rows.

    The header is the first of the leading rows that maps both a name and a
    value column. Grids without such a row yield nothing.
    """
    for header_index, candidate in enumerate(grid[:HEADER_SCAN_ROWS]):
        mapping = map_header_row(candidate)
        if {"name", "current_value"} <= set(mapping.values()):
            break
    else:
        return []

    rows = []
    for cells in grid[header_index + 1:]:
        row = {
            field_name: cells[index]
            for index, field_name in mapping.items()
            if index < len(cells)
        }
        if any(v not in (None, "") for v in row.values()):
            rows.append(row)
    return rows


def clean_amount(value: Any) -> Optional[float]:
    """Parse a currency amount such as "₹1,23,456.78" or "(500)"."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = _AMOUNT_NOISE.sub("", str(value))
    if not text or text in {"-", "--"}:
        return None
    negative = text.startswith("(") and text.endswith(")")
    text = text.strip("()")
    try:
        amount = float(text)
    except ValueError:
        return None
    return -amount if negative else amount


def parse_date_value(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def normalize_rows(rows: Sequence[Dict[str, Any]], source_file: str) -> List[RawAsset]:
    """
    Convert parsed rows into RawAssets.

    Rows without a name, or whose value is missing or not positive, are skipped.
    """
    assets = []
    skipped = 0
    for row in rows:
        name = _clean_text(row.get("name"))
        value = clean_amount(row.get("current_value"))
        if not name or value is None or value <= 0:
            skipped += 1
            continue
        assets.append(RawAsset(
            name=name,
            current_value=value,
            source_file=source_file,
            quantity=clean_amount(row.get("quantity")),
            purchase_price=clean_amount(row.get("purchase_price")),
            purchase_date=parse_date_value(row.get("purchase_date")),
            isin=_clean_text(row.get("isin")),
            ticker_symbol=_clean_text(row.get("ticker_symbol")),
            exchange=_clean_text(row.get("exchange")),
            notes=_clean_text(row.get("notes")),
        ))

    if skipped:
        logger.debug("Skipped rows without name or positive value", file=source_file, skipped=skipped)
    return assets
