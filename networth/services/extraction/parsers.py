"""
Format-specific document parsers.

CSV is read with the csv module, XLSX with openpyxl and PDF tables with
pdfplumber. Each parser returns header-mapped rows plus the document's leading
text for statement date detection.
"""
import csv
import io
from typing import Any, Dict, List, Optional

import openpyxl
import pdfplumber
import structlog

from networth.services.extraction.base import (
    DocumentParser,
    FileType,
    ParsedDocument,
    rows_from_grid,
)

logger = structlog.get_logger(__name__)

TEXT_EXCERPT_CHARS = 2000


class CsvParser(DocumentParser):
    """Parser for comma separated holdings exports."""

    file_type = FileType.CSV
    ENCODINGS = ("utf-8-sig", "latin-1")

    def _decode(self, content: bytes) -> str:
        for encoding in self.ENCODINGS:
            try:
                return content.decode(encoding)
            except UnicodeDecodeError:
                continue
        raise ValueError("Unable to decode CSV file")

    def parse(self, content: bytes, filename: str) -> ParsedDocument:
        text = self._decode(content)
        try:
            dialect = csv.Sniffer().sniff(text[:1024], delimiters=",;\t|")
        except csv.Error:
            dialect = csv.excel
        grid = [row for row in csv.reader(io.StringIO(text), dialect) if row]
        rows = rows_from_grid(grid)
        logger.debug("CSV parsed", file=filename, grid_rows=len(grid), data_rows=len(rows))
        return ParsedDocument(rows=rows, text=text[:TEXT_EXCERPT_CHARS])


class XlsxParser(DocumentParser):
    """Parser for Excel workbooks; every sheet is scanned for a holdings table."""

    file_type = FileType.XLSX

    def parse(self, content: bytes, filename: str) -> ParsedDocument:
        workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        rows: List[Dict[str, Any]] = []
        text_parts: List[str] = []
        try:
            for sheet in workbook.worksheets:
                grid = [list(r) for r in sheet.iter_rows(values_only=True)]
                for cells in grid[:10]:
                    text_parts.append(" ".join(str(c) for c in cells if c is not None))
                sheet_rows = rows_from_grid(grid)
                logger.debug("Sheet parsed", file=filename, sheet=sheet.title, data_rows=len(sheet_rows))
                rows.extend(sheet_rows)
        finally:
            workbook.close()
        return ParsedDocument(rows=rows, text="\n".join(text_parts)[:TEXT_EXCERPT_CHARS])


class PdfParser(DocumentParser):
    """Parser for PDF statements with ruled or text-aligned holdings tables."""

    file_type = FileType.PDF

    def parse(self, content: bytes, filename: str) -> ParsedDocument:
        rows: List[Dict[str, Any]] = []
        text_parts: List[str] = []
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            for page_number, page in enumerate(pdf.pages, start=1):
                if sum(len(t) for t in text_parts) < TEXT_EXCERPT_CHARS:
                    text_parts.append(page.extract_text() or "")
                for table in page.extract_tables():
                    table_rows = rows_from_grid(table)
                    if table_rows:
                        logger.debug(
                            "PDF table parsed",
                            file=filename,
                            page=page_number,
                            data_rows=len(table_rows),
                        )
                    rows.extend(table_rows)
        return ParsedDocument(rows=rows, text="\n".join(text_parts)[:TEXT_EXCERPT_CHARS])


_PARSERS = {
    FileType.CSV: CsvParser,
    FileType.XLSX: XlsxParser,
    FileType.PDF: PdfParser,
}


def get_parser(file_type: FileType) -> Optional[DocumentParser]:
    """Get a parser for a file type."""
    parser_cls = _PARSERS.get(file_type)
    return parser_cls() if parser_cls else None
