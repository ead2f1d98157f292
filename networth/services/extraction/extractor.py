"""
Extractor service.

Turns each uploaded document into RawAssets plus a statement date guess. One
bad file never fails the batch; the batch fails only when every file fails.
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from networth.exceptions import ExtractionFailedError, TooManyFilesError, ValidationError
from networth.services.extraction.base import (
    DocumentParser,
    FileType,
    RawAsset,
    UploadedDocument,
    detect_file_type,
    normalize_rows,
)
from networth.services.extraction.parsers import get_parser
from networth.services.statement_dates import StatementDateGuess, StatementDateMatcher

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int], None]

MIN_FILE_SIZE_BYTES = 10


@dataclass
class FileExtractionResult:
    """Outcome of extracting one document."""

    file_name: str
    success: bool
    file_type: Optional[FileType] = None
    assets: List[RawAsset] = field(default_factory=list)
    statement_date: Optional[StatementDateGuess] = None
    error: Optional[str] = None
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "success": self.success,
            "file_type": self.file_type.value if self.file_type else None,
            "assets_found": len(self.assets),
            "statement_date": self.statement_date.to_dict() if self.statement_date else None,
            "error": self.error,
        }


@dataclass
class ExtractionBatchResult:
    """Per-file outcomes of one upload, in processing order."""

    results: List[FileExtractionResult]

    @property
    def successful(self) -> List[FileExtractionResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[FileExtractionResult]:
        return [r for r in self.results if not r.success]

    @property
    def errors(self) -> List[Dict[str, str]]:
        return [{"file_name": r.file_name, "error": r.error or "Unknown error"} for r in self.failed]


class Extractor:
    """
    Service for extracting holdings from uploaded statements.

    Features:
    - File type detection and size validation
    - Format-specific parsing off the event loop
    - Statement date resolution per file
    - Error isolation (one failure doesn't stop the batch)
    """

    def __init__(
        self,
        date_matcher: StatementDateMatcher,
        max_files: int = 10,
        max_file_size_bytes: int = 50 * 1024 * 1024,
        parser_factory: Callable[[FileType], Optional[DocumentParser]] = get_parser,
    ):
        self._date_matcher = date_matcher
        self._max_files = max_files
        self._max_file_size = max_file_size_bytes
        self._parser_factory = parser_factory

    def validate_batch(self, documents: Sequence[UploadedDocument]) -> None:
        """
        Reject a batch before any work is done.

        Raises:
            ValidationError: If no files were provided.
            TooManyFilesError: If more files than allowed were provided.
        """
        if not documents:
            raise ValidationError("No files provided")
        if len(documents) > self._max_files:
            raise TooManyFilesError(len(documents), self._max_files)

    def _validate_document(self, document: UploadedDocument) -> FileType:
        file_type = detect_file_type(document.filename, document.content_type)
        if file_type is None:
            raise ValueError("Unsupported file type. Upload PDF, CSV or XLSX files.")
        if document.size < MIN_FILE_SIZE_BYTES:
            raise ValueError("File is empty")
        if document.size > self._max_file_size:
            raise ValueError(f"File too large. Maximum size: {self._max_file_size // (1024 * 1024)}MB")
        return file_type

    def _extract_sync(
        self,
        document: UploadedDocument,
        file_type: FileType,
        user_statement_date: Optional[date],
    ) -> FileExtractionResult:
        parser = self._parser_factory(file_type)
        if parser is None:
            raise ValueError(f"No parser available for {file_type.value} files")

        parsed = parser.parse(document.content, document.filename)
        assets = normalize_rows(parsed.rows, document.filename)
        if not assets:
            raise ValueError("No valid assets found in file")

        guess = self._date_matcher.resolve(document.filename, parsed.text, user_statement_date)
        return FileExtractionResult(
            file_name=document.filename,
            success=True,
            file_type=file_type,
            assets=assets,
            statement_date=guess,
        )

    async def extract_document(
        self,
        document: UploadedDocument,
        user_statement_date: Optional[date] = None,
    ) -> FileExtractionResult:
        """
        Extract one document.

        Parsing runs in the default executor since it is CPU-bound. Any
        failure is captured in the returned result rather than raised.
        """
        start_time = time.perf_counter()
        file_type = None
        try:
            file_type = self._validate_document(document)
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(
                None,
                self._extract_sync,
                document,
                file_type,
                user_statement_date,
            )
        except Exception as e:
            logger.warning(
                "File extraction failed",
                file=document.filename,
                error=str(e),
                error_type=type(e).__name__,
            )
            result = FileExtractionResult(
                file_name=document.filename,
                success=False,
                file_type=file_type,
                error=str(e) or type(e).__name__,
            )

        result.processing_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        return result

    async def extract_batch(
        self,
        documents: Sequence[UploadedDocument],
        user_statement_date: Optional[date] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExtractionBatchResult:
        """
        Extract every document of an upload, one after another.

        Args:
            documents: Uploaded files, in the order received.
            user_statement_date: Date typed in by the user, overrides detection.
            on_progress: Called with (current, total) after each file.

        Returns:
            ExtractionBatchResult with at least one successful file.

        Raises:
            ValidationError: If the batch is empty or too large.
            ExtractionFailedError: If no file could be parsed.
        """
        self.validate_batch(documents)

        total = len(documents)
        results = []
        for index, document in enumerate(documents, start=1):
            results.append(await self.extract_document(document, user_statement_date))
            if on_progress is not None:
                on_progress(index, total)

        batch = ExtractionBatchResult(results=results)
        logger.info(
            "Extraction complete",
            total_files=total,
            successful=len(batch.successful),
            failed=len(batch.failed),
        )

        if not batch.successful:
            raise ExtractionFailedError(batch.errors)
        return batch
