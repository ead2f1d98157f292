"""Extraction package."""
from networth.services.extraction.base import FileType, RawAsset, UploadedDocument
from networth.services.extraction.extractor import (
    ExtractionBatchResult,
    Extractor,
    FileExtractionResult,
)
from networth.services.extraction.merger import merge_assets

__all__ = [
    "Extractor", "ExtractionBatchResult", "FileExtractionResult",
    "FileType", "RawAsset", "UploadedDocument",
    "merge_assets",
]
