"""
Merge per-file extraction results into one ordered asset list.
"""
from typing import Iterable, List

from networth.services.extraction.base import RawAsset
from networth.services.extraction.extractor import FileExtractionResult


def merge_assets(results: Iterable[FileExtractionResult]) -> List[RawAsset]:
    """
    Concatenate assets of successful files in processing order.

    Each asset is tagged with the file it came from. Nothing is sorted or
    de-duplicated here.
    """
    merged: List[RawAsset] = []
    for result in results:
        if not result.success:
            continue
        merged.extend(asset.with_source(result.file_name) for asset in result.assets)
    return merged
