"""Models package."""
from networth.models.review import SessionStatus, TempAsset, TempUploadSession
from networth.models.snapshot import Asset, AssetClass, AssetSnapshot, RiskLevel, SnapshotSource
from networth.models.taxonomy import AssetSubclassMapping
from networth.models.upload_log import UploadLog, UploadLogStatus

__all__ = [
    "Asset", "AssetClass", "AssetSnapshot", "RiskLevel", "SnapshotSource",
    "SessionStatus", "TempAsset", "TempUploadSession",
    "AssetSubclassMapping",
    "UploadLog", "UploadLogStatus",
]
