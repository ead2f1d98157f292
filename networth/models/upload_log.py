"""
Upload log model.

One row per parse request, written whether the request succeeded or not.
"""
import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Enum, Integer, String, Text

from networth.database import Base
from networth.models.types import UUID, utcnow


class UploadLogStatus(str, enum.Enum):
    """Outcome of a parse request."""

    COMPLETED = "completed"
    FAILED = "failed"


class UploadLog(Base):
    """Audit record of a statement upload."""

    __tablename__ = "upload_logs"

    id: uuid.UUID = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id: uuid.UUID = Column(UUID(), nullable=False, index=True)
    file_names = Column(JSON, default=list, nullable=False)
    file_type: str = Column(String(20), nullable=False)
    file_size_bytes: int = Column(Integer, default=0, nullable=False)
    status: UploadLogStatus = Column(Enum(UploadLogStatus), nullable=False)
    assets_parsed: int = Column(Integer, default=0, nullable=False)
    duplicates_found: int = Column(Integer, default=0, nullable=False)
    processing_time_ms: Optional[int] = Column(Integer, nullable=True)
    error_message: Optional[str] = Column(Text, nullable=True)
    created_at: datetime = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<UploadLog(id={self.id}, status={self.status}, files={len(self.file_names or [])})>"
