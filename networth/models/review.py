"""
Temporary upload session models.

A review session stages parsed, classified and de-duplicated assets until the
user finalizes or cancels it. Status only moves forward:
in_review -> completed | cancelled.
"""
import enum
import secrets
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from networth.database import Base
from networth.exceptions import InvalidStatusTransitionError
from networth.models.snapshot import AssetClass, RiskLevel
from networth.models.types import UUID, utcnow


class SessionStatus(str, enum.Enum):
    """Review session lifecycle status."""

    IN_REVIEW = "in_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


ALLOWED_TRANSITIONS = {
    SessionStatus.IN_REVIEW: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


def check_transition(current: SessionStatus, target: SessionStatus) -> None:
    """
    Raises:
        InvalidStatusTransitionError: If target is not reachable from current.
    """
    current = SessionStatus(current)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(current.value, target.value)


class MergeDecision(str, enum.Enum):
    """Suggested or chosen fate of an upload."""

    MERGE = "merge"
    CREATE_NEW = "create_new"


def generate_session_id(now: Optional[datetime] = None) -> str:
    """Session ids look like tmp_20241130_k3j9x2ab."""
    now = now or utcnow()
    return f"tmp_{now:%Y%m%d}_{secrets.token_hex(4)}"


class TempUploadSession(Base):
    """
    SQLAlchemy model for a staged upload awaiting review.

    Attributes:
        id: tmp_YYYYMMDD_xxxxxxxx identifier.
        user_id: Owner, supplied by the identity provider.
        file_names: Names of the files parsed into this session.
        statement_date: Detected or user-supplied as-of date.
        matched_snapshot_id: Existing snapshot the period matched, if any.
        merge_decision: Suggested merge or create_new.
        status: in_review, completed or cancelled.
        expires_at: After this the session can no longer be read or edited.
    """

    __tablename__ = "temp_upload_sessions"

    id: str = Column(String(64), primary_key=True, default=lambda: generate_session_id())
    user_id: uuid.UUID = Column(UUID(), nullable=False, index=True)

    file_names = Column(JSON, default=list, nullable=False)
    total_assets: int = Column(Integer, default=0, nullable=False)
    total_value: Decimal = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    duplicates_found: int = Column(Integer, default=0, nullable=False)
    processing_time_ms: Optional[int] = Column(Integer, nullable=True)

    statement_date: Optional[date] = Column(Date, nullable=True)
    statement_date_confidence: Optional[str] = Column(String(10), nullable=True)
    statement_date_source: Optional[str] = Column(String(30), nullable=True)
    suggested_snapshot_name: Optional[str] = Column(String(255), nullable=True)
    matched_snapshot_id: Optional[uuid.UUID] = Column(UUID(), nullable=True)
    merge_decision: Optional[MergeDecision] = Column(Enum(MergeDecision), nullable=True)

    status: SessionStatus = Column(
        Enum(SessionStatus),
        default=SessionStatus.IN_REVIEW,
        nullable=False,
        index=True,
    )

    created_at: datetime = Column(DateTime, default=utcnow, nullable=False)
    updated_at: datetime = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    expires_at: datetime = Column(
        DateTime,
        default=lambda: utcnow() + timedelta(hours=24),
        nullable=False,
        index=True,
    )

    assets = relationship(
        "TempAsset",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="TempAsset.position",
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the session is past its expiry time."""
        return (now or utcnow()) > self.expires_at

    def transition_to(self, target: SessionStatus) -> None:
        """
        Move to a new status.

        Raises:
            InvalidStatusTransitionError: If the move is not allowed.
        """
        check_transition(self.status, target)
        self.status = target

    def __repr__(self) -> str:
        return f"<TempUploadSession(id={self.id}, status={self.status}, assets={self.total_assets})>"


class TempAsset(Base):
    """Persisted reviewable asset bound to a temp upload session."""

    __tablename__ = "temp_assets"

    id: uuid.UUID = Column(UUID(), primary_key=True, default=uuid.uuid4, index=True)
    session_id: str = Column(
        String(64),
        ForeignKey("temp_upload_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: uuid.UUID = Column(UUID(), nullable=False, index=True)
    position: int = Column(Integer, default=0, nullable=False)

    name: str = Column(String(255), nullable=False)
    asset_class: AssetClass = Column(Enum(AssetClass), nullable=False)
    asset_subclass: str = Column(String(50), nullable=False)
    current_value: Decimal = Column(Numeric(15, 2), nullable=False)
    quantity: Optional[float] = Column(Float, nullable=True)
    purchase_price: Optional[Decimal] = Column(Numeric(15, 2), nullable=True)
    purchase_date: Optional[date] = Column(Date, nullable=True)

    isin: Optional[str] = Column(String(12), nullable=True)
    ticker_symbol: Optional[str] = Column(String(20), nullable=True)
    exchange: Optional[str] = Column(String(20), nullable=True)

    risk_level: Optional[RiskLevel] = Column(Enum(RiskLevel), nullable=True)
    expected_return_percentage: Optional[float] = Column(Float, nullable=True)
    classification_confidence: Optional[float] = Column(Float, nullable=True)
    classification_reasoning: Optional[str] = Column(Text, nullable=True)
    verified_via: Optional[str] = Column(String(20), nullable=True)
    source_file: Optional[str] = Column(String(255), nullable=True)
    notes: Optional[str] = Column(Text, nullable=True)

    is_duplicate: bool = Column(Boolean, default=False, nullable=False)
    duplicate_matches = Column(JSON, default=list, nullable=False)
    is_selected: bool = Column(Boolean, default=True, nullable=False)
    is_edited: bool = Column(Boolean, default=False, nullable=False)

    created_at: datetime = Column(DateTime, default=utcnow, nullable=False)
    updated_at: datetime = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    session = relationship("TempUploadSession", back_populates="assets")

    def __repr__(self) -> str:
        return f"<TempAsset(id={self.id}, name='{self.name}', duplicate={self.is_duplicate})>"
