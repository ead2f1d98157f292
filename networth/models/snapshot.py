"""
Snapshot and asset models.

A snapshot is a named, dated capture of a user's holdings. Its per-class
totals always equal the class-grouped sum of its non-duplicate assets.
"""
import enum
import uuid
from datetime import date, datetime
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
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from networth.database import Base
from networth.models.types import UUID, utcnow


class AssetClass(str, enum.Enum):
    """Top-level asset classes."""

    EQUITY = "equity"
    DEBT = "debt"
    CASH = "cash"
    REAL_ESTATE = "real_estate"
    OTHER = "other"


class RiskLevel(str, enum.Enum):
    """Risk tier attached to each taxonomy subclass."""

    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class SnapshotSource(str, enum.Enum):
    """How a snapshot came into existence."""

    UPLOAD = "upload"
    MANUAL = "manual"
    SYSTEM = "system"


# AssetClass -> AssetSnapshot column holding that class's total
CLASS_TOTAL_COLUMNS = {
    AssetClass.EQUITY: "equity_total",
    AssetClass.DEBT: "debt_total",
    AssetClass.CASH: "cash_total",
    AssetClass.REAL_ESTATE: "real_estate_total",
    AssetClass.OTHER: "other_assets_total",
}


class AssetSnapshot(Base):
    """
    SQLAlchemy model for a point-in-time capture of a user's holdings.

    Attributes:
        id: Unique identifier (UUID).
        user_id: Owner, supplied by the identity provider.
        snapshot_date: Date the snapshot was taken.
        statement_date: As-of date of the source statements, if known.
        snapshot_name: Display name, e.g. "November 2024".
        total_networth: Sum of all non-duplicate asset values.
        source_type: upload, manual or system.
        source_files: File names the snapshot was built from.
    """

    __tablename__ = "asset_snapshots"

    id: uuid.UUID = Column(UUID(), primary_key=True, default=uuid.uuid4, index=True)
    user_id: uuid.UUID = Column(UUID(), nullable=False, index=True)

    snapshot_date: date = Column(Date, nullable=False)
    statement_date: Optional[date] = Column(Date, nullable=True, index=True)
    statement_date_confidence: Optional[str] = Column(String(10), nullable=True)
    statement_date_source: Optional[str] = Column(String(30), nullable=True)
    snapshot_name: str = Column(String(255), nullable=False)

    total_networth: Decimal = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    equity_total: Decimal = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    debt_total: Decimal = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    cash_total: Decimal = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    real_estate_total: Decimal = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    other_assets_total: Decimal = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)

    source_type: SnapshotSource = Column(
        Enum(SnapshotSource),
        default=SnapshotSource.UPLOAD,
        nullable=False,
    )
    source_files = Column(JSON, default=list, nullable=False)
    notes: Optional[str] = Column(Text, nullable=True)

    created_at: datetime = Column(DateTime, default=utcnow, nullable=False)
    updated_at: datetime = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    assets = relationship(
        "Asset",
        back_populates="snapshot",
        cascade="all, delete-orphan",
    )

    def apply_totals(self, totals: dict) -> None:
        """Overwrite the per-class and overall totals."""
        for asset_class, column in CLASS_TOTAL_COLUMNS.items():
            setattr(self, column, totals.get(asset_class, Decimal("0.00")))
        self.total_networth = sum(
            (totals.get(asset_class, Decimal("0.00")) for asset_class in CLASS_TOTAL_COLUMNS),
            Decimal("0.00"),
        )

    def __repr__(self) -> str:
        return f"<AssetSnapshot(id={self.id}, name='{self.snapshot_name}', total={self.total_networth})>"


class Asset(Base):
    """Permanent holding bound to exactly one snapshot."""

    __tablename__ = "assets"

    id: uuid.UUID = Column(UUID(), primary_key=True, default=uuid.uuid4, index=True)
    user_id: uuid.UUID = Column(UUID(), nullable=False, index=True)
    snapshot_id: uuid.UUID = Column(
        UUID(),
        ForeignKey("asset_snapshots.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

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
    ai_confidence_score: Optional[float] = Column(Float, nullable=True)
    verified_via: Optional[str] = Column(String(20), nullable=True)
    source_file: Optional[str] = Column(String(255), nullable=True)
    notes: Optional[str] = Column(Text, nullable=True)

    is_duplicate: bool = Column(Boolean, default=False, nullable=False)
    is_manually_verified: bool = Column(Boolean, default=False, nullable=False)

    created_at: datetime = Column(DateTime, default=utcnow, nullable=False)
    updated_at: datetime = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    snapshot = relationship("AssetSnapshot", back_populates="assets")

    def __repr__(self) -> str:
        return f"<Asset(id={self.id}, name='{self.name}', value={self.current_value})>"
