"""
Asset taxonomy model.

Each row is one valid (asset_class, subclass_code) pair with its risk tier and
expected return.
"""
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, Enum, Float, Integer, String, Text, UniqueConstraint

from networth.database import Base
from networth.models.snapshot import AssetClass, RiskLevel


class AssetSubclassMapping(Base):
    """Valid subclass of an asset class."""

    __tablename__ = "asset_subclass_mapping"
    __table_args__ = (UniqueConstraint("asset_class", "subclass_code", name="uq_class_subclass"),)

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    asset_class: AssetClass = Column(Enum(AssetClass), nullable=False, index=True)
    subclass_code: str = Column(String(50), nullable=False)
    display_name: str = Column(String(100), nullable=False)
    risk_level: RiskLevel = Column(Enum(RiskLevel), nullable=False)
    expected_return_range: Optional[str] = Column(String(20), nullable=True)
    expected_return_midpoint: float = Column(Float, nullable=False, default=0.0)
    keyword_patterns = Column(JSON, default=list, nullable=False)
    description: Optional[str] = Column(Text, nullable=True)
    sort_order: int = Column(Integer, default=0, nullable=False)
    is_active: bool = Column(Boolean, default=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<AssetSubclassMapping({self.asset_class}/{self.subclass_code})>"
