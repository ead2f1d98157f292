"""
Snapshot service.

Totals computation, listing and deletion of a user's asset snapshots.
"""
import uuid
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from networth.exceptions import SnapshotNotFoundError
from networth.models.snapshot import CLASS_TOTAL_COLUMNS, Asset, AssetClass, AssetSnapshot, SnapshotSource
from networth.models.types import to_money

logger = structlog.get_logger(__name__)


def compute_totals(assets: Iterable) -> Dict[AssetClass, Decimal]:
    """
    Sum current_value by asset class over non-duplicate assets.

    Works on anything with asset_class, current_value and is_duplicate.
    """
    totals: Dict[AssetClass, Decimal] = {asset_class: Decimal("0.00") for asset_class in CLASS_TOTAL_COLUMNS}
    for asset in assets:
        if asset.is_duplicate:
            continue
        totals[AssetClass(asset.asset_class)] += to_money(asset.current_value)
    return totals


class SnapshotService:
    """Service for reading and maintaining snapshots of one database session."""

    def __init__(self, db: Session):
        self._db = db

    def recompute_totals(self, snapshot: AssetSnapshot) -> Dict[AssetClass, Decimal]:
        """
        Overwrite a snapshot's totals from every asset it currently holds.

        Pending inserts are flushed first so they are counted.
        """
        self._db.flush()
        assets = self._db.query(Asset).filter(Asset.snapshot_id == snapshot.id).all()
        totals = compute_totals(assets)
        snapshot.apply_totals(totals)
        logger.debug(
            "Snapshot totals recomputed",
            snapshot_id=str(snapshot.id),
            assets=len(assets),
            total_networth=str(snapshot.total_networth),
        )
        return totals

    def get_snapshot(self, user_id: uuid.UUID, snapshot_id: uuid.UUID) -> AssetSnapshot:
        """
        Get a snapshot owned by the user.

        Raises:
            SnapshotNotFoundError: If it does not exist or belongs to someone else.
        """
        snapshot = (
            self._db.query(AssetSnapshot)
            .filter(AssetSnapshot.id == snapshot_id, AssetSnapshot.user_id == user_id)
            .first()
        )
        if snapshot is None:
            raise SnapshotNotFoundError(str(snapshot_id))
        return snapshot

    def recent_snapshots(self, user_id: uuid.UUID, limit: int = 50) -> List[AssetSnapshot]:
        """Most recently created snapshots, newest first."""
        return (
            self._db.query(AssetSnapshot)
            .filter(AssetSnapshot.user_id == user_id)
            .order_by(AssetSnapshot.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_snapshots(
        self,
        user_id: uuid.UUID,
        limit: int = 50,
        source_type: Optional[SnapshotSource] = None,
    ) -> List[Tuple[AssetSnapshot, int]]:
        """List snapshots, newest snapshot date first, with their asset counts."""
        counts = (
            self._db.query(Asset.snapshot_id, func.count(Asset.id).label("asset_count"))
            .filter(Asset.user_id == user_id)
            .group_by(Asset.snapshot_id)
            .subquery()
        )
        query = (
            self._db.query(AssetSnapshot, func.coalesce(counts.c.asset_count, 0))
            .outerjoin(counts, counts.c.snapshot_id == AssetSnapshot.id)
            .filter(AssetSnapshot.user_id == user_id)
        )
        if source_type is not None:
            query = query.filter(AssetSnapshot.source_type == source_type)
        rows = query.order_by(AssetSnapshot.snapshot_date.desc(), AssetSnapshot.created_at.desc()).limit(limit).all()
        return [(snapshot, int(count)) for snapshot, count in rows]

    def delete_snapshot(self, user_id: uuid.UUID, snapshot_id: uuid.UUID) -> None:
        """Delete a snapshot and all of its assets."""
        snapshot = self.get_snapshot(user_id, snapshot_id)
        self._db.delete(snapshot)
        self._db.commit()
        logger.info("Snapshot deleted", snapshot_id=str(snapshot_id))
