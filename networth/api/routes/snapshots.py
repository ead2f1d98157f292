"""
Snapshot API routes.

List, inspect and delete committed net-worth snapshots.
"""
import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from networth.auth.dependencies import get_current_user_id
from networth.database import get_db
from networth.models.snapshot import Asset, SnapshotSource
from networth.schemas.assets import (
    AssetResponse,
    ErrorResponse,
    SnapshotDetailResponse,
    SnapshotListResponse,
    SnapshotResponse,
)
from networth.services.snapshot_service import SnapshotService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/assets/snapshots",
    response_model=SnapshotListResponse,
    responses={401: {"model": ErrorResponse, "description": "Missing X-User-ID"}},
    summary="List snapshots",
)
async def list_snapshots(
    limit: int = Query(50, ge=1, le=200, description="Maximum snapshots to return"),
    source_type: Optional[SnapshotSource] = Query(None, description="Filter by source"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> SnapshotListResponse:
    rows = SnapshotService(db).list_snapshots(user_id, limit=limit, source_type=source_type)
    snapshots = []
    for snapshot, asset_count in rows:
        response = SnapshotResponse.model_validate(snapshot)
        response.asset_count = asset_count
        snapshots.append(response)
    return SnapshotListResponse(snapshots=snapshots, count=len(snapshots))


@router.get(
    "/assets/snapshots/{snapshot_id}",
    response_model=SnapshotDetailResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Missing X-User-ID"},
        404: {"model": ErrorResponse, "description": "Snapshot not found"},
    },
    summary="Get a snapshot with its assets",
)
async def get_snapshot(
    snapshot_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> SnapshotDetailResponse:
    snapshot = SnapshotService(db).get_snapshot(user_id, snapshot_id)
    assets = (
        db.query(Asset)
        .filter(Asset.snapshot_id == snapshot.id)
        .order_by(Asset.current_value.desc())
        .all()
    )

    response = SnapshotResponse.model_validate(snapshot)
    response.asset_count = len(assets)
    return SnapshotDetailResponse(
        snapshot=response,
        assets=[AssetResponse.model_validate(a) for a in assets],
    )


@router.delete(
    "/assets/snapshots/{snapshot_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse, "description": "Missing X-User-ID"},
        404: {"model": ErrorResponse, "description": "Snapshot not found"},
    },
    summary="Delete a snapshot and its assets",
)
async def delete_snapshot(
    snapshot_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> None:
    SnapshotService(db).delete_snapshot(user_id, snapshot_id)
