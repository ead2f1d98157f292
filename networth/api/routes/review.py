"""
Review API routes.

Stage parsed assets, edit them and commit them to a snapshot.
"""
import uuid
from typing import List

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from networth.auth.dependencies import get_current_user_id
from networth.config import get_settings
from networth.database import get_db
from networth.exceptions import ValidationError
from networth.models.review import MergeDecision
from networth.schemas.assets import (
    CancelResponse,
    CreateReviewSessionRequest,
    CreateReviewSessionResponse,
    ErrorResponse,
    FinalizeRequest,
    FinalizeResponse,
    ReviewableAssetPayload,
    ReviewSessionResponse,
    UpdateReviewSessionRequest,
    UpdateReviewSessionResponse,
)
from networth.services.classifiers import ClassifiedAsset
from networth.services.duplicate_detector import DuplicateMatch, DuplicateMatchType, ReviewableAsset
from networth.services.extraction import RawAsset
from networth.services.finalize import CreateNewSnapshot, FinalizeCoordinator, MergeIntoSnapshot
from networth.services.review_store import AssetEdit, ReviewStore, StatementMetadata
from networth.services.taxonomy_service import Taxonomy, load_taxonomy

logger = structlog.get_logger(__name__)

router = APIRouter()

SESSION_ERRORS = {
    401: {"model": ErrorResponse, "description": "Missing X-User-ID"},
    404: {"model": ErrorResponse, "description": "Session not found"},
    409: {"model": ErrorResponse, "description": "Session already completed or cancelled"},
    410: {"model": ErrorResponse, "description": "Session expired"},
}


def get_review_store(db: Session = Depends(get_db)) -> ReviewStore:
    return ReviewStore(db, ttl_hours=get_settings().review_session_ttl_hours)


def from_payload(payload: ReviewableAssetPayload, taxonomy: Taxonomy, index: int) -> ReviewableAsset:
    """
    Rebuild a reviewable asset from its wire form.

    Risk level and expected return are taken from the taxonomy when the client
    omits them.

    Raises:
        ValidationError: If the class/subclass pair is not in the taxonomy.
    """
    entry = taxonomy.lookup(payload.asset_class, payload.asset_subclass)
    if entry is None:
        raise ValidationError(
            f"Unknown subclass {payload.asset_subclass} for class {payload.asset_class.value}",
            errors=[{"index": index, "name": payload.name, "asset_subclass": payload.asset_subclass}],
        )

    raw = RawAsset(
        name=payload.name,
        current_value=payload.current_value,
        source_file=payload.source_file,
        quantity=payload.quantity,
        purchase_price=payload.purchase_price,
        purchase_date=payload.purchase_date,
        isin=payload.isin,
        ticker_symbol=payload.ticker_symbol,
        exchange=payload.exchange,
        notes=payload.notes,
    )
    classified = ClassifiedAsset(
        asset=raw,
        asset_class=entry.asset_class,
        asset_subclass=entry.subclass_code,
        classification_confidence=payload.classification_confidence,
        risk_level=payload.risk_level or entry.risk_level,
        expected_return_percentage=(
            payload.expected_return_percentage
            if payload.expected_return_percentage is not None
            else entry.expected_return
        ),
        reasoning=payload.classification_reasoning,
        verified_via=payload.verified_via,
    )
    matches = [
        DuplicateMatch(**{**m.model_dump(), "match_type": DuplicateMatchType(m.match_type)})
        for m in payload.duplicate_matches
    ]
    return ReviewableAsset(
        classified=classified,
        is_duplicate=payload.is_duplicate,
        duplicate_matches=matches,
        is_selected=payload.is_selected,
        is_edited=payload.is_edited,
    )


@router.post(
    "/assets/review",
    response_model=CreateReviewSessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "No assets or unknown subclass"},
        401: {"model": ErrorResponse, "description": "Missing X-User-ID"},
    },
    summary="Stage parsed assets for review",
)
async def create_review_session(
    request: CreateReviewSessionRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: ReviewStore = Depends(get_review_store),
) -> CreateReviewSessionResponse:
    """Create a review session holding the parsed assets."""
    if not request.assets:
        raise ValidationError("No assets provided")

    taxonomy = load_taxonomy(db)
    assets = [from_payload(payload, taxonomy, i) for i, payload in enumerate(request.assets)]
    metadata = StatementMetadata(
        statement_date=request.statement_date,
        statement_date_confidence=request.statement_date_confidence,
        statement_date_source=request.statement_date_source,
        suggested_snapshot_name=request.suggested_snapshot_name,
        matched_snapshot_id=request.matched_snapshot_id,
        merge_decision=request.merge_decision,
    )
    session = store.create(user_id, assets, request.file_names, metadata, request.processing_time_ms)

    return CreateReviewSessionResponse(
        session_id=session.id,
        total_assets=session.total_assets,
        duplicates_found=session.duplicates_found,
        expires_at=session.expires_at,
    )


@router.get(
    "/assets/review/{session_id}",
    response_model=ReviewSessionResponse,
    responses=SESSION_ERRORS,
    summary="Get a review session",
)
async def get_review_session(
    session_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: ReviewStore = Depends(get_review_store),
) -> ReviewSessionResponse:
    session = store.get(user_id, session_id)
    return ReviewSessionResponse.model_validate(session)


@router.patch(
    "/assets/review/{session_id}",
    response_model=UpdateReviewSessionResponse,
    responses={**SESSION_ERRORS, 400: {"model": ErrorResponse, "description": "Unknown subclass"}},
    summary="Edit staged assets",
    description="Apply partial edits. Only fields present in each edit are changed; "
                "edits for assets not in the session are skipped.",
)
async def update_review_session(
    session_id: str,
    request: UpdateReviewSessionRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: ReviewStore = Depends(get_review_store),
) -> UpdateReviewSessionResponse:
    edits: List[AssetEdit] = [
        AssetEdit(
            asset_id=edit.asset_id,
            changes=edit.model_dump(exclude_unset=True, exclude={"asset_id"}),
        )
        for edit in request.updates
    ]
    taxonomy = load_taxonomy(db) if any({"asset_class", "asset_subclass"} & e.changes.keys() for e in edits) else None
    updated = store.update(user_id, session_id, edits, taxonomy=taxonomy)

    return UpdateReviewSessionResponse(
        updated_count=updated,
        message=f"Updated {updated} assets",
    )


@router.post(
    "/assets/review/{session_id}/finalize",
    response_model=FinalizeResponse,
    responses={
        **SESSION_ERRORS,
        400: {"model": ErrorResponse, "description": "No assets selected"},
        500: {"model": ErrorResponse, "description": "Save failed and was rolled back"},
    },
    summary="Commit staged assets to a snapshot",
    description="Create a new snapshot or merge into an existing one. A session can be finalized once.",
)
async def finalize_review_session(
    session_id: str,
    request: FinalizeRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> FinalizeResponse:
    if request.merge_decision == MergeDecision.MERGE:
        directive = MergeIntoSnapshot(snapshot_id=request.target_snapshot_id)
    else:
        directive = CreateNewSnapshot(snapshot_name=request.snapshot_name, statement_date=request.statement_date)

    result = FinalizeCoordinator(db).finalize(user_id, session_id, request.selected_asset_ids, directive)

    return FinalizeResponse(
        snapshot_id=result.snapshot_id,
        snapshot_name=result.snapshot_name,
        assets_saved=result.assets_saved,
        is_new_snapshot=result.is_new_snapshot,
        message=result.message,
    )


@router.post(
    "/assets/review/{session_id}/cancel",
    response_model=CancelResponse,
    responses=SESSION_ERRORS,
    summary="Cancel a review session",
)
async def cancel_review_session(
    session_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: ReviewStore = Depends(get_review_store),
) -> CancelResponse:
    session = store.cancel(user_id, session_id)
    return CancelResponse(session_id=session.id, status=session.status)
