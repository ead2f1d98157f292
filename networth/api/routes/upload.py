"""
Upload API routes.

Provides the endpoint that parses uploaded statements into reviewable assets.
"""
import uuid
from datetime import date
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from networth.auth.dependencies import get_current_user_id
from networth.config import get_settings
from networth.database import get_db
from networth.schemas.assets import (
    DuplicateMatchResponse,
    ErrorResponse,
    FileResultResponse,
    ParseResponse,
    ParseSummary,
    ReviewableAssetPayload,
    StatementPeriodGroupResponse,
)
from networth.services.classifiers import get_categorizer
from networth.services.duplicate_detector import ReviewableAsset
from networth.services.extraction import UploadedDocument
from networth.services.parse_pipeline import ParseOutcome, ParsePipeline

logger = structlog.get_logger(__name__)

router = APIRouter()


def to_payload(item: ReviewableAsset) -> ReviewableAssetPayload:
    """Convert a reviewable asset into its wire form."""
    classified = item.classified
    raw = classified.asset
    return ReviewableAssetPayload(
        name=raw.name,
        asset_class=classified.asset_class,
        asset_subclass=classified.asset_subclass,
        current_value=raw.current_value,
        quantity=raw.quantity,
        purchase_price=raw.purchase_price,
        purchase_date=raw.purchase_date,
        isin=raw.isin,
        ticker_symbol=raw.ticker_symbol,
        exchange=raw.exchange,
        notes=raw.notes,
        source_file=raw.source_file,
        classification_confidence=classified.classification_confidence,
        classification_reasoning=classified.reasoning,
        verified_via=classified.verified_via,
        risk_level=classified.risk_level,
        expected_return_percentage=classified.expected_return_percentage,
        is_duplicate=item.is_duplicate,
        duplicate_matches=[DuplicateMatchResponse(**m.to_dict()) for m in item.duplicate_matches],
        is_selected=item.is_selected,
        is_edited=item.is_edited,
    )


def build_parse_response(outcome: ParseOutcome) -> ParseResponse:
    """Shape a pipeline outcome for the client."""
    errors = outcome.file_errors + [
        {
            "file_name": failure.source_file,
            "asset_name": failure.name,
            "error": failure.reason,
        }
        for failure in outcome.classification_failures
    ]
    successful = sum(1 for r in outcome.file_results if r.success)

    return ParseResponse(
        success=bool(outcome.assets),
        results=[FileResultResponse(**r.to_dict()) for r in outcome.file_results],
        errors=errors,
        assets=[to_payload(item) for item in outcome.assets],
        statement_period_groups=[StatementPeriodGroupResponse(**g.to_dict()) for g in outcome.period_groups],
        summary=ParseSummary(
            total_files=len(outcome.file_results),
            successful_files=successful,
            failed_files=len(outcome.file_results) - successful,
            total_assets=len(outcome.assets),
            total_value=round(outcome.total_value, 2),
            duplicates_found=outcome.duplicate_stats.duplicates,
            classification_failures=len(outcome.classification_failures),
            processing_time_ms=outcome.processing_time_ms,
        ),
    )


@router.post(
    "/assets/parse",
    response_model=ParseResponse,
    responses={
        400: {"model": ErrorResponse, "description": "No files, too many files"},
        401: {"model": ErrorResponse, "description": "Missing X-User-ID"},
        422: {"model": ErrorResponse, "description": "No file could be parsed"},
        502: {"model": ErrorResponse, "description": "No asset could be classified"},
    },
    summary="Parse statements into reviewable assets",
    description="Upload up to 10 PDF, CSV or XLSX statements. Assets are extracted, classified, "
                "checked for duplicates and grouped by statement period. Nothing is saved to a snapshot.",
)
async def parse_statements(
    files: List[UploadFile] = File(..., description="Statement files"),
    statement_date: Optional[date] = Form(None, description="Statement date for every file (YYYY-MM-DD)"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ParseResponse:
    """
    Parse uploaded statements.

    Args:
        files: Uploaded statement files.
        statement_date: Optional user-supplied statement date.
        user_id: Caller.
        db: Database session.

    Returns:
        ParseResponse with per-file results, assets and statement periods.
    """
    documents = [
        UploadedDocument(
            filename=upload.filename or "unknown",
            content=await upload.read(),
            content_type=upload.content_type,
        )
        for upload in files
    ]
    logger.info("Parse requested", files=[d.filename for d in documents], user_statement_date=statement_date)

    settings = get_settings()
    pipeline = ParsePipeline(db, settings.pipeline_config(), get_categorizer(settings))
    outcome = await pipeline.run(user_id, documents, user_statement_date=statement_date)
    return build_parse_response(outcome)
