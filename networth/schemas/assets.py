"""
Pydantic schemas for asset upload, review and snapshot endpoints.

Defines request and response models for the statement pipeline.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from networth.models.review import MergeDecision, SessionStatus
from networth.models.snapshot import AssetClass, RiskLevel, SnapshotSource


class ErrorResponse(BaseModel):
    """Error body returned for every handled failure."""

    error: bool = Field(True, description="Always true")
    error_code: str = Field(..., description="Stable machine-readable code, e.g. NW-301")
    message: str = Field(..., description="Human-readable message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional context")


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------


class StatementDateResponse(BaseModel):
    """Detected statement date for one file."""

    statement_date: Optional[date] = Field(None, description="As-of date (YYYY-MM-DD)")
    confidence: str = Field(..., description="high, medium or low")
    source: str = Field(..., description="document_content, filename, user_input or upload_timestamp")
    original_text: Optional[str] = Field(None, description="Text the date was read from")


class FileResultResponse(BaseModel):
    """Extraction outcome for one uploaded file."""

    file_name: str = Field(..., description="Original filename")
    success: bool = Field(..., description="Whether the file was parsed")
    file_type: Optional[str] = Field(None, description="pdf, csv or xlsx")
    assets_found: int = Field(0, description="Assets read from the file")
    statement_date: Optional[StatementDateResponse] = Field(None, description="Detected statement date")
    error: Optional[str] = Field(None, description="Why the file failed")


class DuplicateMatchResponse(BaseModel):
    """A likely duplicate of a parsed asset."""

    existing_asset_id: Optional[str] = Field(None, description="Stored asset id, null for same-upload matches")
    existing_asset_name: str = Field(..., description="Name of the matched asset")
    existing_value: float = Field(..., description="Value of the matched asset")
    existing_source: str = Field(..., description="Where the matched asset came from")
    similarity_score: float = Field(..., ge=0, le=1, description="Composite similarity (0-1)")
    match_type: str = Field(..., description="exact, name_and_value or name")
    is_conflict: bool = Field(False, description="Match is against a holding of a prior snapshot")


class ReviewableAssetPayload(BaseModel):
    """A parsed, classified and de-duplicated asset."""

    name: str = Field(..., min_length=1, max_length=255, description="Asset name")
    asset_class: AssetClass = Field(..., description="Asset class")
    asset_subclass: str = Field(..., min_length=1, max_length=50, description="Taxonomy subclass code")
    current_value: float = Field(..., gt=0, description="Current value")
    quantity: Optional[float] = Field(None, description="Units held")
    purchase_price: Optional[float] = Field(None, description="Purchase price or cost")
    purchase_date: Optional[date] = Field(None, description="Purchase date")
    isin: Optional[str] = Field(None, max_length=12, description="ISIN")
    ticker_symbol: Optional[str] = Field(None, max_length=20, description="Ticker symbol")
    exchange: Optional[str] = Field(None, max_length=20, description="Exchange")
    notes: Optional[str] = Field(None, description="Free-form notes")
    source_file: str = Field("", description="File the asset came from")
    classification_confidence: float = Field(0.0, ge=0, le=1, description="Classifier confidence (0-1)")
    classification_reasoning: Optional[str] = Field(None, description="Classifier explanation")
    verified_via: Optional[str] = Field(None, max_length=20, description="Classifier stage that settled the pair")
    risk_level: Optional[RiskLevel] = Field(None, description="Risk tier from the taxonomy")
    expected_return_percentage: Optional[float] = Field(None, description="Expected annual return (%)")
    is_duplicate: bool = Field(False, description="Flagged as a likely duplicate")
    duplicate_matches: List[DuplicateMatchResponse] = Field(default_factory=list, description="Ranked matches")
    is_selected: bool = Field(True, description="Selected for commit")
    is_edited: bool = Field(False, description="Edited by the user")


class MatchedSnapshotResponse(BaseModel):
    """Existing snapshot a statement period matched."""

    id: UUID
    snapshot_name: str
    statement_date: Optional[date] = None


class SnapshotMatchResponse(BaseModel):
    """Snapshot match for a statement period."""

    match_type: str = Field(..., description="exact, near or none")
    suggested_action: MergeDecision = Field(..., description="merge or create_new")
    days_difference: Optional[int] = Field(None, description="Days to the closest dated snapshot")
    matched_snapshot: Optional[MatchedSnapshotResponse] = Field(None, description="Closest snapshot within range")


class StatementPeriodGroupResponse(BaseModel):
    """Files that represent one statement period."""

    statement_date: Optional[date] = Field(None, description="Period as-of date")
    statement_date_confidence: str = Field(..., description="Weakest confidence in the group")
    statement_date_source: str = Field(..., description="Where the date came from")
    files: List[str] = Field(..., description="Files in this period")
    suggested_snapshot_name: str = Field(..., description="Suggested snapshot name")
    match_result: Optional[SnapshotMatchResponse] = Field(None, description="Match against existing snapshots")


class ParseSummary(BaseModel):
    """Totals for a parse request."""

    total_files: int
    successful_files: int
    failed_files: int
    total_assets: int
    total_value: float
    duplicates_found: int
    classification_failures: int
    processing_time_ms: int


class ParseResponse(BaseModel):
    """Response model for asset parsing."""

    success: bool = Field(..., description="At least one file produced assets")
    results: List[FileResultResponse] = Field(..., description="Per-file outcomes")
    errors: List[Dict[str, Any]] = Field(default_factory=list, description="Per-file and per-asset errors")
    assets: List[ReviewableAssetPayload] = Field(..., description="Merged reviewable assets")
    statement_period_groups: List[StatementPeriodGroupResponse] = Field(..., description="Statement periods")
    summary: ParseSummary


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


class CreateReviewSessionRequest(BaseModel):
    """Request to stage parsed assets for review."""

    assets: List[ReviewableAssetPayload] = Field(..., description="Assets to stage")
    file_names: List[str] = Field(default_factory=list, description="Files the assets came from")
    statement_date: Optional[date] = Field(None, description="Statement period date")
    statement_date_confidence: Optional[str] = Field(None, description="high, medium or low")
    statement_date_source: Optional[str] = Field(None, description="Where the date came from")
    suggested_snapshot_name: Optional[str] = Field(None, description="Suggested snapshot name")
    matched_snapshot_id: Optional[UUID] = Field(None, description="Matched existing snapshot")
    merge_decision: Optional[MergeDecision] = Field(None, description="Suggested merge decision")
    processing_time_ms: Optional[int] = Field(None, description="Parse time in milliseconds")


class CreateReviewSessionResponse(BaseModel):
    """Response after staging assets."""

    session_id: str
    total_assets: int
    duplicates_found: int
    expires_at: datetime


class TempAssetResponse(BaseModel):
    """A staged asset."""

    id: UUID
    name: str
    asset_class: AssetClass
    asset_subclass: str
    current_value: float
    quantity: Optional[float] = None
    purchase_price: Optional[float] = None
    purchase_date: Optional[date] = None
    isin: Optional[str] = None
    ticker_symbol: Optional[str] = None
    exchange: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    expected_return_percentage: Optional[float] = None
    classification_confidence: Optional[float] = None
    verified_via: Optional[str] = None
    source_file: Optional[str] = None
    notes: Optional[str] = None
    is_duplicate: bool
    duplicate_matches: List[DuplicateMatchResponse] = Field(default_factory=list)
    is_selected: bool
    is_edited: bool

    class Config:
        from_attributes = True


class ReviewSessionResponse(BaseModel):
    """A review session with its staged assets."""

    id: str
    status: SessionStatus
    file_names: List[str]
    total_assets: int
    total_value: float
    duplicates_found: int
    statement_date: Optional[date] = None
    statement_date_confidence: Optional[str] = None
    statement_date_source: Optional[str] = None
    suggested_snapshot_name: Optional[str] = None
    matched_snapshot_id: Optional[UUID] = None
    merge_decision: Optional[MergeDecision] = None
    created_at: datetime
    expires_at: datetime
    assets: List[TempAssetResponse]

    class Config:
        from_attributes = True


class AssetEditRequest(BaseModel):
    """Partial update of one staged asset; only fields sent are applied."""

    asset_id: UUID = Field(..., description="Staged asset id")
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    asset_class: Optional[AssetClass] = None
    asset_subclass: Optional[str] = Field(None, min_length=1, max_length=50)
    current_value: Optional[float] = Field(None, gt=0)
    quantity: Optional[float] = None
    purchase_price: Optional[float] = None
    purchase_date: Optional[date] = None
    notes: Optional[str] = None
    is_selected: Optional[bool] = None
    is_duplicate: Optional[bool] = None


class UpdateReviewSessionRequest(BaseModel):
    """Batch of edits to staged assets."""

    updates: List[AssetEditRequest] = Field(..., min_length=1, description="Edits to apply")


class UpdateReviewSessionResponse(BaseModel):
    updated_count: int
    message: str


class FinalizeRequest(BaseModel):
    """Commit selected staged assets to a snapshot."""

    selected_asset_ids: List[UUID] = Field(..., description="Staged assets to commit")
    merge_decision: MergeDecision = Field(MergeDecision.CREATE_NEW, description="merge or create_new")
    target_snapshot_id: Optional[UUID] = Field(None, description="Snapshot to merge into")
    snapshot_name: Optional[str] = Field(None, max_length=255, description="Name for a new snapshot")
    statement_date: Optional[date] = Field(None, description="Statement date for a new snapshot")

    @model_validator(mode="after")
    def check_merge_target(self) -> "FinalizeRequest":
        if self.merge_decision == MergeDecision.MERGE and self.target_snapshot_id is None:
            raise ValueError("target_snapshot_id is required when merging")
        return self


class FinalizeResponse(BaseModel):
    """Outcome of finalize."""

    success: bool = True
    snapshot_id: UUID
    snapshot_name: str
    assets_saved: int
    is_new_snapshot: bool
    message: str


class CancelResponse(BaseModel):
    session_id: str
    status: SessionStatus


# ---------------------------------------------------------------------------
# Snapshots and taxonomy
# ---------------------------------------------------------------------------


class AssetResponse(BaseModel):
    """A committed holding."""

    id: UUID
    name: str
    asset_class: AssetClass
    asset_subclass: str
    current_value: float
    quantity: Optional[float] = None
    purchase_price: Optional[float] = None
    purchase_date: Optional[date] = None
    isin: Optional[str] = None
    ticker_symbol: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    expected_return_percentage: Optional[float] = None
    source_file: Optional[str] = None
    is_duplicate: bool
    is_manually_verified: bool

    class Config:
        from_attributes = True


class SnapshotResponse(BaseModel):
    """Snapshot with totals."""

    id: UUID
    snapshot_name: str
    snapshot_date: date
    statement_date: Optional[date] = None
    total_networth: float
    equity_total: float
    debt_total: float
    cash_total: float
    real_estate_total: float
    other_assets_total: float
    source_type: SnapshotSource
    source_files: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: datetime
    asset_count: int = 0

    class Config:
        from_attributes = True


class SnapshotListResponse(BaseModel):
    snapshots: List[SnapshotResponse]
    count: int


class SnapshotDetailResponse(BaseModel):
    snapshot: SnapshotResponse
    assets: List[AssetResponse]


class SubclassResponse(BaseModel):
    """One taxonomy subclass."""

    subclass_code: str
    display_name: str
    risk_level: RiskLevel
    expected_return: float
    description: Optional[str] = None


class SubclassGroupResponse(BaseModel):
    asset_class: AssetClass
    subclasses: List[SubclassResponse]


class SubclassListResponse(BaseModel):
    classes: List[SubclassGroupResponse]
    total: int
