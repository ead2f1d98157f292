"""
Finalize coordinator.

Commits a reviewed session into a permanent snapshot, either a new one or an
existing one the user owns. Snapshot writes, asset inserts, the totals update
and closing the session share one database transaction; any failure rolls all
of it back before the error surfaces.
"""
import uuid
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from networth.exceptions import (
    AlreadyFinalizedError,
    ConflictError,
    DatabaseError,
    NetworthError,
    NoAssetsSelectedError,
    ReviewSessionExpiredError,
    ReviewSessionNotFoundError,
    ValidationError,
)
from networth.models.review import SessionStatus, TempAsset, TempUploadSession, check_transition
from networth.models.snapshot import Asset, AssetSnapshot, SnapshotSource
from networth.models.types import utcnow
from networth.services.snapshot_service import SnapshotService, compute_totals

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CreateNewSnapshot:
    """Commit into a freshly allocated snapshot."""

    snapshot_name: Optional[str] = None
    statement_date: Optional[date] = None


@dataclass(frozen=True)
class MergeIntoSnapshot:
    """Commit into an existing snapshot owned by the caller."""

    snapshot_id: uuid.UUID


MergeDirective = Union[CreateNewSnapshot, MergeIntoSnapshot]


@dataclass
class FinalizeResult:
    """Outcome of a successful finalize."""

    snapshot_id: uuid.UUID
    snapshot_name: str
    assets_saved: int
    is_new_snapshot: bool

    @property
    def message(self) -> str:
        if self.is_new_snapshot:
            return f"Created new snapshot with {self.assets_saved} assets"
        return f"Merged {self.assets_saved} assets into existing snapshot"


def to_permanent_asset(temp: TempAsset, snapshot_id: uuid.UUID) -> Asset:
    """Convert a staged asset into a holding of a snapshot."""
    return Asset(
        id=uuid.uuid4(),
        user_id=temp.user_id,
        snapshot_id=snapshot_id,
        name=temp.name,
        asset_class=temp.asset_class,
        asset_subclass=temp.asset_subclass,
        current_value=temp.current_value,
        quantity=temp.quantity,
        purchase_price=temp.purchase_price,
        purchase_date=temp.purchase_date,
        isin=temp.isin,
        ticker_symbol=temp.ticker_symbol,
        exchange=temp.exchange,
        risk_level=temp.risk_level,
        expected_return_percentage=temp.expected_return_percentage,
        ai_confidence_score=temp.classification_confidence,
        verified_via=temp.verified_via,
        source_file=temp.source_file,
        notes=temp.notes,
        is_duplicate=temp.is_duplicate,
        is_manually_verified=temp.is_edited,
    )


class FinalizeCoordinator:
    """
    Service that turns a review session into snapshot holdings.

    Finalize succeeds at most once per session: the session is closed with a
    conditional update on in_review, so a concurrent second call finds no row
    to update and fails.
    """

    def __init__(self, db: Session):
        self._db = db
        self._snapshots = SnapshotService(db)

    def _load_session(self, user_id: uuid.UUID, session_id: str) -> TempUploadSession:
        session = (
            self._db.query(TempUploadSession)
            .filter(TempUploadSession.id == session_id, TempUploadSession.user_id == user_id)
            .first()
        )
        if session is None:
            raise ReviewSessionNotFoundError(session_id)

        status = SessionStatus(session.status)
        if status == SessionStatus.COMPLETED:
            raise AlreadyFinalizedError(session_id)
        if status == SessionStatus.CANCELLED:
            raise ConflictError("Session has been cancelled", details={"session_id": session_id})
        if session.is_expired():
            raise ReviewSessionExpiredError(session_id, session.expires_at)
        return session

    def _create_snapshot(
        self,
        session: TempUploadSession,
        directive: CreateNewSnapshot,
        temp_assets: Sequence[TempAsset],
    ) -> AssetSnapshot:
        statement_date = directive.statement_date or session.statement_date
        snapshot = AssetSnapshot(
            id=uuid.uuid4(),
            user_id=session.user_id,
            snapshot_date=statement_date or utcnow().date(),
            statement_date=statement_date,
            statement_date_confidence="high" if directive.statement_date else session.statement_date_confidence,
            statement_date_source="user_input" if directive.statement_date else session.statement_date_source,
            snapshot_name=directive.snapshot_name or session.suggested_snapshot_name or f"{utcnow():%B %Y}",
            source_type=SnapshotSource.UPLOAD,
            source_files=list(session.file_names or []),
            notes=f"Created from upload session {session.id}",
        )
        snapshot.apply_totals(compute_totals(temp_assets))
        self._db.add(snapshot)
        self._db.flush()
        return snapshot

    def _merge_target(self, session: TempUploadSession, directive: MergeIntoSnapshot) -> AssetSnapshot:
        snapshot = self._snapshots.get_snapshot(session.user_id, directive.snapshot_id)
        merged_files = list(snapshot.source_files or [])
        merged_files.extend(f for f in session.file_names or [] if f not in merged_files)
        snapshot.source_files = merged_files
        return snapshot

    def _close_session(self, session_id: str) -> None:
        check_transition(SessionStatus.IN_REVIEW, SessionStatus.COMPLETED)
        closed = (
            self._db.query(TempUploadSession)
            .filter(
                TempUploadSession.id == session_id,
                TempUploadSession.status == SessionStatus.IN_REVIEW,
            )
            .update(
                {"status": SessionStatus.COMPLETED, "updated_at": utcnow()},
                synchronize_session=False,
            )
        )
        if closed != 1:
            raise AlreadyFinalizedError(session_id)

    def finalize(
        self,
        user_id: uuid.UUID,
        session_id: str,
        selected_asset_ids: Sequence[uuid.UUID],
        directive: MergeDirective,
    ) -> FinalizeResult:
        """
        Commit selected staged assets to a snapshot.

        Args:
            user_id: Caller.
            session_id: Review session to commit.
            selected_asset_ids: Staged assets to keep; others are discarded.
            directive: CreateNewSnapshot or MergeIntoSnapshot.

        Returns:
            FinalizeResult describing the snapshot written.

        Raises:
            NoAssetsSelectedError: If nothing was selected.
            ReviewSessionNotFoundError: If the session is missing or not owned.
            AlreadyFinalizedError: If the session was already finalized.
            ConflictError: If the session was cancelled.
            ReviewSessionExpiredError: If the session is past expiry.
            SnapshotNotFoundError: If the merge target is missing or not owned.
        """
        if not selected_asset_ids:
            raise NoAssetsSelectedError()

        session = self._load_session(user_id, session_id)
        selected = set(selected_asset_ids)
        temp_assets: List[TempAsset] = [a for a in session.assets if a.id in selected]
        if not temp_assets:
            raise ValidationError(
                "None of the selected assets belong to this session",
                details={"session_id": session_id},
            )

        is_new = isinstance(directive, CreateNewSnapshot)
        try:
            if is_new:
                snapshot = self._create_snapshot(session, directive, temp_assets)
            else:
                snapshot = self._merge_target(session, directive)

            self._db.add_all([to_permanent_asset(temp, snapshot.id) for temp in temp_assets])
            self._db.flush()

            if not is_new:
                self._snapshots.recompute_totals(snapshot)

            self._close_session(session_id)
            session.assets = []
            self._db.commit()
        except NetworthError:
            self._db.rollback()
            logger.warning("Finalize rolled back", session_id=session_id, merge=not is_new)
            raise
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error("Finalize failed, rolled back", session_id=session_id, error=str(e))
            raise DatabaseError("Failed to save assets") from e

        result = FinalizeResult(
            snapshot_id=snapshot.id,
            snapshot_name=snapshot.snapshot_name,
            assets_saved=len(temp_assets),
            is_new_snapshot=is_new,
        )
        logger.info(
            "Review session finalized",
            session_id=session_id,
            snapshot_id=str(result.snapshot_id),
            assets_saved=result.assets_saved,
            is_new_snapshot=is_new,
            total_networth=str(snapshot.total_networth),
        )
        return result
