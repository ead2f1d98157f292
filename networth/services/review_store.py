"""
Review store service.

Stages reviewable assets in a temporary upload session the user can inspect
and edit before committing. Every lookup is scoped by user id.
"""
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from networth.exceptions import (
    ConflictError,
    DatabaseError,
    ReviewSessionExpiredError,
    ReviewSessionNotFoundError,
    ValidationError,
)
from networth.models.review import MergeDecision, SessionStatus, TempAsset, TempUploadSession
from networth.models.snapshot import AssetClass
from networth.models.types import to_money, utcnow
from networth.services.duplicate_detector import ReviewableAsset
from networth.services.taxonomy_service import Taxonomy

logger = structlog.get_logger(__name__)

# Edits to these fields mark an asset as manually edited
IDENTITY_FIELDS = frozenset({"name", "current_value", "asset_class", "asset_subclass"})

EDITABLE_FIELDS = IDENTITY_FIELDS | frozenset({
    "quantity",
    "purchase_price",
    "purchase_date",
    "notes",
    "is_selected",
    "is_duplicate",
})

# Backed by NOT NULL columns; an edit may change them but never clear them
REQUIRED_FIELDS = frozenset({
    "name",
    "current_value",
    "asset_class",
    "asset_subclass",
    "is_selected",
    "is_duplicate",
})


@dataclass
class StatementMetadata:
    """Statement period details carried from parse into the session."""

    statement_date: Optional[date] = None
    statement_date_confidence: Optional[str] = None
    statement_date_source: Optional[str] = None
    suggested_snapshot_name: Optional[str] = None
    matched_snapshot_id: Optional[uuid.UUID] = None
    merge_decision: Optional[MergeDecision] = None


@dataclass
class AssetEdit:
    """Partial update of one staged asset."""

    asset_id: uuid.UUID
    changes: Dict[str, Any] = field(default_factory=dict)


class ReviewStore:
    """
    Service for temp upload sessions.

    Sessions move in_review -> completed | cancelled and expire after a
    fixed time to live.
    """

    def __init__(self, db: Session, ttl_hours: int = 24):
        self._db = db
        self._ttl = timedelta(hours=ttl_hours)

    def _load_owned(self, user_id: uuid.UUID, session_id: str) -> TempUploadSession:
        session = (
            self._db.query(TempUploadSession)
            .filter(TempUploadSession.id == session_id, TempUploadSession.user_id == user_id)
            .first()
        )
        if session is None:
            raise ReviewSessionNotFoundError(session_id)
        return session

    @staticmethod
    def _ensure_not_expired(session: TempUploadSession) -> None:
        if session.is_expired():
            raise ReviewSessionExpiredError(session.id, session.expires_at)

    @staticmethod
    def _ensure_open(session: TempUploadSession) -> None:
        status = SessionStatus(session.status)
        if status.is_terminal:
            raise ConflictError(
                f"Cannot modify session with status {status.value}",
                details={"session_id": session.id, "status": status.value},
            )

    def _refresh_summary(self, session: TempUploadSession, assets: Sequence[TempAsset]) -> None:
        session.total_assets = len(assets)
        session.total_value = sum((to_money(a.current_value) for a in assets), Decimal("0.00"))
        session.duplicates_found = sum(1 for a in assets if a.is_duplicate)

    def create(
        self,
        user_id: uuid.UUID,
        assets: Sequence[ReviewableAsset],
        file_names: Sequence[str],
        metadata: Optional[StatementMetadata] = None,
        processing_time_ms: Optional[int] = None,
    ) -> TempUploadSession:
        """
        Stage assets in a new review session.

        Raises:
            ValidationError: If no assets are given.
        """
        if not assets:
            raise ValidationError("No assets provided")

        self.purge_expired(user_id)

        metadata = metadata or StatementMetadata()
        now = utcnow()
        session = TempUploadSession(
            user_id=user_id,
            file_names=list(file_names),
            processing_time_ms=processing_time_ms,
            statement_date=metadata.statement_date,
            statement_date_confidence=metadata.statement_date_confidence,
            statement_date_source=metadata.statement_date_source,
            suggested_snapshot_name=metadata.suggested_snapshot_name,
            matched_snapshot_id=metadata.matched_snapshot_id,
            merge_decision=metadata.merge_decision,
            status=SessionStatus.IN_REVIEW,
            created_at=now,
            updated_at=now,
            expires_at=now + self._ttl,
        )

        temp_assets = []
        for position, item in enumerate(assets):
            classified = item.classified
            raw = classified.asset
            temp_assets.append(TempAsset(
                user_id=user_id,
                position=position,
                name=raw.name,
                asset_class=classified.asset_class,
                asset_subclass=classified.asset_subclass,
                current_value=to_money(raw.current_value),
                quantity=raw.quantity,
                purchase_price=to_money(raw.purchase_price) if raw.purchase_price is not None else None,
                purchase_date=raw.purchase_date,
                isin=raw.isin,
                ticker_symbol=raw.ticker_symbol,
                exchange=raw.exchange,
                risk_level=classified.risk_level,
                expected_return_percentage=classified.expected_return_percentage,
                classification_confidence=classified.classification_confidence,
                classification_reasoning=classified.reasoning,
                verified_via=classified.verified_via,
                source_file=raw.source_file,
                notes=raw.notes,
                is_duplicate=item.is_duplicate,
                duplicate_matches=[m.to_dict() for m in item.duplicate_matches],
                is_selected=item.is_selected,
                is_edited=item.is_edited,
            ))

        session.assets = temp_assets
        self._refresh_summary(session, temp_assets)
        self._db.add(session)
        self._db.commit()

        logger.info(
            "Review session created",
            session_id=session.id,
            assets=session.total_assets,
            duplicates=session.duplicates_found,
            expires_at=session.expires_at.isoformat(),
        )
        return session

    def get(self, user_id: uuid.UUID, session_id: str) -> TempUploadSession:
        """
        Get a session with its assets.

        Raises:
            ReviewSessionNotFoundError: If missing or owned by someone else.
            ReviewSessionExpiredError: If past expiry, whatever its status.
        """
        session = self._load_owned(user_id, session_id)
        self._ensure_not_expired(session)
        return session

    @staticmethod
    def _check_required(asset: TempAsset, changes: Dict[str, Any]) -> None:
        cleared = sorted(f for f in REQUIRED_FIELDS & changes.keys() if changes[f] is None)
        if cleared:
            raise ValidationError(
                f"Fields cannot be null: {', '.join(cleared)}",
                errors=[{"asset_id": str(asset.id), "field": f} for f in cleared],
            )

    def _check_classification(
        self,
        asset: TempAsset,
        changes: Dict[str, Any],
        taxonomy: Optional[Taxonomy],
    ) -> None:
        if taxonomy is None or not {"asset_class", "asset_subclass"} & changes.keys():
            return
        asset_class = AssetClass(changes.get("asset_class") or asset.asset_class)
        subclass = changes.get("asset_subclass") or asset.asset_subclass
        entry = taxonomy.lookup(asset_class, subclass)
        if entry is None:
            raise ValidationError(
                f"Unknown subclass {subclass} for class {asset_class.value}",
                errors=[{"asset_id": str(asset.id), "asset_class": asset_class.value, "asset_subclass": subclass}],
            )
        asset.risk_level = entry.risk_level
        asset.expected_return_percentage = entry.expected_return

    def update(
        self,
        user_id: uuid.UUID,
        session_id: str,
        edits: Sequence[AssetEdit],
        taxonomy: Optional[Taxonomy] = None,
    ) -> int:
        """
        Apply partial edits to staged assets.

        Edits naming an unknown asset are skipped. Unknown fields are ignored.

        Returns:
            Number of assets updated.

        Raises:
            ConflictError: If the session is completed or cancelled.
            ReviewSessionExpiredError: If the session is past expiry.
            ValidationError: If an edit clears a required field or leaves a
                class/subclass pair the taxonomy does not know.
            DatabaseError: If the changes cannot be saved.
        """
        session = self._load_owned(user_id, session_id)
        self._ensure_open(session)
        self._ensure_not_expired(session)

        assets = {a.id: a for a in session.assets}
        updated = 0
        for edit in edits:
            asset = assets.get(edit.asset_id)
            if asset is None:
                logger.debug("Skipping edit for unknown asset", session_id=session_id, asset_id=str(edit.asset_id))
                continue

            changes = {k: v for k, v in edit.changes.items() if k in EDITABLE_FIELDS}
            if not changes:
                continue

            try:
                self._check_required(asset, changes)
                self._check_classification(asset, changes, taxonomy)
            except ValidationError:
                self._db.rollback()
                raise

            for field_name, value in changes.items():
                if field_name in ("current_value", "purchase_price") and value is not None:
                    value = to_money(value)
                elif field_name == "asset_class" and value is not None:
                    value = AssetClass(value)
                setattr(asset, field_name, value)

            if IDENTITY_FIELDS & changes.keys():
                asset.is_edited = True
            asset.updated_at = utcnow()
            updated += 1

        self._refresh_summary(session, list(assets.values()))
        session.status = SessionStatus.IN_REVIEW
        session.updated_at = utcnow()
        try:
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error("Review session update failed, rolled back", session_id=session_id, error=str(e))
            raise DatabaseError("Failed to update review session") from e

        logger.info("Review session updated", session_id=session_id, updated=updated, requested=len(edits))
        return updated

    def cancel(self, user_id: uuid.UUID, session_id: str) -> TempUploadSession:
        """
        Cancel a session and discard its staged assets.

        Raises:
            InvalidStatusTransitionError: If the session is already terminal.
        """
        session = self._load_owned(user_id, session_id)
        session.transition_to(SessionStatus.CANCELLED)
        session.assets = []
        session.total_assets = 0
        session.updated_at = utcnow()
        self._db.commit()

        logger.info("Review session cancelled", session_id=session_id)
        return session

    def purge_expired(self, user_id: Optional[uuid.UUID] = None) -> int:
        """
        Delete expired sessions and their staged assets.

        Returns:
            Number of sessions deleted.
        """
        query = self._db.query(TempUploadSession).filter(TempUploadSession.expires_at < utcnow())
        if user_id is not None:
            query = query.filter(TempUploadSession.user_id == user_id)

        expired = query.all()
        for session in expired:
            self._db.delete(session)
        if expired:
            self._db.commit()
            logger.info("Expired review sessions purged", count=len(expired))
        return len(expired)
