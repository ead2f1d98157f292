"""
Unit tests for the parse pipeline's reads of committed holdings.
"""
import uuid
from datetime import date

import pytest
from sqlalchemy import event

from networth.config import Settings
from networth.models.snapshot import Asset, AssetSnapshot
from networth.services.classifiers import KeywordCategorizer
from networth.services.finalize import CreateNewSnapshot, FinalizeCoordinator
from networth.services.parse_pipeline import ParsePipeline
from networth.services.review_store import ReviewStore, StatementMetadata


@pytest.fixture
def committed(db_session, user_id, reviewable_assets):
    session = ReviewStore(db_session).create(
        user_id,
        reviewable_assets,
        ["zerodha.csv"],
        StatementMetadata(statement_date=date(2024, 11, 30), suggested_snapshot_name="November 2024"),
    )
    result = FinalizeCoordinator(db_session).finalize(
        user_id, session.id, [a.id for a in session.assets], CreateNewSnapshot()
    )
    cash = db_session.query(Asset).filter_by(user_id=user_id, name="Savings Account").one()
    cash.source_file = None
    db_session.commit()
    db_session.expunge_all()
    return result


@pytest.fixture
def pipeline(db_session) -> ParsePipeline:
    return ParsePipeline(db_session, Settings().pipeline_config(), KeywordCategorizer())


class TestExistingAssets:
    """Tests for loading committed holdings for duplicate detection."""

    def test_snapshots_load_in_one_query(self, pipeline, db_session, user_id, committed):
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        engine = db_session.get_bind()
        event.listen(engine, "before_cursor_execute", record)
        try:
            existing = pipeline._existing_assets(user_id)
            sources = {e.name: e.source for e in existing}
        finally:
            event.remove(engine, "before_cursor_execute", record)

        snapshot = db_session.get(AssetSnapshot, committed.snapshot_id)
        assert len(statements) == 1
        assert len(existing) == 3
        assert {e.snapshot_id for e in existing} == {committed.snapshot_id}
        assert sources["Savings Account"] == snapshot.snapshot_name
        assert sources["Reliance Industries"] == "statement.csv"

    def test_other_users_holdings_are_excluded(self, pipeline, committed):
        assert pipeline._existing_assets(uuid.uuid4()) == []
