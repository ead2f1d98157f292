"""
Pytest configuration and fixtures.
"""
import os

# The app's own engine must never touch a file during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["OPENAI_API_KEY"] = ""

import uuid
from typing import Generator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from networth.database import Base, get_db
from networth.main import app
from networth.models.snapshot import AssetClass, RiskLevel
from networth.services.classifiers import ClassifiedAsset
from networth.services.duplicate_detector import ReviewableAsset
from networth.services.extraction import RawAsset
from networth.services.taxonomy_service import Taxonomy, load_taxonomy, seed_default_taxonomy

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id: uuid.UUID) -> dict:
    return {"X-User-ID": str(user_id)}


@pytest.fixture
def taxonomy(db_session: Session) -> Taxonomy:
    """Seed the default taxonomy and load it."""
    seed_default_taxonomy(db_session)
    return load_taxonomy(db_session)


def _make_reviewable(
    name: str,
    value: float,
    asset_class: AssetClass = AssetClass.EQUITY,
    subclass: str = "direct_stocks",
    source_file: str = "statement.csv",
    is_duplicate: bool = False,
) -> ReviewableAsset:
    """Build a reviewable asset without running the pipeline."""
    classified = ClassifiedAsset(
        asset=RawAsset(name=name, current_value=value, source_file=source_file),
        asset_class=asset_class,
        asset_subclass=subclass,
        classification_confidence=0.9,
        risk_level=RiskLevel.VERY_HIGH,
        expected_return_percentage=15.0,
    )
    return ReviewableAsset(classified=classified, is_duplicate=is_duplicate, is_selected=not is_duplicate)


@pytest.fixture
def make_reviewable():
    return _make_reviewable


@pytest.fixture
def reviewable_assets() -> List[ReviewableAsset]:
    return [
        _make_reviewable("Reliance Industries", 250000.00),
        _make_reviewable("HDFC Bank Fixed Deposit", 100000.00, AssetClass.DEBT, "fd_bank"),
        _make_reviewable("Savings Account", 50000.50, AssetClass.CASH, "savings_account"),
        _make_reviewable("Reliance Industries Ltd", 250100.00, is_duplicate=True),
    ]


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global singleton instances before each test for proper isolation."""
    import networth.services.classifiers as classifiers_module
    import networth.services.statement_dates as statement_dates_module

    classifiers_module._categorizer_instance = None
    statement_dates_module._matcher_instance = None

    yield

    classifiers_module._categorizer_instance = None
    statement_dates_module._matcher_instance = None
