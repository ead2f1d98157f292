"""
Database configuration and session management.

Provides SQLAlchemy engine, session factory, and FastAPI dependency.
"""
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from networth.config import get_settings

settings = get_settings()

# SQLite doesn't support pool_size/max_overflow
if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session.

    Yields:
        Database session that is automatically closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables and seed the asset taxonomy when it is empty."""
    # Import models to ensure they're registered with Base
    from networth.models import review  # noqa: F401
    from networth.models import snapshot  # noqa: F401
    from networth.models import taxonomy  # noqa: F401
    from networth.models import upload_log  # noqa: F401
    from networth.services.taxonomy_service import seed_default_taxonomy

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_default_taxonomy(db)
    finally:
        db.close()
