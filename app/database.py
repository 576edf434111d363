"""
SQLAlchemy engine and session wiring.

Postgres in deployment; SQLite URLs are accepted for local runs and tests.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from app.config import DATABASE_URL


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        # Verify pooled connections before use
        return {"pool_pre_ping": True}

    options = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory database lives on a single shared connection
        options["poolclass"] = StaticPool
    return options


engine = create_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    """Declarative base shared by every table in app.models."""


def get_db():
    """
    Request-scoped session for FastAPI routes.

    Yields:
        Session: closed once the response is sent
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
