"""
Pytest configuration and fixtures for all tests.
"""

import os
from datetime import date, datetime, timedelta, timezone

import pytest

# Set up test environment variables before importing any app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RENEWAL_DATE_POLICY", "strict")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import Profile
from app.services.credentials import TokenRefreshError
from app.services.detection_models import MessageRef, RawEmail
from app.services.pattern_catalog import PatternCatalog, default_catalog

# Fixed scan date so extracted renewal dates are never "stale"
TODAY = date(2026, 3, 1)
USER_ID = "user-1"


class FakeMailSource:
    """In-memory MailSource returning emails in the order given."""

    def __init__(self, emails, failing_ids=()):
        self.emails = list(emails)
        self.by_id = {email.message_id: email for email in self.emails}
        self.failing_ids = set(failing_ids)
        self.fetched = []
        self.queries = []

    def list_candidate_messages(self, query, max_results):
        self.queries.append((query, max_results))
        return [
            MessageRef(id=email.message_id, thread_id=email.thread_id)
            for email in self.emails
        ][:max_results]

    def get_message(self, message_id):
        self.fetched.append(message_id)
        if message_id in self.failing_ids:
            raise RuntimeError(f"fetch failed for {message_id}")
        return self.by_id[message_id]


class FakeCredentialProvider:
    def __init__(self, token="access-token", fail=False):
        self.token = token
        self.fail = fail
        self.calls = 0

    def get_access_token(self):
        self.calls += 1
        if self.fail:
            raise TokenRefreshError("invalid_grant")
        return self.token


def build_email(
    message_id,
    subject,
    sender,
    body,
    thread_id=None,
    received_at=None,
):
    return RawEmail(
        subject=subject,
        sender=sender,
        body_excerpt=body,
        thread_id=thread_id or f"thread-{message_id}",
        message_id=message_id,
        received_at=received_at,
    )


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def catalog() -> PatternCatalog:
    return default_catalog()


@pytest.fixture
def make_email():
    """Factory for RawEmail with sensible thread ids."""
    return build_email


@pytest.fixture
def mail_source_cls():
    return FakeMailSource


@pytest.fixture
def credential_provider_cls():
    return FakeCredentialProvider


@pytest.fixture
def netflix_email():
    """Netflix receipt: sender + subject keyword + amount + renewal date."""
    return build_email(
        "m-netflix",
        "Your Netflix payment receipt",
        "Netflix <billing@netflix.com>",
        "Hi Sam,\nWe received $15.99 for your membership.\n"
        "Your next billing date: March 15, 2026.",
    )


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def connected_profile(db):
    """A user with Gmail connected and a still-valid access token."""
    profile = Profile(
        id=USER_ID,
        email="sam@example.com",
        gmail_connected=True,
        gmail_access_token="access-token",
        gmail_refresh_token="refresh-token",
        gmail_token_expiry=datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1),
    )
    db.add(profile)
    db.commit()
    return profile
