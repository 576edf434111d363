"""
Shared FastAPI dependencies.

Authentication happens in front of this service; the gateway forwards the
authenticated user id in the X-User-Id header.
"""

from fastapi import Header, HTTPException

from app.services.credentials import GmailCredentialProvider
from app.services.gmail_service import GmailMailSource
from app.services.pattern_catalog import PatternCatalog, default_catalog


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Acting user from the X-User-Id header."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_catalog() -> PatternCatalog:
    return default_catalog()


def get_credential_provider_factory():
    """Builds a CredentialProvider from (db, profile)."""
    return GmailCredentialProvider


def get_mail_source_factory():
    """Builds a MailSource from an access token."""
    return GmailMailSource
