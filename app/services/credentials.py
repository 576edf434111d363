"""
Gmail OAuth credential provider.

Hands the scan pipeline a usable access token, refreshing it with the stored
refresh token when it has expired. Refresh failures surface as
TokenRefreshError, which aborts the scan before any message is fetched.
"""

import logging
from datetime import timedelta
from typing import Protocol

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from sqlalchemy.orm import Session

from app import config
from app.models import Profile
from app.services import db_service

logger = logging.getLogger(__name__)

# Refresh slightly early so the token doesn't expire mid-scan
EXPIRY_MARGIN = timedelta(seconds=60)


class TokenRefreshError(Exception):
    """The stored Gmail credentials could not be refreshed."""


class CredentialProvider(Protocol):
    def get_access_token(self) -> str:
        """Return a valid access token or raise TokenRefreshError."""
        ...


class GmailCredentialProvider:
    """CredentialProvider backed by the tokens stored on a Profile."""

    def __init__(self, db: Session, profile: Profile):
        self.db = db
        self.profile = profile

    def _is_expired(self) -> bool:
        expiry = self.profile.gmail_token_expiry
        if expiry is None:
            return False
        return expiry - EXPIRY_MARGIN <= db_service.utcnow()

    def get_access_token(self) -> str:
        profile = self.profile

        if profile.gmail_access_token and not self._is_expired():
            return profile.gmail_access_token

        if not profile.gmail_refresh_token:
            raise TokenRefreshError("No refresh token stored")

        credentials = Credentials(
            token=None,
            refresh_token=profile.gmail_refresh_token,
            token_uri=config.GOOGLE_TOKEN_URI,
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
        )

        try:
            credentials.refresh(Request())
        except (RefreshError, TransportError) as e:
            logger.warning(f"Gmail token refresh failed for user {profile.id}: {e}")
            raise TokenRefreshError(str(e)) from e

        db_service.save_gmail_tokens(
            self.db,
            profile,
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expiry=credentials.expiry,
        )
        logger.info(f"Refreshed Gmail access token for user {profile.id}")
        return credentials.token
