"""
Google OAuth endpoints for Gmail API access.

Flow:
1. GET /auth/gmail/connect -> Redirects to Google OAuth consent screen
2. Google redirects back to /auth/gmail/callback with code (state = user id)
3. /auth/gmail/callback exchanges code for tokens and saves them on the profile
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, JSONResponse
from google_auth_oauthlib.flow import Flow
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app import config
from app.api.deps import get_current_user_id
from app.database import get_db
from app.services import db_service
from app.services.gmail_service import SCOPES

logger = logging.getLogger(__name__)


# Response Models
class GmailStatusResponse(BaseModel):
    """Gmail connection status for the acting user."""
    connected: bool
    has_refresh_token: bool
    token_expiry: str | None = None
    last_scanned: str | None = None


class AuthSuccessResponse(BaseModel):
    """Successful authentication response."""
    success: bool
    message: str
    has_refresh_token: bool = False


router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_redirect_uri(request: Request) -> str:
    """Configured callback URL, or one derived from the request."""
    if config.GMAIL_REDIRECT_URI:
        return config.GMAIL_REDIRECT_URI
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}/api/v1/auth/gmail/callback"


def get_oauth_flow(redirect_uri: str) -> Flow:
    """Create OAuth flow from the configured client id/secret."""
    if not config.GOOGLE_CLIENT_ID or not config.GOOGLE_CLIENT_SECRET:
        raise HTTPException(
            status_code=500,
            detail="Google OAuth is not configured. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET."
        )

    client_config = {
        "web": {
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": config.GOOGLE_TOKEN_URI,
        }
    }
    return Flow.from_client_config(client_config, scopes=SCOPES, redirect_uri=redirect_uri)


@router.get("/gmail/status", response_model=GmailStatusResponse)
def gmail_status(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> GmailStatusResponse:
    """Check whether the acting user has connected Gmail."""
    profile = db_service.get_profile(db, user_id)

    if not profile:
        return GmailStatusResponse(connected=False, has_refresh_token=False)

    return GmailStatusResponse(
        connected=bool(profile.gmail_connected),
        has_refresh_token=bool(profile.gmail_refresh_token),
        token_expiry=profile.gmail_token_expiry.isoformat() if profile.gmail_token_expiry else None,
        last_scanned=profile.gmail_last_scanned.isoformat() if profile.gmail_last_scanned else None,
    )


@router.get("/gmail/connect")
def gmail_connect(request: Request, user_id: str = Depends(get_current_user_id)):
    """
    Start OAuth flow - redirects to Google consent screen.

    The user id travels in `state` so the callback knows whose tokens to save.
    """
    flow = get_oauth_flow(get_redirect_uri(request))

    auth_url, _ = flow.authorization_url(
        access_type="offline",  # Get refresh token
        include_granted_scopes="true",
        prompt="consent",  # Force consent to get refresh token
        state=user_id,
    )

    return RedirectResponse(url=auth_url)


@router.get("/gmail/callback")
def gmail_callback(
    request: Request,
    code: str = None,
    state: str = None,
    error: str = None,
    db: Session = Depends(get_db),
):
    """
    OAuth callback - exchanges authorization code for tokens.

    Google redirects here after user grants/denies permission.
    """
    if error:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": error,
                "message": "Authentication was denied or failed."
            }
        )

    if not code or not state:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "missing_params",
                "message": "No authorization code or state received."
            }
        )

    flow = get_oauth_flow(get_redirect_uri(request))

    try:
        # Exchange code for tokens
        flow.fetch_token(code=code)
    except Exception as e:
        logger.error(f"Gmail token exchange failed for user {state}: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "token_exchange_failed",
                "message": "Failed to exchange authorization code for tokens."
            }
        )

    credentials = flow.credentials
    profile = db_service.get_or_create_profile(db, state)
    db_service.save_gmail_tokens(
        db,
        profile,
        access_token=credentials.token,
        refresh_token=credentials.refresh_token,
        expiry=credentials.expiry,
    )
    logger.info(f"Gmail connected for user {state}")

    return AuthSuccessResponse(
        success=True,
        message="Gmail access is now enabled.",
        has_refresh_token=bool(credentials.refresh_token),
    )


@router.delete("/gmail")
def gmail_disconnect(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Forget the stored Gmail tokens.

    Already-detected subscriptions are kept.
    """
    profile = db_service.get_profile(db, user_id)

    if not profile or not profile.gmail_connected:
        return {"success": True, "message": "Gmail was not connected."}

    db_service.disconnect_gmail(db, profile)
    return {"success": True, "message": "Gmail disconnected."}
