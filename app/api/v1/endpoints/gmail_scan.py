"""
Gmail scan endpoints.

- POST /gmail/scan: scan the acting user's mailbox now
- POST /gmail/scan-all: scheduler entry point, scans every connected user
- GET /gmail/scan-logs: recent scan runs for the acting user
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import (
    get_current_user_id,
    get_catalog,
    get_credential_provider_factory,
    get_mail_source_factory,
)
from app.database import get_db
from app.services import db_service
from app.services.credentials import TokenRefreshError
from app.services.pattern_catalog import PatternCatalog
from app.services.scan_pipeline import (
    ScanInProgressError,
    TOKEN_REFRESH_FAILED,
    run_gmail_scan,
    scan_all_users,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gmail", tags=["Gmail Scan"])


# ============ Response Schemas ============

class ScanResponse(BaseModel):
    """Aggregate counts for one scan run."""
    success: bool
    scan_log_id: int
    emails_scanned: int
    subscriptions_found: int


class ScanAllRequest(BaseModel):
    """Restrict scan-all to a single user."""
    user_id: Optional[str] = None


class ScanAllResult(BaseModel):
    user_id: str
    success: bool
    emails_scanned: Optional[int] = None
    subscriptions_found: Optional[int] = None
    error: Optional[str] = None


class ScanAllResponse(BaseModel):
    success: bool
    results: list[ScanAllResult]


class ScanLogResponse(BaseModel):
    id: int
    status: str
    emails_scanned: int
    subscriptions_found: int
    error_message: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


# ============ SCAN ============

@router.post("/scan", response_model=ScanResponse)
def scan_gmail(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    catalog: PatternCatalog = Depends(get_catalog),
    credential_provider_factory=Depends(get_credential_provider_factory),
    mail_source_factory=Depends(get_mail_source_factory),
):
    """
    Scan the acting user's Gmail for subscriptions.

    **Returns:**
    - 200: emails scanned and subscriptions found
    - 400: Gmail not connected, or token refresh failed
    - 409: a scan for this user is already running
    """
    profile = db_service.get_profile(db, user_id)
    if not profile or not profile.gmail_connected or not profile.gmail_access_token:
        raise HTTPException(status_code=400, detail="Gmail not connected")

    try:
        summary = run_gmail_scan(
            db,
            user_id,
            credential_provider_factory(db, profile),
            mail_source_factory,
            catalog=catalog,
        )
    except ScanInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TokenRefreshError:
        raise HTTPException(status_code=400, detail=TOKEN_REFRESH_FAILED)
    except Exception as e:
        logger.exception(f"Gmail scan error for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Scan failed")

    return summary.to_dict()


@router.post("/scan-all", response_model=ScanAllResponse)
def scan_all(
    request: ScanAllRequest = None,
    db: Session = Depends(get_db),
    catalog: PatternCatalog = Depends(get_catalog),
    credential_provider_factory=Depends(get_credential_provider_factory),
    mail_source_factory=Depends(get_mail_source_factory),
):
    """
    Scan every Gmail-connected user (scheduler entry point).

    Per-user failures are reported in `results` and recorded in that user's
    scan log; they don't fail the request.
    """
    user_id = request.user_id if request else None
    results = scan_all_users(
        db,
        credential_provider_factory,
        mail_source_factory,
        user_id=user_id,
        catalog=catalog,
    )
    return ScanAllResponse(success=True, results=results)


@router.get("/scan-logs", response_model=list[ScanLogResponse])
def list_scan_logs(
    limit: int = Query(20, ge=1, le=100, description="Max results"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Most recent scan runs for the acting user, newest first."""
    return db_service.get_scan_logs(db, user_id, limit=limit)
