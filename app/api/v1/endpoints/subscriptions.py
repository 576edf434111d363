"""
Dashboard API endpoints for subscriptions.

List View: name, logo, amount/cycle, next renewal, status, category
Review queue: pending_review detections awaiting approve / dismiss
Summary: monthly and annual spend
"""

from fastapi import APIRouter, Depends, Query, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel
from datetime import date
from typing import Optional

from app.api.deps import get_current_user_id
from app.database import get_db
from app.models import SubscriptionStatus
from app.services import db_service
from app.services.billing import annual_amount, monthly_amount, total_monthly_spend, SPEND_STATUSES


router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


# ============ Response Schemas ============

class CategoryResponse(BaseModel):
    id: int
    name: str
    color: Optional[str]
    icon: Optional[str]

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    """Subscription card data, including detection metadata."""
    id: int
    name: str
    amount: float
    currency: str
    billing_cycle: str
    next_billing_date: Optional[date]
    status: str
    category: Optional[CategoryResponse]
    logo_url: Optional[str]
    website_url: Optional[str]

    # Detection metadata
    auto_detected: bool
    source: str
    email_sender: Optional[str]
    confidence_score: Optional[int]
    detection_reason: Optional[str]

    class Config:
        from_attributes = True


class SpendSummaryResponse(BaseModel):
    """Spend across active and trial subscriptions."""
    currency_totals: dict[str, float]
    monthly_total: float
    annual_total: float
    active_count: int
    pending_count: int


# ============ LIST ENDPOINTS ============

@router.get("", response_model=list[SubscriptionResponse])
def list_subscriptions(
    status: Optional[SubscriptionStatus] = Query(None, description="Filter by status"),
    skip: int = Query(0, ge=0, description="Offset for pagination"),
    limit: int = Query(100, ge=1, le=500, description="Max results"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    List the acting user's subscriptions.

    **Example:**
    ```
    GET /api/v1/subscriptions?status=active
    ```
    """
    return db_service.get_subscriptions(
        db,
        user_id,
        status=status.value if status else None,
        skip=skip,
        limit=limit,
    )


@router.get("/pending", response_model=list[SubscriptionResponse])
def list_pending(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Detections waiting for the user to approve or dismiss."""
    return db_service.get_subscriptions(db, user_id, status=SubscriptionStatus.PENDING_REVIEW.value)


@router.get("/summary", response_model=SpendSummaryResponse)
def spend_summary(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Monthly and annual spend of active and trial subscriptions.

    `currency_totals` holds the monthly total per currency; `monthly_total`
    and `annual_total` add amounts across currencies without conversion.
    """
    subscriptions = db_service.get_subscriptions(db, user_id, limit=10000)
    spending = [sub for sub in subscriptions if sub.status in SPEND_STATUSES]

    currency_totals: dict[str, float] = {}
    for sub in spending:
        monthly = monthly_amount(sub.amount, sub.billing_cycle)
        currency_totals[sub.currency] = round(currency_totals.get(sub.currency, 0.0) + float(monthly), 2)

    monthly_total = total_monthly_spend(spending)
    annual_total = sum((annual_amount(sub.amount, sub.billing_cycle) for sub in spending), 0)

    return SpendSummaryResponse(
        currency_totals=currency_totals,
        monthly_total=float(monthly_total),
        annual_total=round(float(annual_total), 2),
        active_count=sum(1 for sub in subscriptions if sub.status == SubscriptionStatus.ACTIVE.value),
        pending_count=sum(1 for sub in subscriptions if sub.status == SubscriptionStatus.PENDING_REVIEW.value),
    )


# ============ REVIEW ============

def _get_pending_or_error(db: Session, user_id: str, subscription_id: int):
    subscription = db_service.get_subscription(db, user_id, subscription_id)

    if not subscription:
        raise HTTPException(
            status_code=404,
            detail=f"Subscription with ID {subscription_id} not found"
        )

    if subscription.status != SubscriptionStatus.PENDING_REVIEW.value:
        raise HTTPException(
            status_code=409,
            detail=f"Subscription {subscription_id} is {subscription.status}, not pending_review"
        )

    return subscription


@router.post("/{subscription_id}/approve", response_model=SubscriptionResponse)
def approve_subscription(
    subscription_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Accept a pending detection as an active subscription.

    **Returns:**
    - 200: the updated subscription
    - 404: not found for this user
    - 409: not pending review
    """
    subscription = _get_pending_or_error(db, user_id, subscription_id)
    return db_service.set_subscription_status(db, subscription, SubscriptionStatus.ACTIVE.value)


@router.post("/{subscription_id}/dismiss", response_model=SubscriptionResponse)
def dismiss_subscription(
    subscription_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Reject a pending detection.

    The row is kept as `dismissed` so its thread is never detected again.
    """
    subscription = _get_pending_or_error(db, user_id, subscription_id)
    return db_service.set_subscription_status(db, subscription, SubscriptionStatus.DISMISSED.value)


# ============ SINGLE SUBSCRIPTION ============

@router.get("/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get a single subscription by ID."""
    subscription = db_service.get_subscription(db, user_id, subscription_id)

    if not subscription:
        raise HTTPException(
            status_code=404,
            detail=f"Subscription with ID {subscription_id} not found"
        )

    return subscription
