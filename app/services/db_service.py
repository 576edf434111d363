"""
Database service layer for the subscription scanner.

This module provides the persistence operations the scan pipeline, the
reminder job and the API routers use:
- Existing subscription / category snapshots for dedup
- Subscription, notification and category inserts
- Scan log lifecycle (running -> success | failed) and the per-user scan guard
- Dashboard queries and pending-review approval
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import (
    Profile,
    Category,
    Subscription,
    SubscriptionStatus,
    Notification,
    GmailScanLog,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _save(db: Session, obj, commit: bool):
    """Add `obj`; commit now, or only flush so the caller commits the batch."""
    db.add(obj)
    if commit:
        db.commit()
        db.refresh(obj)
    else:
        db.flush()
    return obj


# ============ PROFILE OPERATIONS ============

def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.id == user_id).first()


def get_or_create_profile(db: Session, user_id: str, email: str = None) -> Profile:
    """Return the user's profile, creating an empty one on first use."""
    profile = get_profile(db, user_id)
    if profile:
        return profile

    profile = Profile(id=user_id, email=email)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def save_gmail_tokens(
    db: Session,
    profile: Profile,
    access_token: str,
    refresh_token: Optional[str],
    expiry: Optional[datetime],
) -> Profile:
    """
    Store OAuth tokens after connect or refresh.

    Google only returns a refresh token on the first consent, so an empty
    value keeps the stored one.
    """
    profile.gmail_access_token = access_token
    if refresh_token:
        profile.gmail_refresh_token = refresh_token
    profile.gmail_token_expiry = expiry
    profile.gmail_connected = True
    db.commit()
    db.refresh(profile)
    return profile


def disconnect_gmail(db: Session, profile: Profile) -> Profile:
    profile.gmail_connected = False
    profile.gmail_access_token = None
    profile.gmail_refresh_token = None
    profile.gmail_token_expiry = None
    db.commit()
    db.refresh(profile)
    return profile


def get_connected_profiles(db: Session, user_id: str = None) -> List[Profile]:
    """Profiles with Gmail connected, for the scan-all job."""
    query = db.query(Profile).filter(
        Profile.gmail_connected.is_(True),
        Profile.gmail_access_token.isnot(None),
    )
    if user_id:
        query = query.filter(Profile.id == user_id)
    return query.order_by(Profile.id).all()


def mark_last_scanned(db: Session, user_id: str, when: datetime = None) -> None:
    profile = get_profile(db, user_id)
    if profile is None:
        return
    profile.gmail_last_scanned = when or utcnow()
    db.commit()


# ============ EXISTING STATE SNAPSHOT ============

@dataclass
class ExistingState:
    """
    What the scanner knows about a user before a scan.

    All name keys are lowercased. The sets are mutated by the scan that
    loaded them and discarded afterwards.
    """
    thread_ids: Set[str] = field(default_factory=set)
    active_names: Set[str] = field(default_factory=set)  # active or pending_review
    service_names: Set[str] = field(default_factory=set)  # any status
    categories: Dict[str, int] = field(default_factory=dict)  # lower(name) -> id


def load_existing_state(db: Session, user_id: str) -> ExistingState:
    """
    Read stored thread ids, service names and categories once per scan.

    Args:
        db: Database session
        user_id: Scanned user

    Returns:
        ExistingState snapshot
    """
    state = ExistingState()

    rows = db.query(
        Subscription.email_thread_id,
        Subscription.name,
        Subscription.status,
    ).filter(Subscription.user_id == user_id).all()

    for thread_id, name, status in rows:
        if thread_id:
            state.thread_ids.add(thread_id)
        if not name:
            continue
        key = name.lower()
        state.service_names.add(key)
        if status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PENDING_REVIEW.value):
            state.active_names.add(key)

    for category in db.query(Category).filter(Category.user_id == user_id).all():
        state.categories[category.name.lower()] = category.id

    return state


# ============ CATEGORY OPERATIONS ============

def create_category(db: Session, user_id: str, name: str, color: str, commit: bool = True) -> Category:
    category = Category(user_id=user_id, name=name, color=color, is_default=False)
    return _save(db, category, commit)


# ============ SUBSCRIPTION OPERATIONS ============

def insert_subscription(
    db: Session,
    user_id: str,
    name: str,
    amount: Decimal,
    currency: str,
    billing_cycle: str,
    next_billing_date: Optional[date],
    status: str,
    category_id: Optional[int] = None,
    logo_url: str = None,
    website_url: str = None,
    email_thread_id: str = None,
    email_sender: str = None,
    confidence_score: int = None,
    detection_reason: str = None,
    auto_detected: bool = True,
    source: str = "gmail",
    commit: bool = True,
) -> Subscription:
    """Insert one subscription row and return it with its id."""
    subscription = Subscription(
        user_id=user_id,
        name=name,
        amount=amount,
        currency=currency,
        billing_cycle=billing_cycle,
        next_billing_date=next_billing_date,
        start_date=date.today(),
        status=status,
        category_id=category_id,
        logo_url=logo_url,
        website_url=website_url,
        email_thread_id=email_thread_id,
        email_sender=email_sender,
        confidence_score=confidence_score,
        detection_reason=detection_reason,
        auto_detected=auto_detected,
        source=source,
    )
    return _save(db, subscription, commit)


def get_subscriptions(
    db: Session,
    user_id: str,
    status: str = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Subscription]:
    """
    Get a user's subscriptions with optional status filter.

    Ordered by next renewal (soonest first, undated last), then name.
    """
    query = db.query(Subscription).filter(Subscription.user_id == user_id)

    if status:
        query = query.filter(Subscription.status == status)

    query = query.order_by(
        Subscription.next_billing_date.is_(None),
        Subscription.next_billing_date,
        Subscription.name,
    )
    return query.offset(skip).limit(limit).all()


def get_subscription(db: Session, user_id: str, subscription_id: int) -> Optional[Subscription]:
    """Get a single subscription owned by the user."""
    return db.query(Subscription).filter(
        Subscription.id == subscription_id,
        Subscription.user_id == user_id,
    ).first()


def set_subscription_status(db: Session, subscription: Subscription, status: str) -> Subscription:
    subscription.status = status
    db.commit()
    db.refresh(subscription)
    return subscription


def get_renewing_subscriptions(
    db: Session,
    user_id: str,
    start: date,
    end: date,
    statuses: tuple = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIAL.value),
) -> List[Subscription]:
    """Subscriptions whose next_billing_date lies in [start, end]."""
    return db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.status.in_(statuses),
        Subscription.next_billing_date.isnot(None),
        Subscription.next_billing_date >= start,
        Subscription.next_billing_date <= end,
    ).order_by(Subscription.next_billing_date).all()


# ============ NOTIFICATION OPERATIONS ============

def insert_notification(
    db: Session,
    user_id: str,
    type: str,
    title: str,
    message: str,
    subscription_id: int = None,
    commit: bool = True,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        subscription_id=subscription_id,
        type=type,
        title=title,
        message=message,
        read=False,
        created_at=utcnow(),
    )
    return _save(db, notification, commit)


def notification_sent_since(
    db: Session,
    subscription_id: int,
    type: str,
    day: date,
) -> bool:
    """True if a notification of this type exists for the subscription from `day` on."""
    start = datetime.combine(day, datetime.min.time())
    count = db.query(func.count(Notification.id)).filter(
        Notification.subscription_id == subscription_id,
        Notification.type == type,
        Notification.created_at >= start,
    ).scalar()
    return count > 0


# ============ SCAN LOG OPERATIONS ============

def get_running_scan(
    db: Session,
    user_id: str,
    stale_after: timedelta,
    now: datetime = None,
) -> Optional[GmailScanLog]:
    """
    Return the user's in-flight scan, if any.

    `running` logs older than `stale_after` belong to a crashed process;
    they are marked failed and ignored.
    """
    now = now or utcnow()
    running = db.query(GmailScanLog).filter(
        GmailScanLog.user_id == user_id,
        GmailScanLog.status == "running",
    ).order_by(GmailScanLog.started_at.desc()).all()

    active = None
    for log in running:
        if log.started_at and now - log.started_at > stale_after:
            log.status = "failed"
            log.error_message = "Scan abandoned"
            log.completed_at = now
        elif active is None:
            active = log

    db.commit()
    return active


def start_scan_log(db: Session, user_id: str) -> Optional[GmailScanLog]:
    """
    Claim the user's scan slot with a new `running` log.

    The partial unique index on running logs makes the claim atomic: when
    another request got there first the insert fails and None is returned.
    """
    log = GmailScanLog(user_id=user_id, status="running", started_at=utcnow())
    db.add(log)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return None
    db.refresh(log)
    return log


def finish_scan_log(
    db: Session,
    log: GmailScanLog,
    emails_scanned: int,
    subscriptions_found: int,
) -> GmailScanLog:
    log.status = "success"
    log.emails_scanned = emails_scanned
    log.subscriptions_found = subscriptions_found
    log.completed_at = utcnow()
    db.commit()
    db.refresh(log)
    return log


def fail_scan_log(db: Session, log: GmailScanLog, error_message: str) -> GmailScanLog:
    log.status = "failed"
    log.error_message = error_message
    log.completed_at = utcnow()
    db.commit()
    db.refresh(log)
    return log


def get_scan_logs(db: Session, user_id: str, limit: int = 20) -> List[GmailScanLog]:
    return db.query(GmailScanLog).filter(
        GmailScanLog.user_id == user_id
    ).order_by(GmailScanLog.started_at.desc(), GmailScanLog.id.desc()).limit(limit).all()
