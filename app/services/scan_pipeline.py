"""
Gmail Subscription Scan Pipeline.

Orchestrates one scan run for one user:
1. Scan guard + scan log (running)
2. Access token (refresh failure aborts the run)
3. List candidate messages (newest first)
4. Per-message analysis (detection + status change), thread-level dedup
5. Newest-first check
6. Per-service resolution (most recent signal wins)
7. Emission planning (suggestion, one-time, renewal date, name-level dedup)
8. Persist subscriptions, categories and notifications
9. Scan log (success | failed) and last-scanned timestamp
"""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy.orm import Session

from app import config
from app.models import SubscriptionStatus, NotificationType
from app.services import db_service
from app.services.billing import add_billing_cycle
from app.services.credentials import CredentialProvider, TokenRefreshError
from app.services.detection_models import (
    ConfidenceSuggestion,
    DetectionResult,
    EmailAnalysis,
    MessageRef,
)
from app.services.gmail_service import MailSource
from app.services.pattern_catalog import PatternCatalog, default_catalog, category_color
from app.services.signal_extractors import build_gmail_query
from app.services.subscription_detector import detect_subscription, detect_status_change

logger = logging.getLogger(__name__)

TOKEN_REFRESH_FAILED = "Token refresh failed"

RENEWAL_POLICY_STRICT = "strict"
RENEWAL_POLICY_LENIENT = "lenient"


class ScanInProgressError(Exception):
    """Another scan for the same user is still running."""


@dataclass
class ScanSummary:
    """Aggregate result returned to the caller."""
    scan_log_id: int
    emails_scanned: int
    subscriptions_found: int

    def to_dict(self) -> dict:
        return {
            "success": True,
            "scan_log_id": self.scan_log_id,
            "emails_scanned": self.emails_scanned,
            "subscriptions_found": self.subscriptions_found,
        }


@dataclass
class PlannedSubscription:
    """A detection accepted for insert, with its final status."""
    detection: DetectionResult
    status: str


# ============ ANALYSIS ============

def analyse_messages(
    messages: Sequence[MessageRef],
    mail_source: MailSource,
    catalog: PatternCatalog,
    existing_thread_ids: Set[str],
    service_names: Set[str],
    today: Optional[date] = None,
) -> List[EmailAnalysis]:
    """
    Fetch and analyse messages in the given (newest-first) order.

    One email per thread: a thread already stored or already fetched in this
    pass is skipped. A message that fails to fetch or parse is logged and
    skipped; its thread stays eligible for a later message.

    Args:
        messages: Candidate ids from the mail source
        mail_source: Mailbox to fetch from
        catalog: Known billing senders
        existing_thread_ids: Thread ids already stored for the user
        service_names: Lowercased names of all stored subscriptions
        today: Scan date

    Returns:
        EmailAnalysis list in processing order
    """
    processed_thread_ids: Set[str] = set()
    analyses: List[EmailAnalysis] = []

    for ref in messages:
        if ref.thread_id in processed_thread_ids or ref.thread_id in existing_thread_ids:
            continue

        try:
            email = mail_source.get_message(ref.id)
            processed_thread_ids.add(ref.thread_id)
            if not email.thread_id:
                email.thread_id = ref.thread_id

            entry = catalog.lookup(email.sender)
            has_prior_history = (
                entry is not None and entry.canonical_name.lower() in service_names
            )

            analyses.append(EmailAnalysis(
                thread_id=email.thread_id,
                detection=detect_subscription(email, catalog, has_prior_history, today),
                status_change=detect_status_change(email, catalog),
                received_at=email.received_at,
            ))
        except Exception as e:
            logger.warning(f"Skipping message {ref.id}: {e}")

    return analyses


def ensure_newest_first(analyses: List[EmailAnalysis]) -> List[EmailAnalysis]:
    """
    Verify mailbox order before resolution.

    Resolution relies on the first signal per service being the most recent.
    If the timestamps say otherwise, re-sort newest first (stable).
    Analyses without a timestamp can't be checked and are left as is.
    """
    if any(analysis.received_at is None for analysis in analyses):
        return analyses

    in_order = all(
        earlier.received_at >= later.received_at
        for earlier, later in zip(analyses, analyses[1:])
    )
    if in_order:
        return analyses

    logger.warning("Mail source returned messages out of order; re-sorting newest first")
    return sorted(analyses, key=lambda analysis: analysis.received_at, reverse=True)


# ============ RESOLUTION ============

def resolve_services(
    analyses: Sequence[EmailAnalysis],
) -> Tuple[Dict[str, str], Dict[str, DetectionResult]]:
    """
    Build per-service status and detection maps.

    The first status change and the first detection seen for a service win.
    A detection seeds the status map with "active" when nothing is there yet.

    Returns:
        (status by canonical name, detection by canonical name)
    """
    statuses: Dict[str, str] = {}
    detections: Dict[str, DetectionResult] = {}

    for analysis in analyses:
        change = analysis.status_change
        if change and change.canonical_name not in statuses:
            statuses[change.canonical_name] = change.new_status

        detection = analysis.detection
        if detection:
            if detection.canonical_name not in detections:
                detections[detection.canonical_name] = detection
            statuses.setdefault(detection.canonical_name, SubscriptionStatus.ACTIVE.value)

    return statuses, detections


def _record_status(detection: DetectionResult, resolved_status: str) -> str:
    if resolved_status != SubscriptionStatus.ACTIVE.value:
        return resolved_status
    if detection.confidence_suggestion == ConfidenceSuggestion.AUTO:
        return SubscriptionStatus.ACTIVE.value
    return SubscriptionStatus.PENDING_REVIEW.value


def plan_emissions(
    detections: Dict[str, DetectionResult],
    statuses: Dict[str, str],
    active_names: Set[str],
    today: Optional[date] = None,
    renewal_policy: str = RENEWAL_POLICY_STRICT,
) -> List[PlannedSubscription]:
    """
    Decide which resolved detections become subscription rows.

    Skips ignore-suggested and one-time detections, detections without a
    renewal date (strict policy) and services the user already has as
    active or pending_review. Accepted active/pending names are added to
    `active_names` as they are planned.

    Under the lenient policy a missing renewal date becomes today + one
    billing cycle.
    """
    today = today or date.today()
    planned: List[PlannedSubscription] = []

    for name, detection in detections.items():
        if detection.confidence_suggestion == ConfidenceSuggestion.IGNORE:
            continue

        if detection.is_one_time and not detection.is_recurring:
            continue

        if detection.next_billing_date is None:
            if renewal_policy != RENEWAL_POLICY_LENIENT:
                continue
            detection = dataclasses.replace(
                detection,
                next_billing_date=add_billing_cycle(today, detection.billing_cycle),
            )

        if name.lower() in active_names:
            continue

        status = _record_status(detection, statuses.get(name, SubscriptionStatus.ACTIVE.value))
        planned.append(PlannedSubscription(detection=detection, status=status))

        if status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PENDING_REVIEW.value):
            active_names.add(name.lower())

    return planned


# ============ PERSISTENCE ============

def _money(detection: DetectionResult) -> str:
    symbol = "$" if detection.currency == "USD" else detection.currency
    return f"{symbol}{detection.amount}"


def detection_notification(detection: DetectionResult, status: str) -> Optional[Tuple[str, str]]:
    """(title, message) for a new row, or None for cancelled/paused rows."""
    price = f"{_money(detection)}/{detection.billing_cycle}"

    if status == SubscriptionStatus.ACTIVE.value:
        return (
            f"{detection.canonical_name} detected",
            f"We found a {detection.canonical_name} subscription for {price} in your Gmail.",
        )
    if status == SubscriptionStatus.PENDING_REVIEW.value:
        return (
            f"Review: {detection.canonical_name} detected",
            f"We found a possible {detection.canonical_name} subscription ({price}) "
            f"with {detection.confidence_score}% confidence. Please review it.",
        )
    return None


def _resolve_category(
    db: Session,
    user_id: str,
    category_name: str,
    categories: Dict[str, int],
) -> int:
    key = category_name.lower()
    if key in categories:
        return categories[key]

    category = db_service.create_category(
        db, user_id, category_name, category_color(category_name), commit=False
    )
    categories[key] = category.id
    logger.info(f"Created category '{category_name}' for user {user_id}")
    return category.id


def persist(
    db: Session,
    user_id: str,
    planned: Sequence[PlannedSubscription],
    categories: Dict[str, int],
) -> int:
    """
    Insert planned subscriptions and their notifications.

    Everything is committed in one transaction, so a failure part way
    through leaves no rows behind once the caller rolls back.

    Returns:
        Number of subscription rows created
    """
    found = 0

    for plan in planned:
        detection = plan.detection
        category_id = _resolve_category(db, user_id, detection.category_name, categories)

        subscription = db_service.insert_subscription(
            db,
            user_id=user_id,
            name=detection.canonical_name,
            amount=detection.amount,
            currency=detection.currency,
            billing_cycle=detection.billing_cycle,
            next_billing_date=detection.next_billing_date,
            status=plan.status,
            category_id=category_id,
            logo_url=detection.logo_url,
            website_url=detection.website_url,
            email_thread_id=detection.source_thread_id,
            email_sender=detection.source_sender,
            confidence_score=detection.confidence_score,
            detection_reason=detection.detection_reason,
            commit=False,
        )

        notice = detection_notification(detection, plan.status)
        if notice:
            title, message = notice
            db_service.insert_notification(
                db,
                user_id=user_id,
                type=NotificationType.PAYMENT_DETECTED.value,
                title=title,
                message=message,
                subscription_id=subscription.id,
                commit=False,
            )

        logger.info(
            f"Added {detection.canonical_name} as {plan.status} "
            f"(confidence {detection.confidence_score}) for user {user_id}"
        )
        found += 1

    db.commit()
    return found


# ============ MAIN ENTRY POINT ============

def _setting(value: Optional[int], default: int) -> int:
    """Explicit override (0 included) or the configured default."""
    return default if value is None else value


def run_gmail_scan(
    db: Session,
    user_id: str,
    credential_provider: CredentialProvider,
    mail_source_factory: Callable[[str], MailSource],
    catalog: Optional[PatternCatalog] = None,
    today: Optional[date] = None,
    renewal_policy: Optional[str] = None,
    max_results: Optional[int] = None,
    max_messages: Optional[int] = None,
    lookback_days: Optional[int] = None,
    stale_minutes: Optional[int] = None,
) -> ScanSummary:
    """
    Scan one user's Gmail for subscriptions.

    Args:
        db: Database session
        user_id: Scanned user
        credential_provider: Supplies the Gmail access token
        mail_source_factory: Builds a MailSource from an access token
        catalog: Known billing senders (defaults to the built-in catalog)
        today: Scan date (defaults to date.today())
        renewal_policy: "strict" or "lenient" (defaults to RENEWAL_DATE_POLICY)
        max_results / max_messages / lookback_days / stale_minutes:
            Overrides for the SCAN_* settings

    Returns:
        ScanSummary with emails scanned and subscriptions created

    Raises:
        ScanInProgressError: A scan for this user is already running
        TokenRefreshError: Credentials could not be refreshed
    """
    catalog = catalog or default_catalog()
    today = today or date.today()
    renewal_policy = renewal_policy or config.RENEWAL_DATE_POLICY
    max_results = _setting(max_results, config.SCAN_MAX_RESULTS)
    max_messages = _setting(max_messages, config.SCAN_MAX_MESSAGES)
    lookback_days = _setting(lookback_days, config.SCAN_LOOKBACK_DAYS)
    stale_after = timedelta(minutes=_setting(stale_minutes, config.SCAN_STALE_MINUTES))

    running = db_service.get_running_scan(db, user_id, stale_after)
    if running is not None:
        raise ScanInProgressError(f"Scan {running.id} is still running for user {user_id}")

    scan_log = db_service.start_scan_log(db, user_id)
    if scan_log is None:
        # Lost the race to a concurrent request for the same user
        raise ScanInProgressError(f"A scan is already running for user {user_id}")
    logger.info(f"Starting Gmail scan {scan_log.id} for user {user_id}")

    try:
        access_token = credential_provider.get_access_token()
    except TokenRefreshError:
        db_service.fail_scan_log(db, scan_log, TOKEN_REFRESH_FAILED)
        raise

    try:
        mail_source = mail_source_factory(access_token)
        messages = mail_source.list_candidate_messages(build_gmail_query(lookback_days), max_results)

        state = db_service.load_existing_state(db, user_id)

        analyses = analyse_messages(
            messages[:max_messages],
            mail_source,
            catalog,
            existing_thread_ids=state.thread_ids,
            service_names=state.service_names,
            today=today,
        )
        analyses = ensure_newest_first(analyses)

        statuses, detections = resolve_services(analyses)
        planned = plan_emissions(
            detections,
            statuses,
            state.active_names,
            today=today,
            renewal_policy=renewal_policy,
        )
        found = persist(db, user_id, planned, state.categories)

        db_service.finish_scan_log(db, scan_log, emails_scanned=len(messages), subscriptions_found=found)
        db_service.mark_last_scanned(db, user_id)

    except Exception as e:
        db.rollback()
        logger.error(f"Gmail scan {scan_log.id} failed for user {user_id}: {e}")
        db_service.fail_scan_log(db, scan_log, str(e) or type(e).__name__)
        raise

    logger.info(
        f"Gmail scan {scan_log.id} done: {len(messages)} emails, {found} subscriptions"
    )
    return ScanSummary(
        scan_log_id=scan_log.id,
        emails_scanned=len(messages),
        subscriptions_found=found,
    )


def scan_all_users(
    db: Session,
    credential_provider_factory: Callable,
    mail_source_factory: Callable[[str], MailSource],
    user_id: Optional[str] = None,
    **scan_options,
) -> List[dict]:
    """
    Scan every Gmail-connected profile (or just `user_id`).

    A failure for one user is logged and recorded in that user's scan log;
    the loop carries on with the next profile.

    Returns:
        One result dict per profile: user_id, success, and counts or error
    """
    results = []

    for profile in db_service.get_connected_profiles(db, user_id):
        try:
            summary = run_gmail_scan(
                db,
                profile.id,
                credential_provider_factory(db, profile),
                mail_source_factory,
                **scan_options,
            )
            results.append({"user_id": profile.id, **summary.to_dict()})
        except Exception as e:
            logger.error(f"Scan failed for user {profile.id}: {e}")
            results.append({"user_id": profile.id, "success": False, "error": str(e)})

    return results
