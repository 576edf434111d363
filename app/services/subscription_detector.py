"""
Per-email subscription detection.

Combines the pattern catalog, the signal extractors and the confidence
scorer into the two per-email operations the scan pipeline needs:

- detect_subscription: billing email -> DetectionResult (or None)
- detect_status_change: cancellation / pause notice -> StatusChangeSignal (or None)
"""

from datetime import date
from typing import Optional

from app.services.confidence import compute_confidence
from app.services.detection_models import (
    RawEmail,
    SignalSet,
    DetectionResult,
    StatusChangeSignal,
)
from app.services.pattern_catalog import PatternCatalog
from app.services.signal_extractors import (
    detect_billing_keywords,
    extract_amount,
    extract_billing_cycle,
    classify_recurrence,
    extract_renewal_date,
    has_trial_phrase,
    has_cancellation_phrase,
    has_pause_phrase,
)


def detect_subscription(
    email: RawEmail,
    catalog: PatternCatalog,
    has_prior_history: bool = False,
    today: Optional[date] = None,
) -> Optional[DetectionResult]:
    """
    Turn one billing email into a scored subscription candidate.

    Rejection order: no billing keyword, unknown sender, no positive amount.
    The sender check runs before any amount/date extraction.

    Args:
        email: Subject, sender and plain-text body excerpt
        catalog: Known billing senders
        has_prior_history: Service already stored for this user (any status)
        today: Scan date, used to reject stale renewal dates

    Returns:
        DetectionResult, or None when the email is not a subscription charge
    """
    in_subject, in_body_only = detect_billing_keywords(email.subject, email.body_excerpt)
    if not in_subject and not in_body_only:
        return None

    entry = catalog.lookup(email.sender)
    if entry is None:
        return None

    extracted = extract_amount(email.subject, email.body_excerpt)
    if extracted is None:
        return None
    amount, currency = extracted

    full_text = f"{email.subject}\n{email.body_excerpt}"

    billing_cycle, cycle_explicit = extract_billing_cycle(full_text)
    is_recurring, is_one_time = classify_recurrence(full_text)
    next_billing_date = extract_renewal_date(full_text, today=today)
    trial = has_trial_phrase(full_text)

    signals = SignalSet(
        sender_matched=True,
        billing_keyword_in_subject=in_subject,
        billing_keyword_in_body=in_body_only,
        recurring_phrase_found=is_recurring,
        one_time_phrase_found=is_one_time,
        amount_found=True,
        billing_cycle_explicit=cycle_explicit,
        next_date_extracted=next_billing_date is not None,
        trial_phrase_found=trial,
        has_prior_history=has_prior_history,
    )
    confidence = compute_confidence(signals)

    return DetectionResult(
        canonical_name=entry.canonical_name,
        amount=amount,
        currency=currency,
        billing_cycle=billing_cycle,
        is_one_time=is_one_time,
        is_recurring=is_recurring,
        next_billing_date=next_billing_date,
        category_name=entry.default_category,
        confidence_score=confidence.score,
        confidence_suggestion=confidence.suggestion,
        detection_reasons=confidence.reasons,
        source_thread_id=email.thread_id,
        source_sender=email.sender,
        logo_url=entry.logo_url,
        website_url=entry.website_url,
    )


def detect_status_change(
    email: RawEmail,
    catalog: PatternCatalog,
) -> Optional[StatusChangeSignal]:
    """
    Detect a cancellation or pause notice from a known sender.

    Cancellation wins when an email mentions both.
    """
    entry = catalog.lookup(email.sender)
    if entry is None:
        return None

    full_text = f"{email.subject}\n{email.body_excerpt}"

    if has_cancellation_phrase(full_text):
        return StatusChangeSignal(entry.canonical_name, "cancelled")
    if has_pause_phrase(full_text):
        return StatusChangeSignal(entry.canonical_name, "paused")
    return None
