"""
Confidence scoring for Gmail-detected subscriptions.

Signal weights (max positive raw sum = 120):
    SENDER_MATCH            35  sender found in the pattern catalog
    SUBJECT_BILLING_KW      20  billing keyword in the subject line
    RECURRING_EXPLICIT      15  auto-renewal / recurring language
    AMOUNT_DETECTED         15  a non-zero charge amount was extracted
    BODY_BILLING_KW          8  billing keyword in the body only
    BILLING_CYCLE_EXPLICIT   5  explicit billing cycle term
    NEXT_DATE_EXTRACTED      4  an actual renewal date was parsed
    TRIAL_SIGNAL             3  trial ending / converting language
    HISTORICAL_RECURRENCE   15  service seen before for this user
    ONE_TIME_PENALTY       -30  one-time language without recurring override

Normalization: max(0, raw) / 120 * 100, rounded half up, capped at 90.
The cap relaxes to 95 only when SENDER_MATCH, RECURRING_EXPLICIT and
HISTORICAL_RECURRENCE all fire. A score of 100 is never produced.

Suggestion thresholds:
    >= 90  auto    insert as active
    60-89  ask     insert as pending_review
    < 60   ignore  discard
"""

import math
from dataclasses import dataclass, field
from typing import List

from app.services.detection_models import SignalSet, ConfidenceSuggestion

WEIGHTS = {
    "SENDER_MATCH": 35,
    "SUBJECT_BILLING_KW": 20,
    "RECURRING_EXPLICIT": 15,
    "AMOUNT_DETECTED": 15,
    "BODY_BILLING_KW": 8,
    "BILLING_CYCLE_EXPLICIT": 5,
    "NEXT_DATE_EXTRACTED": 4,
    "TRIAL_SIGNAL": 3,
    "HISTORICAL_RECURRENCE": 15,
    "ONE_TIME_PENALTY": -30,
}

# Sum of all positive weights, used for normalization. Subject and body
# keyword never fire together, so a real email tops out below this.
MAX_RAW = sum(points for points in WEIGHTS.values() if points > 0)  # 120

DEFAULT_CAP = 90
RELAXED_CAP = 95

AUTO_THRESHOLD = 90
ASK_THRESHOLD = 60

LABELS = {
    "SENDER_MATCH": "Known subscription service sender",
    "SUBJECT_BILLING_KW": "Billing keyword in subject line",
    "BODY_BILLING_KW": "Billing keyword in email body",
    "RECURRING_EXPLICIT": "Explicit recurring / auto-renewal language",
    "AMOUNT_DETECTED": "Charge amount extracted",
    "BILLING_CYCLE_EXPLICIT": "Billing cycle explicitly stated",
    "NEXT_DATE_EXTRACTED": "Renewal date extracted from email",
    "TRIAL_SIGNAL": "Trial ending or converting to paid plan",
    "HISTORICAL_RECURRENCE": "Previously detected from this service",
    "ONE_TIME_PENALTY": "One-time purchase language (penalty)",
}


@dataclass(frozen=True)
class ConfidenceSignal:
    category: str
    label: str
    points: int


@dataclass
class ConfidenceResult:
    """Outcome of scoring one SignalSet."""
    score: int
    suggestion: ConfidenceSuggestion
    reasons: List[str] = field(default_factory=list)  # positive labels only
    signals: List[ConfidenceSignal] = field(default_factory=list)  # incl. penalty

    @property
    def reason(self) -> str:
        return " | ".join(self.reasons)


def suggest(score: int) -> ConfidenceSuggestion:
    """Map a score to the routing decision."""
    if score >= AUTO_THRESHOLD:
        return ConfidenceSuggestion.AUTO
    if score >= ASK_THRESHOLD:
        return ConfidenceSuggestion.ASK
    return ConfidenceSuggestion.IGNORE


def compute_confidence(signals: SignalSet) -> ConfidenceResult:
    """
    Score a set of extracted signals.

    Args:
        signals: Flags computed by the extractors for one email

    Returns:
        ConfidenceResult with score in [0, 95], the positive reason labels
        in firing order, the full signal breakdown and the suggestion
    """
    fired: List[ConfidenceSignal] = []

    def add(category: str) -> None:
        fired.append(ConfidenceSignal(category, LABELS[category], WEIGHTS[category]))

    # Positive signals
    if signals.sender_matched:
        add("SENDER_MATCH")

    # Subject-line keyword outweighs body-only
    if signals.billing_keyword_in_subject:
        add("SUBJECT_BILLING_KW")
    elif signals.billing_keyword_in_body:
        add("BODY_BILLING_KW")

    if signals.recurring_phrase_found:
        add("RECURRING_EXPLICIT")
    if signals.amount_found:
        add("AMOUNT_DETECTED")
    if signals.billing_cycle_explicit:
        add("BILLING_CYCLE_EXPLICIT")
    if signals.next_date_extracted:
        add("NEXT_DATE_EXTRACTED")
    if signals.trial_phrase_found:
        add("TRIAL_SIGNAL")
    if signals.has_prior_history:
        add("HISTORICAL_RECURRENCE")

    # Penalty only without a recurring override
    if signals.one_time_phrase_found and not signals.recurring_phrase_found:
        add("ONE_TIME_PENALTY")

    raw_sum = max(0, sum(signal.points for signal in fired))

    can_hit_max = (
        signals.sender_matched
        and signals.recurring_phrase_found
        and signals.has_prior_history
    )
    cap = RELAXED_CAP if can_hit_max else DEFAULT_CAP

    # Round half up (Python's round() is banker's rounding)
    score = min(cap, math.floor(raw_sum / MAX_RAW * 100 + 0.5))

    return ConfidenceResult(
        score=score,
        suggestion=suggest(score),
        reasons=[signal.label for signal in fired if signal.points > 0],
        signals=fired,
    )
