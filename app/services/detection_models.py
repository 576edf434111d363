"""
Transient data structures passed between scanner stages.

None of these are persisted. They are created on every scan run and
discarded once folded into the per-service resolution maps.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List


class ConfidenceSuggestion(str, Enum):
    """What the scanner should do with a detection."""
    AUTO = "auto"      # insert as active
    ASK = "ask"        # insert as pending_review
    IGNORE = "ignore"  # discard


@dataclass(frozen=True)
class MessageRef:
    """Identifier pair returned by the mail source listing call."""
    id: str
    thread_id: str


@dataclass
class RawEmail:
    """Subject/sender/plain-text triple for a single message."""
    subject: str
    sender: str
    body_excerpt: str
    thread_id: str
    message_id: Optional[str] = None
    received_at: Optional[datetime] = None


@dataclass(frozen=True)
class SignalSet:
    """Boolean signals feeding the confidence scorer."""
    sender_matched: bool = False
    billing_keyword_in_subject: bool = False
    billing_keyword_in_body: bool = False
    recurring_phrase_found: bool = False
    one_time_phrase_found: bool = False
    amount_found: bool = False
    billing_cycle_explicit: bool = False
    next_date_extracted: bool = False
    trial_phrase_found: bool = False
    has_prior_history: bool = False


@dataclass
class DetectionResult:
    """A subscription candidate extracted from one email."""
    canonical_name: str
    amount: Decimal
    currency: str
    billing_cycle: str
    is_one_time: bool
    is_recurring: bool
    next_billing_date: Optional[date]
    category_name: str
    confidence_score: int
    confidence_suggestion: ConfidenceSuggestion
    detection_reasons: List[str] = field(default_factory=list)
    source_thread_id: str = ""
    source_sender: str = ""
    logo_url: str = ""
    website_url: str = ""

    @property
    def detection_reason(self) -> str:
        """Reasons joined for storage in a single text column."""
        return " | ".join(self.detection_reasons)


@dataclass(frozen=True)
class StatusChangeSignal:
    """Cancellation or pause notice for a known service."""
    canonical_name: str
    new_status: str  # cancelled, paused


@dataclass
class EmailAnalysis:
    """Both extractor outputs for one email, kept in mailbox order."""
    thread_id: str
    detection: Optional[DetectionResult] = None
    status_change: Optional[StatusChangeSignal] = None
    received_at: Optional[datetime] = None
