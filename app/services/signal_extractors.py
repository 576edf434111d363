"""
Regex-based signal extractors for billing emails.

Extracts the raw signals the confidence scorer needs from the subject and
plain-text body of one email. Pure functions, no I/O - every extractor can be
tested on its own.

Keyword scans run over lowercased text. Amount extraction runs over the
original text because currency codes (USD, EUR, ...) are matched
case-sensitively.
"""

import re
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

# Dates more than this many days before the scan are treated as quoted or
# forwarded content, not as the upcoming renewal
MAX_PAST_RENEWAL_DAYS = 7

# ============ BILLING KEYWORDS ============

BILLING_KEYWORDS = [
    # Core billing words
    "receipt", "invoice", "billing", "payment", "subscription",
    "renewed", "renewal", "charged", "charge", "paid", "billed",
    "bill", "fee", "debit",
    # Order & purchase
    "your order", "order confirmation", "order receipt",
    "purchase confirmation", "thank you for your purchase",
    "thank you for your order", "thanks for your purchase",
    "your receipt", "purchase receipt", "order total", "subtotal",
    # Payment confirmations
    "payment confirmation", "payment received", "payment successful",
    "payment processed", "payment failed", "payment declined",
    "payment due", "payment method", "amount due", "amount paid",
    "total paid", "total charged", "next payment", "next billing",
    "next charge", "due date", "overdue", "past due",
    "thank you for your payment", "thanks for your payment",
    "we received your payment",
    # Subscription lifecycle
    "your subscription", "subscription confirmed", "subscription activated",
    "subscription renewed", "subscription renewal", "subscription update",
    "subscription receipt", "subscription fee", "monthly subscription",
    "annual subscription", "has been charged", "successfully charged",
    "successfully renewed", "auto-renew", "auto-renewal", "auto renew",
    "autorenewal", "will be charged", "will be renewed", "will renew",
    "recurring payment", "recurring charge", "recurring billing",
    "monthly charge", "annual charge", "yearly charge",
    # Plan & membership
    "your plan", "plan renewed", "plan renewal", "plan activated",
    "plan confirmation", "service fee", "license fee", "license renewed",
    "license renewal", "membership", "membership renewed",
    "membership confirmation",
    # Trial
    "trial ending", "trial expires", "trial period", "free trial",
    "trial ended",
    # Transaction & financial
    "statement", "transaction", "direct debit", "standing order",
    "thank you for subscribing", "thanks for subscribing",
    "cancellation confirmed", "subscription cancelled",
    "subscription canceled", "subscription paused",
]

# Search query for the Gmail listing call. Broad on purpose: precision comes
# from the extractors, recall from here.
GMAIL_QUERY_TERMS = (
    'receipt OR invoice OR billing OR billed OR bill OR subscription OR renewal '
    'OR payment OR paid OR charge OR charged OR fee OR debit OR statement '
    'OR membership OR overdue OR recurring OR "auto-renew" OR "auto-renewal" '
    'OR "order confirmation" OR "payment confirmation" OR "payment received" '
    'OR "payment successful" OR "payment processed" OR "amount due" '
    'OR "payment due" OR "next payment" OR "will be charged" OR "will renew" '
    'OR "successfully charged" OR "has been charged" OR "your subscription" '
    'OR "your plan" OR "plan renewed" OR "trial ending" OR "free trial" '
    'OR "thank you for subscribing" OR "recurring payment" OR "recurring charge" '
    'OR "subscription fee" OR "service fee" OR "license fee" OR "direct debit" '
    'OR "thank you for your payment"'
)


def build_gmail_query(lookback_days: int = 365) -> str:
    """Gmail search query covering billing terms over the lookback window."""
    return f"({GMAIL_QUERY_TERMS}) newer_than:{lookback_days}d"


# ============ AMOUNT PATTERNS ============

# 1,299.00 / 1.299,00 / 15.99 / 9,99 / 20
_NUM = r"(\d{1,3}(?:[,.]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)"

# Indian grouping: 1,499 / 1,00,000 / 12,34,567.50
_INR_NUM = r"(\d{1,3}(?:,\d{2})*,\d{3}(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"

# Tried in order; the first pattern that yields a positive amount wins.
# The bare "$" is not allowed to follow a letter so CA$, A$ and US$ are
# routed to their own patterns.
AMOUNT_PATTERNS = [
    (re.compile(r"(?<![A-Za-z])\$\s*" + _NUM), "USD"),
    (re.compile(r"US\$\s*" + _NUM), "USD"),
    (re.compile(r"\bUSD\s*" + _NUM), "USD"),
    (re.compile(_NUM + r"\s*USD\b"), "USD"),
    (re.compile(r"€\s*" + _NUM), "EUR"),
    (re.compile(_NUM + r"\s*€"), "EUR"),
    (re.compile(r"\bEUR\s*" + _NUM), "EUR"),
    (re.compile(_NUM + r"\s*EUR\b"), "EUR"),
    (re.compile(r"£\s*" + _NUM), "GBP"),
    (re.compile(r"\bGBP\s*" + _NUM), "GBP"),
    (re.compile(_NUM + r"\s*GBP\b"), "GBP"),
    (re.compile(r"₹\s*" + _INR_NUM), "INR"),
    (re.compile(r"\bINR\s*" + _INR_NUM), "INR"),
    (re.compile(_INR_NUM + r"\s*INR\b"), "INR"),
    (re.compile(r"\bCA?\$\s*" + _NUM), "CAD"),
    (re.compile(r"\bCAD\s*" + _NUM), "CAD"),
    (re.compile(_NUM + r"\s*CAD\b"), "CAD"),
    (re.compile(r"(?<![A-Za-z])A\$\s*" + _NUM), "AUD"),
    (re.compile(r"\bAUD\s*" + _NUM), "AUD"),
    (re.compile(_NUM + r"\s*AUD\b"), "AUD"),
    (re.compile(r"[¥￥]\s*(\d{1,3}(?:,\d{3})+|\d+)"), "JPY"),
    (re.compile(r"\bJPY\s*(\d{1,3}(?:,\d{3})+|\d+)"), "JPY"),
    (re.compile(r"(\d{1,3}(?:,\d{3})+|\d+)\s*JPY\b"), "JPY"),
]

# ============ CYCLE / RECURRENCE KEYWORDS ============

# Checked in this order; first group with a hit decides the cycle
BILLING_CYCLE_KEYWORDS = [
    ("yearly", ["annual", "yearly", "year plan", "/year", "per year", "/yr", "every year", "each year"]),
    ("quarterly", ["quarterly", "every 3 months", "every three months", "3-month", "per quarter", "/quarter"]),
    ("weekly", ["weekly", "per week", "/week", "every week", "each week"]),
    ("monthly", ["monthly", "per month", "/month", "every month", "each month"]),
    ("daily", ["per day", "/day", "daily plan", "daily subscription"]),
]

RECURRING_PATTERNS = [
    r"auto[- ]?renew",
    r"renews automatically",
    r"automatically renew",
    r"(?<!non-)(?<!non )(?<!no )\brecurring\b",
    r"subscription (?:has been |was )?renewed",
    r"(?:has|have) been renewed",
    r"will (?:automatically )?renew\b",
    r"will be renewed",
    r"billed (?:monthly|annually|yearly|weekly|quarterly)",
    r"every (?:month|year|week)",
    r"each (?:month|year|billing period)",
    r"membership (?:has been )?renewed",
    r"renewal of your (?:subscription|membership|plan)",
]

ONE_TIME_PATTERNS = [
    r"one[- ]time",
    r"one[- ]off",
    r"single (?:purchase|payment)",
    r"non[- ]recurring",
    r"not a subscription",
    r"will not renew",
    r"won't renew",
    r"does not renew",
    r"\brental\b",
]

TRIAL_PHRASES = [
    "trial ending", "trial ends", "trial expires", "trial will end",
    "trial period", "free trial", "trial ended", "trial is over",
    "convert to a paid", "converts to a paid", "converting to a paid",
]

CANCELLATION_PHRASES = [
    "subscription cancelled", "subscription canceled",
    "subscription has been cancelled", "subscription has been canceled",
    "membership cancelled", "membership canceled",
    "membership has been cancelled", "membership has been canceled",
    "cancellation confirmed", "confirm your cancellation",
    "your cancellation", "you've cancelled", "you have cancelled",
    "you've canceled", "you have canceled",
    "sorry to see you go", "plan has been cancelled", "plan has been canceled",
]

PAUSE_PHRASES = [
    "subscription paused", "subscription has been paused",
    "membership paused", "membership has been paused",
    "plan has been paused", "paused your", "pause confirmed",
    "your pause", "subscription is on hold", "membership is on hold",
]

# ============ RENEWAL DATE PATTERNS ============

_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)

_DATE_TOKEN = (
    r"(\d{4}-\d{2}-\d{2}"
    r"|" + _MONTHS + r"\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4}"
    r"|\d{1,2}(?:st|nd|rd|th)?\s+(?:of\s+)?" + _MONTHS + r",?\s+\d{4}"
    r"|\d{1,2}/\d{1,2}/\d{4})"
)

# Anchor phrases in priority order. Up to 40 characters (no line break) may
# sit between the anchor and the date, e.g. "will be charged $9.99 on ...".
RENEWAL_ANCHORS = [
    r"next billing date",
    r"next payment date",
    r"next charge date",
    r"next renewal date",
    r"renewal date",
    r"renews on",
    r"will renew on",
    r"will be renewed on",
    r"will be charged on",
    r"will be charged",
    r"will be billed on",
    r"next payment",
    r"trial ends on",
    r"trial will end on",
    r"trial ends",
]

RENEWAL_DATE_PATTERNS = [
    re.compile(anchor + r"[^\n]{0,40}?" + _DATE_TOKEN, re.IGNORECASE)
    for anchor in RENEWAL_ANCHORS
]

_MONTH_NUMBERS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


# ============ EXTRACTORS ============

def _contains_any(text: str, phrases) -> bool:
    return any(phrase in text for phrase in phrases)


def _matches_any(text: str, patterns) -> bool:
    return any(re.search(pattern, text) for pattern in patterns)


def detect_billing_keywords(subject: str, body: str) -> Tuple[bool, bool]:
    """
    Check for billing language in the subject and in the body.

    Args:
        subject: Email subject line
        body: Plain-text body excerpt

    Returns:
        (in_subject, in_body_only) - the second flag is only True when the
        subject had no hit, so at most one of the two is set
    """
    in_subject = _contains_any(subject.lower(), BILLING_KEYWORDS)
    if in_subject:
        return True, False
    return False, _contains_any(body.lower(), BILLING_KEYWORDS)


def _parse_amount(raw: str) -> Optional[Decimal]:
    """Normalise "1,299.00" / "1.299,00" / "9,99" into a Decimal."""
    if "," in raw and "." in raw:
        # Whichever separator comes last is the decimal point
        if raw.rfind(",") > raw.rfind("."):
            raw = raw.replace(".", "").replace(",", ".")
        else:
            raw = raw.replace(",", "")
    elif "," in raw:
        if raw.count(",") == 1 and re.search(r",\d{1,2}$", raw):
            raw = raw.replace(",", ".")
        else:
            raw = raw.replace(",", "")
    elif "." in raw:
        if raw.count(".") > 1 or re.search(r"\.\d{3}$", raw):
            raw = raw.replace(".", "")

    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def extract_amount(subject: str, body: str) -> Optional[Tuple[Decimal, str]]:
    """
    Extract the charged amount and its currency.

    Args:
        subject: Email subject line
        body: Plain-text body excerpt

    Returns:
        (amount, ISO 4217 code) for the first positive match, else None
    """
    search_text = f"{subject} {body}"

    for pattern, currency in AMOUNT_PATTERNS:
        match = pattern.search(search_text)
        if not match:
            continue
        amount = _parse_amount(match.group(1))
        if amount is not None and amount > 0:
            return amount, currency

    return None


def extract_billing_cycle(text: str) -> Tuple[str, bool]:
    """
    Detect the billing cycle from cycle keywords.

    Returns:
        (cycle, explicit) - ("monthly", False) when nothing matched
    """
    text = text.lower()
    for cycle, keywords in BILLING_CYCLE_KEYWORDS:
        if _contains_any(text, keywords):
            return cycle, True
    return "monthly", False


def classify_recurrence(text: str) -> Tuple[bool, bool]:
    """
    Classify recurring vs one-time language.

    Recurring language always wins: one-time is only reported when no
    recurring phrase is present.

    Returns:
        (is_recurring, is_one_time)
    """
    text = text.lower()
    is_recurring = _matches_any(text, RECURRING_PATTERNS)
    is_one_time = not is_recurring and _matches_any(text, ONE_TIME_PATTERNS)
    return is_recurring, is_one_time


def _parse_date_token(token: str) -> Optional[date]:
    """Parse one of the four supported renewal-date formats."""
    token = token.strip().lower()

    try:
        if re.fullmatch(r"\d{4}-\d{2}-\d{2}", token):
            return date.fromisoformat(token)

        if "/" in token:
            month, day, year = (int(part) for part in token.split("/"))
            return date(year, month, day)

        cleaned = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", token)
        cleaned = re.sub(r"\bof\b|[,.]", " ", cleaned)
        parts = cleaned.split()
        if len(parts) != 3:
            return None

        if parts[0].isdigit():
            day, month_name, year = parts
        else:
            month_name, day, year = parts

        month = _MONTH_NUMBERS.get(month_name[:3])
        if not month:
            return None
        return date(int(year), month, int(day))

    except ValueError:
        return None


def extract_renewal_date(text: str, today: Optional[date] = None) -> Optional[date]:
    """
    Extract an explicit next renewal / charge date.

    Patterns are tried in RENEWAL_ANCHORS order and the first one that
    yields a valid calendar date wins. That date is discarded (None) when it
    lies more than MAX_PAST_RENEWAL_DAYS before `today`.

    Args:
        text: Subject and body text
        today: Scan date (defaults to date.today())

    Returns:
        The renewal date, or None
    """
    today = today or date.today()

    for pattern in RENEWAL_DATE_PATTERNS:
        for match in pattern.finditer(text):
            parsed = _parse_date_token(match.group(1))
            if parsed is None:
                continue
            if parsed < today - timedelta(days=MAX_PAST_RENEWAL_DAYS):
                return None
            return parsed

    return None


def has_trial_phrase(text: str) -> bool:
    return _contains_any(text.lower(), TRIAL_PHRASES)


def has_cancellation_phrase(text: str) -> bool:
    return _contains_any(text.lower(), CANCELLATION_PHRASES)


def has_pause_phrase(text: str) -> bool:
    return _contains_any(text.lower(), PAUSE_PHRASES)
