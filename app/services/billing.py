"""
Billing-cycle arithmetic.

Normalises amounts across billing cycles for the spend summary and rolls a
date forward by one cycle (used when guessing a renewal date).
"""

import calendar
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.models import BillingCycle, SubscriptionStatus

# Average lengths used to convert to a monthly figure
DAYS_PER_MONTH = Decimal("30.44")
WEEKS_PER_MONTH = Decimal("4.33")

SPEND_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIAL.value)

_CENTS = Decimal("0.01")


def monthly_amount(amount, billing_cycle: str) -> Decimal:
    """
    Convert an amount charged every `billing_cycle` to a monthly amount.

    Unknown cycles are treated as monthly.
    """
    amount = Decimal(str(amount))

    if billing_cycle == BillingCycle.DAILY.value:
        return amount * DAYS_PER_MONTH
    if billing_cycle == BillingCycle.WEEKLY.value:
        return amount * WEEKS_PER_MONTH
    if billing_cycle == BillingCycle.QUARTERLY.value:
        return amount / 3
    if billing_cycle == BillingCycle.YEARLY.value:
        return amount / 12
    return amount


def annual_amount(amount, billing_cycle: str) -> Decimal:
    return monthly_amount(amount, billing_cycle) * 12


def total_monthly_spend(subscriptions: Iterable) -> Decimal:
    """
    Sum of monthly amounts over active and trial subscriptions.

    Args:
        subscriptions: Objects with amount, billing_cycle and status

    Returns:
        Total rounded to cents
    """
    total = sum(
        (monthly_amount(sub.amount, sub.billing_cycle)
         for sub in subscriptions
         if sub.status in SPEND_STATUSES),
        Decimal("0"),
    )
    return total.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    # Jan 31 + 1 month -> Feb 28/29
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_billing_cycle(start: date, billing_cycle: str) -> date:
    """Date one billing cycle after `start`."""
    if billing_cycle == BillingCycle.DAILY.value:
        return start + timedelta(days=1)
    if billing_cycle == BillingCycle.WEEKLY.value:
        return start + timedelta(weeks=1)
    if billing_cycle == BillingCycle.QUARTERLY.value:
        return _add_months(start, 3)
    if billing_cycle == BillingCycle.YEARLY.value:
        return _add_months(start, 12)
    return _add_months(start, 1)
