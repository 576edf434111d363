"""
Renewal and trial-ending reminders.

Run once a day by the scheduler. For every profile that wants reminders:
- renewal_reminder for active/trial subscriptions renewing exactly
  `notification_days_before` days from today
- trial_ending for trial subscriptions renewing between today and that day

A subscription gets at most one reminder of each type per day.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Profile, SubscriptionStatus, NotificationType
from app.services import db_service

logger = logging.getLogger(__name__)

DEFAULT_DAYS_BEFORE = 3


@dataclass
class ReminderSummary:
    users_processed: int = 0
    reminders_created: int = 0

    def to_dict(self) -> dict:
        return {
            "success": True,
            "users_processed": self.users_processed,
            "reminders_created": self.reminders_created,
        }


def _days_text(days: int) -> str:
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"


def _money(currency: str, amount) -> str:
    symbol = "$" if currency == "USD" else currency
    return f"{symbol}{amount}"


def send_reminders(db: Session, today: Optional[date] = None) -> ReminderSummary:
    """
    Create due reminder notifications for all users.

    Args:
        db: Database session
        today: Reference date (defaults to date.today())

    Returns:
        ReminderSummary with users processed and notifications created
    """
    today = today or date.today()
    summary = ReminderSummary()

    profiles = db.query(Profile).filter(Profile.notification_email.is_(True)).all()

    for profile in profiles:
        summary.users_processed += 1
        days_ahead = profile.notification_days_before
        if days_ahead is None:
            days_ahead = DEFAULT_DAYS_BEFORE
        target = today + timedelta(days=days_ahead)
        days_text = _days_text(days_ahead)

        # Renewals landing exactly on the target day
        for sub in db_service.get_renewing_subscriptions(db, profile.id, target, target):
            if db_service.notification_sent_since(
                db, sub.id, NotificationType.RENEWAL_REMINDER.value, today
            ):
                continue

            db_service.insert_notification(
                db,
                user_id=profile.id,
                type=NotificationType.RENEWAL_REMINDER.value,
                title=f"{sub.name} renews {days_text}",
                message=(
                    f"Your {sub.name} subscription will renew {days_text} "
                    f"for {_money(sub.currency, sub.amount)}. Make sure you're prepared."
                ),
                subscription_id=sub.id,
            )
            summary.reminders_created += 1

        # Trials converting anywhere in the window
        trials = db_service.get_renewing_subscriptions(
            db, profile.id, today, target, statuses=(SubscriptionStatus.TRIAL.value,)
        )
        for trial in trials:
            if db_service.notification_sent_since(
                db, trial.id, NotificationType.TRIAL_ENDING.value, today
            ):
                continue

            db_service.insert_notification(
                db,
                user_id=profile.id,
                type=NotificationType.TRIAL_ENDING.value,
                title=f"{trial.name} trial ending soon",
                message=(
                    f"Your free trial of {trial.name} is ending. "
                    "It will convert to a paid subscription soon."
                ),
                subscription_id=trial.id,
            )
            summary.reminders_created += 1

    logger.info(
        f"Reminders: {summary.reminders_created} created for {summary.users_processed} users"
    )
    return summary
