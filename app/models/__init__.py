"""
SQLAlchemy models for the subscription scanner.

This package contains:
- Profile: Gmail tokens and reminder preferences per user
- Category: User spending categories
- Subscription: Tracked subscriptions (dashboard data)
- Notification: In-app notifications
- GmailScanLog: Scan run history and concurrency guard
"""

from app.models.profile import Profile
from app.models.category import Category
from app.models.subscription import Subscription, SubscriptionStatus, BillingCycle
from app.models.notification import Notification, NotificationType
from app.models.scan_log import GmailScanLog

__all__ = [
    "Profile",
    "Category",
    "Subscription",
    "SubscriptionStatus",
    "BillingCycle",
    "Notification",
    "NotificationType",
    "GmailScanLog",
]
