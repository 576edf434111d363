"""
Subscription model - the main dashboard-facing table.

Rows are created manually by the user or by the Gmail scanner. Scanner rows
carry the source thread id (thread-level dedup) and the confidence score
with the reasons that produced it.

Status values:
- active, trial, paused, cancelled: normal lifecycle
- pending_review: detected with moderate confidence, awaiting approval
- dismissed: a pending detection the user rejected
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Date, Numeric, Text, Boolean,
    ForeignKey, DateTime, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class SubscriptionStatus(str, enum.Enum):
    """Lifecycle status of a subscription row."""
    ACTIVE = "active"
    PENDING_REVIEW = "pending_review"
    TRIAL = "trial"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    DISMISSED = "dismissed"


class BillingCycle(str, enum.Enum):
    """How often a subscription is charged."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class Subscription(Base):
    """
    One recurring charge tracked for a user.

    Each row = one card on the subscriptions dashboard.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)

    # ============ SERVICE ============
    name = Column(String(255), nullable=False)
    description = Column(Text)
    logo_url = Column(String(512))
    website_url = Column(String(512))

    # ============ BILLING ============
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    billing_cycle = Column(String(20), default=BillingCycle.MONTHLY.value, nullable=False)
    next_billing_date = Column(Date)
    start_date = Column(Date)

    # ============ STATUS & CATEGORY ============
    status = Column(String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"))
    notes = Column(Text)

    # ============ DETECTION METADATA ============
    auto_detected = Column(Boolean, default=False, nullable=False)
    source = Column(String(20), default="manual", nullable=False)  # manual, gmail
    email_thread_id = Column(String(64), index=True)
    email_sender = Column(String(255))
    confidence_score = Column(Integer)  # 0-95 for scanner rows, NULL for manual
    detection_reason = Column(Text)  # " | " joined positive signal labels

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    category = relationship("Category")

    __table_args__ = (
        Index("ix_subscriptions_user_status", "user_id", "status"),
        Index("ix_subscriptions_user_renewal", "user_id", "next_billing_date"),
    )

    def __repr__(self):
        return f"<Subscription(id={self.id}, name={self.name}, status={self.status})>"
