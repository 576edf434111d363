"""
Notification model - in-app notices shown in the dashboard bell.

Delivery (email, push) is handled elsewhere; this table is the inbox.
"""

import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class NotificationType(str, enum.Enum):
    RENEWAL_REMINDER = "renewal_reminder"
    PAYMENT_DETECTED = "payment_detected"
    TRIAL_ENDING = "trial_ending"
    PRICE_CHANGE = "price_change"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"))
    type = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    subscription = relationship("Subscription")

    def __repr__(self):
        return f"<Notification(id={self.id}, type={self.type}, title={self.title[:30] if self.title else ''})>"
