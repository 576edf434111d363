"""
Profile model - per-user Gmail connection and notification preferences.

The user id is issued by the external auth provider; this table only
mirrors it so scans and reminders can find the user's tokens.
"""

from sqlalchemy import Column, String, Boolean, Integer, DateTime, Text
from sqlalchemy.sql import func
from app.database import Base


class Profile(Base):
    """Gmail OAuth tokens and scan metadata for one user."""
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String(255))

    # ============ GMAIL CONNECTION ============
    gmail_connected = Column(Boolean, default=False, nullable=False)
    gmail_access_token = Column(Text)
    gmail_refresh_token = Column(Text)
    gmail_token_expiry = Column(DateTime)  # naive UTC, as returned by google-auth
    gmail_last_scanned = Column(DateTime)

    # ============ REMINDERS ============
    notification_email = Column(Boolean, default=True, nullable=False)
    notification_days_before = Column(Integer, default=3, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Profile(id={self.id}, gmail_connected={self.gmail_connected})>"
