"""
GmailScanLog model - one row per scan run.

Used to:
- Report aggregate counts back to the dashboard
- Record why a run failed (e.g. token refresh)
- Guard against two concurrent scans for the same user (partial unique
  index on running rows)
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Index, text
from sqlalchemy.sql import func
from app.database import Base


class GmailScanLog(Base):
    """Status and counts for a single Gmail scan run."""
    __tablename__ = "gmail_scan_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    status = Column(String(20), default="running", nullable=False)  # running, success, failed
    emails_scanned = Column(Integer, default=0, nullable=False)
    subscriptions_found = Column(Integer, default=0, nullable=False)
    error_message = Column(Text)
    started_at = Column(DateTime, server_default=func.now())
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("ix_scan_logs_user_status", "user_id", "status"),
        # At most one running scan per user
        Index(
            "uq_scan_logs_user_running",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'running'"),
            sqlite_where=text("status = 'running'"),
        ),
    )

    def __repr__(self):
        return f"<GmailScanLog(id={self.id}, user_id={self.user_id}, status={self.status})>"
