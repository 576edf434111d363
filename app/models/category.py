"""
Category model - user-owned spending categories.

Categories are created on demand by the scanner when a detected service
belongs to a category the user does not have yet.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index
from sqlalchemy.sql import func
from app.database import Base


class Category(Base):
    """Spending category (e.g. "Entertainment") scoped to one user."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(16), default="#64748B")
    icon = Column(String(64))
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_categories_user_name", "user_id", "name"),
    )

    def __repr__(self):
        return f"<Category(id={self.id}, name={self.name})>"
