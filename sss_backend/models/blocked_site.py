"""
ORM model for ad-hoc blocked sites.

``scope_id`` refers to a center when ``scope == "center"`` and to a
student when ``scope == "student"``; it is empty for global entries.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from . import Base

PATTERN_TYPES = ("domain", "url", "regex")
SITE_CATEGORIES = (
    "adult",
    "gambling",
    "social_media",
    "gaming",
    "streaming",
    "malware",
    "violence",
    "drugs",
    "custom",
)


class BlockedSite(Base):
    __tablename__ = "blocked_sites"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    pattern: Mapped[str] = mapped_column(String(1024), index=True)
    pattern_type: Mapped[str] = mapped_column(String(16), default="domain")
    category: Mapped[str] = mapped_column(String(32), default="custom", index=True)
    scope: Mapped[str] = mapped_column(String(16), default="global")
    scope_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    added_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (Index("ix_blocked_sites_scope_active", "scope", "is_active"),)
