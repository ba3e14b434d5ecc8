"""
ORM models for browsing activity and its categorisation.

Category rules bind a pattern to a named, coloured category. Activity
records carry the category name resolved at ingestion time.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base

DEFAULT_CATEGORY_NAME = "Uncategorized"


class ActivityCategory(Base):
    __tablename__ = "activity_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    description: Mapped[str] = mapped_column(String(1024), default="")
    color: Mapped[str] = mapped_column(String(32), default="slate")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    rules: Mapped[list[ActivityCategoryRule]] = relationship(
        "ActivityCategoryRule", back_populates="category", cascade="all, delete-orphan"
    )


class ActivityCategoryRule(Base):
    __tablename__ = "activity_category_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    category_id: Mapped[str] = mapped_column(String(36), ForeignKey("activity_categories.id", ondelete="CASCADE"), index=True)
    pattern: Mapped[str] = mapped_column(String(1024))
    pattern_type: Mapped[str] = mapped_column(String(16), default="domain")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    category: Mapped[ActivityCategory] = relationship("ActivityCategory", back_populates="rules")


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("students.id"))
    center_id: Mapped[str] = mapped_column(String(36), ForeignKey("centers.id"))
    url: Mapped[str] = mapped_column(Text)
    domain: Mapped[str] = mapped_column(String(512), index=True)
    title: Mapped[str] = mapped_column(String(1024), default="")
    visit_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    idle_seconds: Mapped[int] = mapped_column(Integer, default=0)
    was_blocked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    block_reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    block_category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        Index("ix_activities_student_visit", "student_id", "visit_time"),
        Index("ix_activities_center_visit", "center_id", "visit_time"),
    )
