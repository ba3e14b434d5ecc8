"""
ORM model for supervision policies.

``rules`` holds the payload for ``policy_type`` (blocklist, allowlist or
time_restriction); its shape is validated by the schemas in
``schemas.policy`` before it is stored. Student-scoped policies also
record the student's center, matching how scope resolution returns it.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from . import Base

POLICY_TYPES = ("blocklist", "allowlist", "time_restriction")


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(256))
    description: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    policy_type: Mapped[str] = mapped_column(String(32))
    scope: Mapped[str] = mapped_column(String(16))
    center_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("centers.id"), nullable=True, index=True)
    student_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("students.id"), nullable=True, index=True)
    rules: Mapped[dict] = mapped_column(JSON, default=dict)
    # Higher wins.
    priority: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (Index("ix_policies_scope_active_priority", "scope", "is_active", "priority"),)
