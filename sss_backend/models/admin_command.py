"""
Device commands issued by administrators for delivery to the extension.

Status moves pending -> sent -> acknowledged; failed is terminal.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from . import Base

COMMAND_TYPES = ("FORCE_LOGOUT", "SYNC_BLOCKLIST")
COMMAND_STATUSES = ("pending", "sent", "acknowledged", "failed")


class AdminCommand(Base):
    __tablename__ = "admin_commands"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type: Mapped[str] = mapped_column(String(32))
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("students.id"))
    center_id: Mapped[str] = mapped_column(String(36), ForeignKey("centers.id"))
    scope: Mapped[str] = mapped_column(String(16))  # student | center | all
    scope_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_admin_commands_student_status_created", "student_id", "status", "created_at"),
        Index("ix_admin_commands_center_created", "center_id", "created_at"),
    )
