"""
Pydantic schemas for admin device commands.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from .policy import CamelModel

CommandType = Literal["FORCE_LOGOUT", "SYNC_BLOCKLIST"]
TargetType = Literal["student", "center", "all"]


class CommandCreate(CamelModel):
    type: CommandType
    target_type: TargetType
    target_id: Optional[str] = None
    payload: Optional[dict] = None


class CommandCreated(CamelModel):
    count: int
    batch_id: Optional[str] = None


class CommandOut(CamelModel):
    id: str
    type: str
    student: str
    center: str
    scope: str
    scope_id: Optional[str] = None
    payload: Optional[dict] = None
    status: str
    attempts: int
    last_attempt_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    created_by: Optional[str] = None
    error: Optional[str] = None
    batch_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
