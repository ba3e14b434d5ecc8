"""
Endpoints consumed by the browser extension.

All routes require a student session token (``X-Session-Token``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.auth import get_current_student
from ...core.db import get_db
from ...models.student import Student
from ...schemas.extension import HeartbeatRequest, HeartbeatResponse, UrlCheckRequest
from ...services.commands import poll_commands
from ...services.rule_compiler import compile_rules, resolve_time_restrictions
from ...services.url_decision import decide


router = APIRouter(prefix="/api/v1/extension", tags=["extension"])
logger = logging.getLogger("extension")


@router.get("/blocklist")
def get_blocklist(
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> dict:
    return {"success": True, "data": compile_rules(db, student).to_wire()}


@router.get("/time-restrictions")
def get_time_restrictions(
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> dict:
    restrictions = resolve_time_restrictions(db, student)
    return {"success": True, "data": restrictions.model_dump(by_alias=True, exclude_none=True)}


@router.post("/check-url")
def check_url(
    payload: UrlCheckRequest,
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> dict:
    decision = decide(db, student, payload.url, payload.domain)
    if decision.blocked:
        logger.info("Blocked student=%s domain=%s reason=%s", student.id, payload.domain, decision.reason)
    return {"success": True, "data": decision.model_dump(by_alias=True, exclude_none=True)}


@router.post("/heartbeat")
def heartbeat(
    payload: HeartbeatRequest,
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> dict:
    commands = poll_commands(db, student, payload.acknowledged_command_ids)
    response = HeartbeatResponse(commands=commands, server_time=datetime.now(timezone.utc))
    return {"success": True, "data": response.model_dump(mode="json", by_alias=True)}
