"""
API endpoints for admin device commands.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...core.auth import ActorContext, get_current_admin, require_roles
from ...core.db import get_db
from ...core.pagination import DEFAULT_PAGE_SIZE, clamp_page_size, page_meta
from ...schemas.command import CommandCreate, CommandCreated
from ...services import commands as command_service
from ...services.live_channel import LiveChannel, get_live_channel


router = APIRouter(prefix="/api/v1/admin/commands", tags=["commands"])

ISSUERS = ("super_admin", "admin", "pod_admin")


@router.get("")
def list_commands(
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    student: Optional[str] = Query(None),
    center: Optional[str] = Query(None),
    scope: Optional[str] = Query(None),
    batch_id: Optional[str] = Query(None, alias="batchId"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    limit = clamp_page_size(limit)
    rows, total = command_service.list_commands(
        db,
        actor,
        status=status,
        command_type=type,
        student_id=student,
        center_id=center,
        scope=scope,
        batch_id=batch_id,
        page=page,
        limit=limit,
    )
    return {
        "success": True,
        "data": [command_service.to_command_out(c) for c in rows],
        "pagination": page_meta(page=page, limit=limit, total=total),
    }


@router.get("/{command_id}")
def get_command(
    command_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    command = command_service.get_command(db, actor, command_id)
    return {"success": True, "data": command_service.to_command_out(command)}


@router.post("", status_code=201)
def create_command(
    payload: CommandCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*ISSUERS)),
    channel: LiveChannel = Depends(get_live_channel),
) -> dict:
    batch = command_service.create_commands(
        db,
        actor,
        command_type=payload.type,
        target_type=payload.target_type,
        target_id=payload.target_id,
        payload=payload.payload,
        channel=channel,
    )
    created = CommandCreated(count=len(batch.commands), batch_id=batch.batch_id)
    return {"success": True, "data": created.model_dump(by_alias=True)}


@router.post("/{command_id}/execute")
def execute_command(
    command_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*ISSUERS)),
    channel: LiveChannel = Depends(get_live_channel),
) -> dict:
    command = command_service.retry_command(db, actor, channel, command_id)
    return {"success": True, "data": command_service.to_command_out(command)}
