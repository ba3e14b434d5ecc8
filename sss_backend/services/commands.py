"""
Admin device command lifecycle.

    pending --(push over the live channel, or heartbeat poll)--> sent
    sent --(client acknowledgement)--> acknowledged
    any --(mark_failed)--> failed

Every delivery try increments ``attempts``. Nothing fails a command on its
own unless ``COMMAND_MAX_ATTEMPTS`` is configured, in which case a
delivery that would go past the cap marks the command failed instead.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..core.config import settings
from ..core.errors import ForbiddenError, NotFoundError, ValidationError
from ..models.admin_command import COMMAND_TYPES, AdminCommand
from ..models.student import Student
from ..schemas.command import CommandOut
from ..schemas.extension import CommandPayload
from .live_channel import LiveChannel, student_room
from .scope import CenterScope, resolve_targets

logger = logging.getLogger("commands")

COMMAND_EVENT = "admin_command"
TARGET_TYPES = ("student", "center", "all")


@dataclass
class CommandBatch:
    commands: list[AdminCommand]
    batch_id: Optional[str] = None


def build_command_payload(command: AdminCommand) -> dict:
    return CommandPayload(
        id=command.id,
        type=command.type,
        payload=command.payload or None,
        created_at=command.created_at,
    ).model_dump(mode="json", by_alias=True)


def to_command_out(command: AdminCommand) -> dict:
    payload = {
        "id": command.id,
        "type": command.type,
        "student": command.student_id,
        "center": command.center_id,
        "scope": command.scope,
        "scope_id": command.scope_id,
        "payload": command.payload,
        "status": command.status,
        "attempts": command.attempts or 0,
        "last_attempt_at": command.last_attempt_at,
        "delivered_at": command.delivered_at,
        "acknowledged_at": command.acknowledged_at,
        "created_by": command.created_by,
        "error": command.error,
        "batch_id": command.batch_id,
        "created_at": command.created_at,
        "updated_at": command.updated_at,
    }
    return CommandOut.model_validate(payload).model_dump(mode="json", by_alias=True)


def _active_students(db: Session, center_id: Optional[str] = None) -> list[Student]:
    stmt = select(Student).where(Student.is_active.is_(True))
    if center_id is not None:
        stmt = stmt.where(Student.center_id == center_id)
    return list(db.execute(stmt.order_by(Student.created_at.asc(), Student.id.asc())).scalars().all())


def _resolve_command_targets(
    db: Session,
    actor: ActorContext,
    target_type: str,
    target_id: Optional[str],
) -> tuple[list[Student], str, Optional[str]]:
    """Return (students, stored scope, scope id) for a command target."""
    if target_type == "student":
        scope = resolve_targets(db, "student", actor, student_id=target_id)
        return [db.get(Student, scope.student_id)], "student", None
    if target_type == "center":
        scope = resolve_targets(db, "center", actor, center_id=target_id)
        return _active_students(db, scope.center_id), "center", scope.center_id
    if target_type == "all":
        if not actor.is_super_admin:
            # Non-super actors broadcasting to "all" reach their own center only.
            if not actor.center_id:
                return [], "center", None
            narrowed = CenterScope(center_id=actor.center_id)
            return _active_students(db, narrowed.center_id), "center", narrowed.center_id
        return _active_students(db), "all", None
    raise ValidationError("Invalid target type")


def create_commands(
    db: Session,
    actor: ActorContext,
    *,
    command_type: str,
    target_type: str,
    target_id: Optional[str] = None,
    payload: Optional[dict] = None,
    channel: Optional[LiveChannel] = None,
) -> CommandBatch:
    if command_type not in COMMAND_TYPES:
        raise ValidationError("Invalid command type")
    if target_type not in TARGET_TYPES:
        raise ValidationError("Invalid target type")

    students, scope, scope_id = _resolve_command_targets(db, actor, target_type, target_id)
    if not students:
        raise ValidationError("No students found for command")

    batch_id = str(uuid.uuid4()) if len(students) > 1 else None
    commands = [
        AdminCommand(
            type=command_type,
            student_id=student.id,
            center_id=student.center_id,
            scope=scope,
            scope_id=scope_id,
            payload=payload,
            status="pending",
            attempts=0,
            created_by=actor.admin_id,
            batch_id=batch_id,
        )
        for student in students
    ]
    db.add_all(commands)
    db.commit()
    for command in commands:
        db.refresh(command)
    logger.info(
        "Created %d %s command(s) scope=%s scope_id=%s batch=%s",
        len(commands),
        command_type,
        scope,
        scope_id,
        batch_id,
    )

    dispatch_commands(db, channel, commands)
    return CommandBatch(commands=commands, batch_id=batch_id)


def _attempts_exhausted(command: AdminCommand) -> bool:
    cap = settings.command_max_attempts
    return cap is not None and (command.attempts or 0) >= cap


def mark_failed(db: Session, command: AdminCommand, error: str, *, commit: bool = True) -> AdminCommand:
    command.status = "failed"
    command.error = error
    logger.warning("Command %s failed after %s attempt(s): %s", command.id, command.attempts, error)
    if commit:
        db.commit()
    return command


def _mark_sent(command: AdminCommand, now: datetime) -> None:
    command.status = "sent"
    command.delivered_at = now
    command.last_attempt_at = now
    command.attempts = (command.attempts or 0) + 1


def dispatch_command(db: Session, channel: Optional[LiveChannel], command: AdminCommand) -> bool:
    """Push one command to the student's live room; False leaves it for the heartbeat poll."""
    if channel is None or not command.student_id:
        return False
    room = student_room(command.student_id)
    if channel.connection_count(room) == 0:
        return False
    if _attempts_exhausted(command):
        mark_failed(db, command, "Max delivery attempts exceeded")
        return False
    if channel.emit(room, COMMAND_EVENT, build_command_payload(command)) == 0:
        return False
    _mark_sent(command, datetime.utcnow())
    db.commit()
    logger.info("Pushed command %s to %s", command.id, room)
    return True


def dispatch_commands(db: Session, channel: Optional[LiveChannel], commands: Iterable[AdminCommand]) -> int:
    return sum(1 for command in commands if dispatch_command(db, channel, command))


def acknowledge_commands(db: Session, student: Student, command_ids: Iterable[str]) -> int:
    ids = [str(cid) for cid in command_ids if cid]
    if not ids:
        return 0
    result = db.execute(
        update(AdminCommand)
        .where(AdminCommand.id.in_(ids), AdminCommand.student_id == student.id)
        .values(status="acknowledged", acknowledged_at=datetime.utcnow(), updated_at=datetime.utcnow())
    )
    db.commit()
    return result.rowcount or 0


def poll_commands(db: Session, student: Student, ack_ids: Optional[Iterable[str]] = None) -> list[dict]:
    """Heartbeat delivery: acknowledge first, then hand out the oldest open commands."""
    acknowledge_commands(db, student, ack_ids or [])

    open_commands = (
        db.execute(
            select(AdminCommand)
            .where(AdminCommand.student_id == student.id, AdminCommand.status.in_(("pending", "sent")))
            .order_by(AdminCommand.created_at.asc(), AdminCommand.id.asc())
            .limit(settings.command_poll_limit)
        )
        .scalars()
        .all()
    )

    now = datetime.utcnow()
    delivered: list[AdminCommand] = []
    for command in open_commands:
        if command.status == "pending":
            if _attempts_exhausted(command):
                mark_failed(db, command, "Max delivery attempts exceeded", commit=False)
                continue
            _mark_sent(command, now)
        delivered.append(command)
    db.commit()
    return [build_command_payload(command) for command in delivered]


def _guard_command(actor: ActorContext, command: AdminCommand) -> None:
    restricted = actor.restricted_center_id
    if restricted and command.center_id != restricted:
        raise ForbiddenError("Not authorized for this command")


def get_command(db: Session, actor: ActorContext, command_id: str) -> AdminCommand:
    command = db.get(AdminCommand, command_id)
    if not command:
        raise NotFoundError("Command not found")
    _guard_command(actor, command)
    return command


def retry_command(db: Session, actor: ActorContext, channel: Optional[LiveChannel], command_id: str) -> AdminCommand:
    command = get_command(db, actor, command_id)
    command.status = "pending"
    command.error = None
    db.commit()
    dispatch_command(db, channel, command)
    db.refresh(command)
    return command


def list_commands(
    db: Session,
    actor: ActorContext,
    *,
    status: Optional[str] = None,
    command_type: Optional[str] = None,
    student_id: Optional[str] = None,
    center_id: Optional[str] = None,
    scope: Optional[str] = None,
    batch_id: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[AdminCommand], int]:
    filters = []
    if status:
        filters.append(AdminCommand.status == status)
    if command_type:
        filters.append(AdminCommand.type == command_type)
    if student_id:
        filters.append(AdminCommand.student_id == student_id)
    if scope:
        filters.append(AdminCommand.scope == scope)
    if batch_id:
        filters.append(AdminCommand.batch_id == batch_id)
    restricted = actor.restricted_center_id
    if restricted:
        filters.append(AdminCommand.center_id == restricted)
    elif center_id:
        filters.append(AdminCommand.center_id == center_id)

    total = db.execute(select(func.count()).select_from(AdminCommand).where(*filters)).scalar_one()
    rows = (
        db.execute(
            select(AdminCommand)
            .where(*filters)
            .order_by(AdminCommand.created_at.desc(), AdminCommand.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return list(rows), int(total)
