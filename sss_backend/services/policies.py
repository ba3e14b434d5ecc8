"""
Policy administration: scoped create/update with rule payload validation
and per-scope priority uniqueness, plus list/get/delete/toggle.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..core.errors import ForbiddenError, NotFoundError, ValidationError
from ..models.policy import Policy
from ..models.student import Student
from ..schemas.policy import PolicyCreate, PolicyOut, PolicyUpdate, validate_policy_rules
from .scope import CenterScope, Scope, StudentScope, ensure_can_manage, policy_scope, resolve_targets, visible_policy_clause

logger = logging.getLogger("policies")


def to_policy_out(policy: Policy) -> dict:
    payload = {
        "id": policy.id,
        "name": policy.name,
        "description": policy.description,
        "policy_type": policy.policy_type,
        "scope": policy.scope,
        "center": policy.center_id,
        "student": policy.student_id,
        "rules": policy.rules or {},
        "priority": policy.priority or 0,
        "is_active": bool(policy.is_active),
        "created_by": policy.created_by,
        "created_at": policy.created_at,
        "updated_at": policy.updated_at,
    }
    return PolicyOut.model_validate(payload).model_dump(mode="json", by_alias=True)


def _scope_columns(scope: Scope) -> tuple[Optional[str], Optional[str]]:
    if isinstance(scope, CenterScope):
        return scope.center_id, None
    if isinstance(scope, StudentScope):
        return scope.center_id, scope.student_id
    return None, None


def _ensure_priority_free(
    db: Session,
    *,
    policy_id: Optional[str],
    scope: Scope,
    priority: int,
) -> None:
    center_id, student_id = _scope_columns(scope)
    stmt = select(Policy.id).where(
        Policy.scope == scope.kind,
        Policy.priority == priority,
        Policy.center_id.is_(None) if center_id is None else Policy.center_id == center_id,
        Policy.student_id.is_(None) if student_id is None else Policy.student_id == student_id,
    )
    if policy_id:
        stmt = stmt.where(Policy.id != policy_id)
    if db.execute(stmt.limit(1)).first():
        raise ValidationError("Priority is already used for this scope")


def get_policy(db: Session, actor: ActorContext, policy_id: str) -> Policy:
    policy = db.get(Policy, policy_id)
    if not policy:
        raise NotFoundError("Policy not found")
    ensure_can_manage(db, actor, policy_scope(policy))
    return policy


def list_policies(
    db: Session,
    actor: ActorContext,
    *,
    scope: Optional[str] = None,
    policy_type: Optional[str] = None,
    is_active: Optional[bool] = None,
    center_id: Optional[str] = None,
    student_id: Optional[str] = None,
    search: Optional[str] = None,
) -> list[Policy]:
    stmt = select(Policy)
    if scope:
        stmt = stmt.where(Policy.scope == scope)
    if policy_type:
        stmt = stmt.where(Policy.policy_type == policy_type)
    if is_active is not None:
        stmt = stmt.where(Policy.is_active == is_active)
    if center_id:
        stmt = stmt.where(Policy.center_id == center_id)
    if student_id:
        stmt = stmt.where(Policy.student_id == student_id)
    if search:
        needle = f"%{search.lower()}%"
        stmt = stmt.where(or_(Policy.name.ilike(needle), Policy.description.ilike(needle)))

    restricted = actor.restricted_center_id
    if restricted:
        if center_id and center_id != restricted:
            raise ForbiddenError("Not authorized for this center")
        if student_id:
            student = db.get(Student, student_id)
            if not student or student.center_id != restricted:
                raise ForbiddenError("Not authorized for this student")
        stmt = stmt.where(visible_policy_clause(actor))

    stmt = stmt.order_by(Policy.priority.desc(), Policy.created_at.desc())
    return list(db.execute(stmt).scalars().all())


def create_policy(db: Session, actor: ActorContext, data: PolicyCreate) -> Policy:
    scope = resolve_targets(db, data.scope, actor, center_id=data.center, student_id=data.student)
    rules = validate_policy_rules(data.policy_type, data.rules)
    _ensure_priority_free(db, policy_id=None, scope=scope, priority=data.priority)

    center_id, student_id = _scope_columns(scope)
    policy = Policy(
        name=data.name.strip(),
        description=data.description,
        policy_type=data.policy_type,
        scope=scope.kind,
        center_id=center_id,
        student_id=student_id,
        rules=rules,
        priority=data.priority,
        is_active=data.is_active,
        created_by=actor.admin_id,
    )
    db.add(policy)
    db.commit()
    db.refresh(policy)
    logger.info("Created %s policy %s scope=%s priority=%s", policy.policy_type, policy.id, policy.scope, policy.priority)
    return policy


def update_policy(db: Session, actor: ActorContext, policy_id: str, data: PolicyUpdate) -> Policy:
    policy = get_policy(db, actor, policy_id)
    ensure_can_manage(db, actor, policy_scope(policy), write=True)

    fields = data.model_fields_set
    scope_kind = data.scope or policy.scope
    policy_type = data.policy_type or policy.policy_type
    scope = resolve_targets(
        db,
        scope_kind,
        actor,
        center_id=data.center or policy.center_id,
        student_id=data.student or policy.student_id,
    )
    if data.rules is not None:
        rules = validate_policy_rules(policy_type, data.rules)
    elif policy_type != policy.policy_type:
        # Stored payload must also satisfy the new type.
        rules = validate_policy_rules(policy_type, policy.rules or {})
    else:
        rules = None
    priority = data.priority if data.priority is not None else (policy.priority or 0)
    _ensure_priority_free(db, policy_id=policy.id, scope=scope, priority=priority)

    if data.name:
        policy.name = data.name.strip()
    if "description" in fields:
        policy.description = data.description
    policy.policy_type = policy_type
    policy.scope = scope.kind
    policy.center_id, policy.student_id = _scope_columns(scope)
    if rules is not None:
        policy.rules = rules
    policy.priority = priority
    if data.is_active is not None:
        policy.is_active = data.is_active

    db.commit()
    db.refresh(policy)
    logger.info("Updated policy %s", policy.id)
    return policy


def delete_policy(db: Session, actor: ActorContext, policy_id: str) -> None:
    policy = get_policy(db, actor, policy_id)
    ensure_can_manage(db, actor, policy_scope(policy), write=True)
    db.delete(policy)
    db.commit()
    logger.info("Deleted policy %s", policy_id)


def toggle_policy(db: Session, actor: ActorContext, policy_id: str) -> Policy:
    policy = get_policy(db, actor, policy_id)
    ensure_can_manage(db, actor, policy_scope(policy), write=True)
    policy.is_active = not policy.is_active
    db.commit()
    db.refresh(policy)
    return policy
