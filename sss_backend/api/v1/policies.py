"""
API endpoints for managing supervision policies.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...core.auth import ActorContext, get_current_admin, require_roles
from ...core.db import get_db
from ...schemas.policy import PolicyCreate, PolicyUpdate
from ...services import policies as policy_service


router = APIRouter(prefix="/api/v1/policies", tags=["policies"])

MANAGERS = ("super_admin", "admin", "pod_admin")


@router.get("")
def list_policies(
    scope: Optional[str] = Query(None),
    policy_type: Optional[str] = Query(None, alias="policyType"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    center: Optional[str] = Query(None),
    student: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    rows = policy_service.list_policies(
        db,
        actor,
        scope=scope,
        policy_type=policy_type,
        is_active=is_active,
        center_id=center,
        student_id=student,
        search=search,
    )
    return {"success": True, "data": [policy_service.to_policy_out(p) for p in rows]}


@router.get("/{policy_id}")
def get_policy(
    policy_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_admin),
) -> dict:
    return {"success": True, "data": policy_service.to_policy_out(policy_service.get_policy(db, actor, policy_id))}


@router.post("", status_code=201)
def create_policy(
    payload: PolicyCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    policy = policy_service.create_policy(db, actor, payload)
    return {"success": True, "data": policy_service.to_policy_out(policy)}


@router.put("/{policy_id}")
def update_policy(
    policy_id: str,
    payload: PolicyUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    policy = policy_service.update_policy(db, actor, policy_id, payload)
    return {"success": True, "data": policy_service.to_policy_out(policy)}


@router.delete("/{policy_id}")
def delete_policy(
    policy_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    policy_service.delete_policy(db, actor, policy_id)
    return {"success": True, "message": "Policy deleted"}


@router.patch("/{policy_id}/toggle")
def toggle_policy(
    policy_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(*MANAGERS)),
) -> dict:
    policy = policy_service.toggle_policy(db, actor, policy_id)
    return {"success": True, "data": policy_service.to_policy_out(policy)}
