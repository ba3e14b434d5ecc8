"""
Request identity helpers for administrators and extension sessions.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .security import decode_access_token
from ..models.admin import Admin
from ..models.student import Student

SUPER_ADMIN = "super_admin"


@dataclass
class ActorContext:
    role: str
    admin_id: Optional[str] = None
    name: Optional[str] = None
    center_id: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN

    @property
    def restricted_center_id(self) -> Optional[str]:
        """Center the actor is confined to, or None when unrestricted."""
        if self.is_super_admin:
            return None
        return self.center_id


def _auth_disabled() -> bool:
    return os.getenv("SSS_AUTH_DISABLED", "false").lower() in {"1", "true", "yes"}


def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


def get_current_admin(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> ActorContext:
    if _auth_disabled():
        return ActorContext(role=SUPER_ADMIN, name="local")
    token = _extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    try:
        claims = decode_access_token(token, kind="admin")
    except ValueError:
        raise HTTPException(status_code=401, detail="Not authorized, token invalid")
    admin = db.get(Admin, str(claims.get("sub") or ""))
    if not admin:
        raise HTTPException(status_code=401, detail="Admin not found")
    if not admin.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated")
    return ActorContext(
        role=(admin.role or "viewer").lower(),
        admin_id=admin.id,
        name=admin.name,
        center_id=admin.center_id,
    )


def require_roles(*roles: str):
    def _dep(actor: ActorContext = Depends(get_current_admin)):
        allowed = {r.strip().lower() for r in roles if r and r.strip()}
        if allowed and actor.role not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden")
        return actor

    return _dep


def student_from_token(db: Session, token: Optional[str]) -> Student:
    if not token:
        raise HTTPException(status_code=401, detail="Not authorized, no session token")
    try:
        claims = decode_access_token(token, kind="student")
    except ValueError:
        raise HTTPException(status_code=401, detail="Not authorized, session invalid")
    student = db.get(Student, str(claims.get("sub") or ""))
    if not student or not student.is_active:
        raise HTTPException(status_code=401, detail="Student not found or inactive")
    return student


def get_current_student(
    x_session_token: Optional[str] = Header(None, alias="X-Session-Token"),
    db: Session = Depends(get_db),
) -> Student:
    return student_from_token(db, x_session_token)
