"""
Authentication endpoints for the dashboard and the browser extension.

Admins sign in with email and password and receive a bearer token. The
extension signs a student in with student code and PIN and receives a
session token sent back as ``X-Session-Token``.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...core.auth import ActorContext, get_current_admin
from ...core.config import settings
from ...core.db import get_db
from ...core.security import create_access_token, verify_secret
from ...models.admin import Admin
from ...models.student import Student


router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class AdminLoginIn(BaseModel):
    email: str
    password: str


class StudentLoginIn(BaseModel):
    student_code: str = Field(..., alias="studentCode", min_length=1)
    pin: str = Field(..., min_length=1)


@router.post("/admin/login")
def admin_login(payload: AdminLoginIn, db: Session = Depends(get_db)) -> dict:
    email = payload.email.strip().lower()
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail="email and password are required")
    admin = db.query(Admin).filter(func.lower(Admin.email) == email).first()
    if not admin or not verify_secret(payload.password, admin.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not admin.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated")
    admin.last_login_at = datetime.utcnow()
    db.commit()
    token = create_access_token(
        kind="admin",
        sub=admin.id,
        ttl_minutes=settings.admin_token_ttl_min,
        role=admin.role,
        center_id=admin.center_id,
    )
    return {
        "success": True,
        "data": {
            "token": token,
            "tokenType": "bearer",
            "admin": {
                "id": admin.id,
                "email": admin.email,
                "name": admin.name,
                "role": admin.role,
                "center": admin.center_id,
            },
        },
    }


@router.get("/admin/me")
def admin_me(actor: ActorContext = Depends(get_current_admin)) -> dict:
    return {
        "success": True,
        "data": {"id": actor.admin_id, "name": actor.name, "role": actor.role, "center": actor.center_id},
    }


@router.post("/student/login")
def student_login(payload: StudentLoginIn, db: Session = Depends(get_db)) -> dict:
    code = payload.student_code.strip().upper()
    student = db.query(Student).filter(func.upper(Student.student_code) == code).first()
    if not student or not verify_secret(payload.pin, student.pin_hash):
        raise HTTPException(status_code=401, detail="Invalid student ID or PIN")
    if not student.is_active:
        raise HTTPException(status_code=401, detail="Student account is inactive")
    student.last_login_at = datetime.utcnow()
    db.commit()
    token = create_access_token(
        kind="student",
        sub=student.id,
        ttl_minutes=settings.student_session_ttl_min,
        center_id=student.center_id,
    )
    return {
        "success": True,
        "data": {
            "sessionToken": token,
            "student": {
                "id": student.id,
                "studentCode": student.student_code,
                "name": student.name,
                "center": student.center_id,
            },
        },
    }
