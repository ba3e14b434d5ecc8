"""
Bootstrap seed helpers run at startup.
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.auth import SUPER_ADMIN
from ..core.security import hash_secret
from ..models.admin import Admin
from .category_classifier import ensure_default_category


def seed_default_category(db: Session) -> None:
    ensure_default_category(db)


def seed_admin_user(db: Session) -> None:
    logger = logging.getLogger("auth-seed")
    email = (os.getenv("SSS_ADMIN_EMAIL") or "admin@sss.local").strip().lower()
    password = (os.getenv("SSS_ADMIN_PASSWORD") or "").strip()
    name = (os.getenv("SSS_ADMIN_NAME") or "Super Admin").strip()

    if not email:
        logger.warning("Skipping admin seed: empty SSS_ADMIN_EMAIL")
        return
    if not password:
        logger.warning("Skipping admin seed: SSS_ADMIN_PASSWORD is empty")
        return

    existing = db.query(Admin).filter(func.lower(Admin.email) == email).first()
    if existing:
        changed = False
        if existing.role != SUPER_ADMIN:
            existing.role = SUPER_ADMIN
            changed = True
        if not existing.is_active:
            existing.is_active = True
            changed = True
        if changed:
            db.add(existing)
            db.commit()
        return

    db.add(
        Admin(
            email=email,
            name=name or "Super Admin",
            password_hash=hash_secret(password),
            role=SUPER_ADMIN,
            is_active=True,
        )
    )
    db.commit()
    logger.info("Seeded super admin %s", email)
