import os
import tempfile
from pathlib import Path

# Isolated lightweight DB and deterministic auth for every test module.
DB_PATH = Path(tempfile.gettempdir()) / "sss_backend_test.db"
if DB_PATH.exists():
    DB_PATH.unlink()

os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{DB_PATH}")
os.environ.setdefault("SSS_ENV", "dev")
os.environ.setdefault("AUTO_CREATE_DB", "true")
os.environ.setdefault("AUTO_SEED_DEFAULT_CATEGORY", "true")
os.environ.setdefault("AUTO_SEED_ADMIN_USER", "false")
os.environ.setdefault("SSS_AUTH_DISABLED", "false")
os.environ.setdefault("SSS_JWT_SECRET", "test-jwt-secret-strong-value-123456")
os.environ.setdefault("SSS_PASSWORD_HASH_ROUNDS", "1000")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sss_backend.core.auth import ActorContext
from sss_backend.core.security import hash_secret
from sss_backend.models import Base
from sss_backend.models.activity import ActivityCategory, ActivityCategoryRule
from sss_backend.models.admin_command import AdminCommand
from sss_backend.models.blocked_site import BlockedSite
from sss_backend.models.center import Center
from sss_backend.models.policy import Policy
from sss_backend.models.student import Student


def _make_session():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    return SessionLocal()


class Factory:
    def __init__(self, db) -> None:
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def center(self, name: str = "North Center") -> Center:
        n = self._next()
        center = Center(name=name, code=f"CTR{n:03d}")
        self.db.add(center)
        self.db.commit()
        return center

    def student(self, center: Center, *, pin: str = "1234", is_active: bool = True) -> Student:
        n = self._next()
        student = Student(
            student_code=f"STU{n:04d}",
            name=f"Student {n}",
            pin_hash=hash_secret(pin),
            center_id=center.id,
            is_active=is_active,
        )
        self.db.add(student)
        self.db.commit()
        return student

    def site(self, pattern: str, *, pattern_type: str = "domain", scope: str = "global", scope_id=None, category: str = "custom", is_active: bool = True) -> BlockedSite:
        site = BlockedSite(
            pattern=pattern,
            pattern_type=pattern_type,
            category=category,
            scope=scope,
            scope_id=scope_id,
            is_active=is_active,
        )
        self.db.add(site)
        self.db.commit()
        return site

    def policy(self, policy_type: str, rules: dict, *, scope: str = "global", center_id=None, student_id=None, priority: int = 0, is_active: bool = True, name: str = "Policy") -> Policy:
        policy = Policy(
            name=name,
            policy_type=policy_type,
            scope=scope,
            center_id=center_id,
            student_id=student_id,
            rules=rules,
            priority=priority,
            is_active=is_active,
        )
        self.db.add(policy)
        self.db.commit()
        return policy

    def category(self, name: str) -> ActivityCategory:
        category = ActivityCategory(name=name, description="", color="slate", is_active=True)
        self.db.add(category)
        self.db.commit()
        return category

    def category_rule(self, category: ActivityCategory, pattern: str, pattern_type: str = "domain", is_active: bool = True) -> ActivityCategoryRule:
        rule = ActivityCategoryRule(category_id=category.id, pattern=pattern, pattern_type=pattern_type, is_active=is_active)
        self.db.add(rule)
        self.db.commit()
        return rule

    def command(self, student: Student, *, status: str = "pending", attempts: int = 0) -> AdminCommand:
        command = AdminCommand(
            type="SYNC_BLOCKLIST",
            student_id=student.id,
            center_id=student.center_id,
            scope="student",
            status=status,
            attempts=attempts,
        )
        self.db.add(command)
        self.db.commit()
        return command


@pytest.fixture()
def db():
    session = _make_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def factory(db) -> Factory:
    return Factory(db)


@pytest.fixture()
def super_admin() -> ActorContext:
    return ActorContext(role="super_admin", admin_id="admin-root", name="Root")


@pytest.fixture()
def center_admin():
    def _make(center: Center) -> ActorContext:
        return ActorContext(role="admin", admin_id=f"admin-{center.code}", name="Center Admin", center_id=center.id)

    return _make
