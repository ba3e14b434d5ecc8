"""
Scope resolution for policies, blocked sites and commands.

A scope is one of ``GlobalScope``, ``CenterScope`` or ``StudentScope``.
The write path (`resolve_targets`) enforces the administrator's
authorisation boundary; the read path (`applies_to` and the SQL clause
builders) decides which scoped entities apply to a requesting student.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..core.errors import ForbiddenError, NotFoundError, ValidationError
from ..models.blocked_site import BlockedSite
from ..models.center import Center
from ..models.policy import Policy
from ..models.student import Student

SCOPE_KINDS = ("global", "center", "student")

_SCOPE_WEIGHTS = {"student": 3, "center": 2, "global": 1}


@dataclass(frozen=True)
class GlobalScope:
    kind: ClassVar[str] = "global"


@dataclass(frozen=True)
class CenterScope:
    center_id: str
    kind: ClassVar[str] = "center"


@dataclass(frozen=True)
class StudentScope:
    student_id: str
    # Center of the student at resolution time.
    center_id: Optional[str] = None
    kind: ClassVar[str] = "student"


Scope = Union[GlobalScope, CenterScope, StudentScope]


def scope_weight(kind: Optional[str]) -> int:
    """More specific scopes win at equal declared priority."""
    return _SCOPE_WEIGHTS.get(kind or "", 1)


def scope_from_parts(kind: Optional[str], center_id: Optional[str], student_id: Optional[str]) -> Scope:
    if kind == "center" and center_id:
        return CenterScope(center_id=center_id)
    if kind == "student" and student_id:
        return StudentScope(student_id=student_id, center_id=center_id)
    return GlobalScope()


def policy_scope(policy: Policy) -> Scope:
    return scope_from_parts(policy.scope, policy.center_id, policy.student_id)


def site_scope(site: BlockedSite) -> Scope:
    if site.scope == "center":
        return scope_from_parts("center", site.scope_id, None)
    if site.scope == "student":
        return scope_from_parts("student", None, site.scope_id)
    return GlobalScope()


def resolve_targets(
    db: Session,
    kind: Optional[str],
    actor: ActorContext,
    *,
    center_id: Optional[str] = None,
    student_id: Optional[str] = None,
) -> Scope:
    """Validate a requested scope against the store and the actor's boundary."""
    if kind not in SCOPE_KINDS:
        raise ValidationError("Invalid scope")

    if kind == "global":
        if not actor.is_super_admin:
            raise ForbiddenError("Only super admin can manage global entries")
        return GlobalScope()

    if kind == "center":
        # Center-restricted actors always write to their own center.
        target_center = actor.restricted_center_id or center_id
        if not target_center:
            raise ValidationError("Center is required for center scope")
        if not db.get(Center, target_center):
            raise NotFoundError("Center not found")
        return CenterScope(center_id=target_center)

    if not student_id:
        raise ValidationError("Student is required for student scope")
    student = db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found")
    restricted = actor.restricted_center_id
    if restricted and student.center_id != restricted:
        raise ForbiddenError("Not authorized for this student")
    return StudentScope(student_id=student.id, center_id=student.center_id)


def applies_to(scope: Scope, student: Student) -> bool:
    if isinstance(scope, CenterScope):
        return scope.center_id == student.center_id
    if isinstance(scope, StudentScope):
        return scope.student_id == student.id
    return True


def ensure_can_manage(db: Session, actor: ActorContext, scope: Scope, *, write: bool = False) -> None:
    """Guard access to an existing scoped entity."""
    restricted = actor.restricted_center_id
    if not restricted:
        return
    if isinstance(scope, GlobalScope):
        if write:
            raise ForbiddenError("Only super admin can manage global entries")
        return
    if isinstance(scope, CenterScope):
        if scope.center_id != restricted:
            raise ForbiddenError("Not authorized for this center")
        return
    student_center = scope.center_id
    if student_center is None:
        student = db.get(Student, scope.student_id)
        student_center = student.center_id if student else None
    if student_center != restricted:
        raise ForbiddenError("Not authorized for this student")


def applicable_site_clause(student: Student):
    return or_(
        BlockedSite.scope == "global",
        and_(BlockedSite.scope == "center", BlockedSite.scope_id == student.center_id),
        and_(BlockedSite.scope == "student", BlockedSite.scope_id == student.id),
    )


def applicable_policy_clause(student: Student):
    return or_(
        Policy.scope == "global",
        and_(Policy.scope == "center", Policy.center_id == student.center_id),
        and_(Policy.scope == "student", Policy.student_id == student.id),
    )


def visible_site_clause(actor: ActorContext):
    restricted = actor.restricted_center_id
    if not restricted:
        return None
    center_students = select(Student.id).where(Student.center_id == restricted)
    return or_(
        BlockedSite.scope == "global",
        and_(BlockedSite.scope == "center", BlockedSite.scope_id == restricted),
        and_(BlockedSite.scope == "student", BlockedSite.scope_id.in_(center_students)),
    )


def visible_policy_clause(actor: ActorContext):
    restricted = actor.restricted_center_id
    if not restricted:
        return None
    return or_(
        Policy.scope == "global",
        and_(Policy.scope.in_(("center", "student")), Policy.center_id == restricted),
    )
