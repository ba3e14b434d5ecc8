"""
SQLAlchemy model base class for the SSS backend.

This package defines ORM models for centers, students, administrators,
blocklist entries, policies, activity categorisation and device
commands. All models inherit from the declarative `Base` defined here.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


from .center import Center  # noqa: E402,F401
from .student import Student  # noqa: E402,F401
from .admin import Admin  # noqa: E402,F401
from .blocked_site import BlockedSite  # noqa: E402,F401
from .policy import Policy  # noqa: E402,F401
from .activity import Activity, ActivityCategory, ActivityCategoryRule  # noqa: E402,F401
from .admin_command import AdminCommand  # noqa: E402,F401

__all__ = [
    "Base",

    # Organisation
    "Center",
    "Student",
    "Admin",

    # Blocking / Policies
    "BlockedSite",
    "Policy",

    # Activity
    "Activity",
    "ActivityCategory",
    "ActivityCategoryRule",

    # Commands
    "AdminCommand",
]
