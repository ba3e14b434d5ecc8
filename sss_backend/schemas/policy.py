"""
Pydantic schemas for policies and their per-type rule payloads.

The ``rules`` payload is a tagged union keyed by ``policy_type``. Each
variant validates its own fields, and `validate_policy_rules` adds the
"at least one of" requirement each type has at write time.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..core.errors import ValidationError

PolicyType = Literal["blocklist", "allowlist", "time_restriction"]
ScopeKind = Literal["global", "center", "student"]

DAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeWindow(CamelModel):
    start: Optional[str] = None
    end: Optional[str] = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _coerce_bound(cls, value: Any) -> Optional[str]:
        # Unusable bounds drop the window instead of the policy.
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return str(value)
        return value if isinstance(value, str) else None


class BlocklistRules(CamelModel):
    blocked_domains: List[str] = Field(default_factory=list)
    blocked_patterns: List[str] = Field(default_factory=list)
    blocked_categories: List[str] = Field(default_factory=list)


class AllowlistRules(CamelModel):
    allowed_domains: List[str] = Field(default_factory=list)
    allow_only_listed: bool = False


class TimeRestrictionRules(CamelModel):
    allowed_hours: Optional[TimeWindow] = None
    time_windows: List[TimeWindow] = Field(default_factory=list)
    # Unrecognised entries are dropped by normalize_allowed_days.
    allowed_days: List[Any] = Field(default_factory=list)
    max_session_minutes: Optional[int] = None
    timezone: Optional[str] = None


PolicyRules = Union[BlocklistRules, AllowlistRules, TimeRestrictionRules]

RULE_MODELS: dict[str, type[CamelModel]] = {
    "blocklist": BlocklistRules,
    "allowlist": AllowlistRules,
    "time_restriction": TimeRestrictionRules,
}


def normalize_allowed_days(days) -> list[str]:
    """Accept 0-indexed Sunday-based ints or day names; drop anything else."""
    if not isinstance(days, (list, tuple)):
        return []
    normalized: list[str] = []
    for day in days:
        if isinstance(day, bool):
            continue
        if isinstance(day, int):
            if 0 <= day < len(DAY_NAMES):
                normalized.append(DAY_NAMES[day])
            continue
        if isinstance(day, str) and day.lower() in DAY_NAMES:
            normalized.append(day.lower())
    return normalized


def parse_policy_rules(policy_type: str, raw: dict | None) -> PolicyRules:
    model = RULE_MODELS.get(policy_type)
    if model is None:
        raise ValidationError("Invalid policy type")
    if not isinstance(raw, dict):
        raise ValidationError("Rules object is required")
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid rules payload",
            details=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()],
        ) from exc


def validate_policy_rules(policy_type: str, raw: dict | None) -> dict:
    """Validate a rule payload for writing and return its stored form."""
    rules = parse_policy_rules(policy_type, raw)
    if isinstance(rules, BlocklistRules):
        if not (rules.blocked_domains or rules.blocked_patterns or rules.blocked_categories):
            raise ValidationError(
                "Blocklist policy must include blockedDomains, blockedPatterns, or blockedCategories"
            )
    elif isinstance(rules, AllowlistRules):
        if not rules.allowed_domains:
            raise ValidationError("Allowlist policy must include allowedDomains")
    else:
        has_hours = rules.allowed_hours is not None or bool(rules.time_windows)
        if not (has_hours or rules.allowed_days or rules.max_session_minutes):
            raise ValidationError(
                "Time restriction policy must include allowedHours, allowedDays, or maxSessionMinutes"
            )
        rules = rules.model_copy(update={"allowed_days": normalize_allowed_days(rules.allowed_days)})
    return rules.model_dump(by_alias=True, exclude_none=True)


class PolicyCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=256)
    description: Optional[str] = None
    policy_type: PolicyType
    scope: ScopeKind
    center: Optional[str] = None
    student: Optional[str] = None
    rules: dict
    priority: int = 0
    is_active: bool = True


class PolicyUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    description: Optional[str] = None
    policy_type: Optional[PolicyType] = None
    scope: Optional[ScopeKind] = None
    center: Optional[str] = None
    student: Optional[str] = None
    rules: Optional[dict] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class PolicyOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    policy_type: str
    scope: str
    center: Optional[str] = None
    student: Optional[str] = None
    rules: dict
    priority: int
    is_active: bool
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
