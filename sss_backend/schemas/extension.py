"""
Wire shapes served to the browser extension.

Field names are camelCase on the wire; optional fields that are unset
are omitted (serialise with ``by_alias=True, exclude_none=True``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import Field

from .policy import CamelModel

RESOURCE_TYPES = ["main_frame", "sub_frame"]


class RuleAction(CamelModel):
    type: Literal["block", "allow"]


class RuleCondition(CamelModel):
    url_filter: Optional[str] = None
    regex_filter: Optional[str] = None
    resource_types: List[str] = Field(default_factory=lambda: list(RESOURCE_TYPES))


class CompiledRule(CamelModel):
    id: int
    priority: int
    action: RuleAction
    condition: RuleCondition
    category: Optional[str] = None


class TimeWindowOut(CamelModel):
    start: str
    end: str


class TimeRestrictions(CamelModel):
    enabled: bool
    policy_id: Optional[str] = None
    policy_name: Optional[str] = None
    allowed_days: Optional[List[str]] = None
    time_windows: Optional[List[TimeWindowOut]] = None
    max_session_minutes: Optional[int] = None
    timezone: Optional[str] = None


class CompiledRuleSet(CamelModel):
    version: str
    rules: List[CompiledRule] = Field(default_factory=list)
    blocked_domains: List[str] = Field(default_factory=list)
    allowlist_domains: List[str] = Field(default_factory=list)
    allow_only_listed: bool = False
    time_restrictions: TimeRestrictions = Field(default_factory=lambda: TimeRestrictions(enabled=False))
    categories: List[str] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class UrlCheckRequest(CamelModel):
    url: Optional[str] = None
    domain: Optional[str] = None


class UrlDecision(CamelModel):
    blocked: bool
    reason: Optional[str] = None
    category: Optional[str] = None


class HeartbeatRequest(CamelModel):
    device_id: Optional[str] = None
    extension_version: Optional[str] = None
    browser_version: Optional[str] = None
    current_url: Optional[str] = None
    is_active: Optional[bool] = None
    acknowledged_command_ids: List[str] = Field(default_factory=list)


class CommandPayload(CamelModel):
    id: str
    type: str
    payload: Optional[dict] = None
    created_at: Optional[datetime] = None


class HeartbeatResponse(CamelModel):
    commands: List[CommandPayload] = Field(default_factory=list)
    server_time: datetime
