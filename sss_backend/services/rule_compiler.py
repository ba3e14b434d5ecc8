"""
Compile the blocked sites and policies applicable to a student into a
prioritised rule-set for the extension's content-blocking engine.

Priority bands:
  - block rules (blocked sites, blocklist domains and patterns): 50 + scope weight
  - allow rules (allowlist domains): 100 + scope weight
  - allow-only-listed backstop: 1

Scope weight is 3 for student, 2 for center and 1 for global scope, so a
more specific entry outranks a broader one in the same band. Rule ids are
assigned from 1 in emission order and are only stable within one
compilation. Nothing here is cached; every call reads the store.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import ValidationError
from ..models.blocked_site import BlockedSite
from ..models.policy import Policy
from ..models.student import Student
from ..schemas.extension import (
    CompiledRule,
    CompiledRuleSet,
    RuleAction,
    RuleCondition,
    TimeRestrictions,
    TimeWindowOut,
)
from ..schemas.policy import (
    AllowlistRules,
    BlocklistRules,
    PolicyRules,
    TimeRestrictionRules,
    normalize_allowed_days,
    parse_policy_rules,
)
from .pattern_matcher import normalize_domain
from .scope import applicable_policy_clause, applicable_site_clause, scope_weight

logger = logging.getLogger("rule_compiler")

BLOCK_BAND = 50
ALLOW_BAND = 100
CATCH_ALL_PRIORITY = 1
CATCH_ALL_REGEX = "^https?://.+"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_version_lock = threading.Lock()
_last_version_ms = 0


def _to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def next_version(clock=time.time) -> str:
    """Time-based change token; strictly increasing within the process."""
    global _last_version_ms
    now_ms = int(clock() * 1000)
    with _version_lock:
        _last_version_ms = max(now_ms, _last_version_ms + 1)
        return _to_base36(_last_version_ms)


def create_rule_condition(pattern: Optional[str], pattern_type: str = "domain") -> RuleCondition:
    if not pattern or not isinstance(pattern, str):
        return RuleCondition()
    trimmed = pattern.strip()
    if pattern_type == "regex":
        return RuleCondition(regex_filter=trimmed)
    if pattern_type == "domain":
        normalized = normalize_domain(trimmed)
        if not normalized:
            return RuleCondition(url_filter=trimmed[2:] if trimmed.startswith("||") else trimmed)
        return RuleCondition(url_filter=f"||{normalized}")
    return RuleCondition(url_filter=trimmed)


def load_policy_rules(policy: Policy) -> Optional[PolicyRules]:
    """Parse a stored payload; a malformed one is skipped rather than failing the compile."""
    try:
        return parse_policy_rules(policy.policy_type, policy.rules or {})
    except ValidationError as exc:
        logger.warning("Skipping policy %s with unreadable rules: %s", policy.id, exc.message)
        return None


def build_time_restrictions(policy: Policy, rules: Optional[TimeRestrictionRules] = None) -> TimeRestrictions:
    if rules is None:
        parsed = load_policy_rules(policy)
        rules = parsed if isinstance(parsed, TimeRestrictionRules) else TimeRestrictionRules()
    windows: list[TimeWindowOut] = []
    if rules.allowed_hours and rules.allowed_hours.start and rules.allowed_hours.end:
        windows.append(TimeWindowOut(start=rules.allowed_hours.start, end=rules.allowed_hours.end))
    for window in rules.time_windows:
        if window.start and window.end:
            windows.append(TimeWindowOut(start=window.start, end=window.end))
    return TimeRestrictions(
        enabled=True,
        policy_id=policy.id,
        policy_name=policy.name,
        allowed_days=normalize_allowed_days(rules.allowed_days),
        time_windows=windows,
        max_session_minutes=rules.max_session_minutes,
        timezone=rules.timezone,
    )


def _policy_sort_key(policy: Policy) -> tuple:
    return (-(policy.priority or 0), -scope_weight(policy.scope), policy.id)


def applicable_sites(db: Session, student: Student) -> list[BlockedSite]:
    stmt = (
        select(BlockedSite)
        .where(BlockedSite.is_active.is_(True), applicable_site_clause(student))
        .order_by(BlockedSite.created_at.asc(), BlockedSite.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


def applicable_policies(db: Session, student: Student, policy_types: Iterable[str]) -> list[Policy]:
    """Active policies for the student, highest priority first, more specific scope on ties."""
    stmt = select(Policy).where(
        Policy.is_active.is_(True),
        Policy.policy_type.in_(tuple(policy_types)),
        applicable_policy_clause(student),
    )
    return sorted(db.execute(stmt).scalars().all(), key=_policy_sort_key)


class _RuleBuilder:
    def __init__(self) -> None:
        self.rules: list[CompiledRule] = []
        self.blocked_domains: dict[str, None] = {}
        self.allowlist_domains: dict[str, None] = {}
        self.categories: dict[str, None] = {}
        self.allow_only_listed = False

    def emit(self, priority: int, action: str, condition: RuleCondition, category: Optional[str] = None) -> None:
        self.rules.append(
            CompiledRule(
                id=len(self.rules) + 1,
                priority=priority,
                action=RuleAction(type=action),
                condition=condition,
                category=category,
            )
        )

    def add_site(self, site: BlockedSite) -> None:
        if site.pattern_type == "domain":
            normalized = normalize_domain(site.pattern)
            if normalized:
                self.blocked_domains[normalized] = None
        if site.category:
            self.categories[site.category] = None
        self.emit(
            BLOCK_BAND + scope_weight(site.scope),
            "block",
            create_rule_condition(site.pattern, site.pattern_type),
            category=site.category,
        )

    def add_blocklist(self, policy: Policy, rules: BlocklistRules) -> None:
        priority = BLOCK_BAND + scope_weight(policy.scope)
        for domain in rules.blocked_domains:
            normalized = normalize_domain(domain)
            if normalized:
                self.blocked_domains[normalized] = None
            self.emit(priority, "block", create_rule_condition(domain, "domain"))
        for pattern in rules.blocked_patterns:
            self.emit(priority, "block", create_rule_condition(pattern, "regex"))
        for category in rules.blocked_categories:
            self.categories[category] = None

    def add_allowlist(self, policy: Policy, rules: AllowlistRules) -> None:
        priority = ALLOW_BAND + scope_weight(policy.scope)
        for domain in rules.allowed_domains:
            normalized = normalize_domain(domain)
            if normalized:
                self.allowlist_domains[normalized] = None
            self.emit(priority, "allow", create_rule_condition(domain, "domain"))
        if rules.allow_only_listed:
            self.allow_only_listed = True

    def finish(self) -> None:
        if self.allow_only_listed and self.allowlist_domains:
            self.emit(CATCH_ALL_PRIORITY, "block", RuleCondition(regex_filter=CATCH_ALL_REGEX))


def compile_rules(db: Session, student: Student) -> CompiledRuleSet:
    sites = applicable_sites(db, student)
    policies = applicable_policies(db, student, ("blocklist", "allowlist", "time_restriction"))

    builder = _RuleBuilder()
    for site in sites:
        builder.add_site(site)

    time_policies: list[tuple[Policy, TimeRestrictionRules]] = []
    for policy in policies:
        rules = load_policy_rules(policy)
        if isinstance(rules, TimeRestrictionRules):
            time_policies.append((policy, rules))
        elif isinstance(rules, BlocklistRules):
            builder.add_blocklist(policy, rules)
        elif isinstance(rules, AllowlistRules):
            builder.add_allowlist(policy, rules)
    builder.finish()

    if time_policies:
        time_restrictions = build_time_restrictions(*time_policies[0])
    else:
        time_restrictions = TimeRestrictions(enabled=False)

    logger.debug(
        "Compiled %d rules for student=%s (sites=%d policies=%d)",
        len(builder.rules),
        student.id,
        len(sites),
        len(policies),
    )
    return CompiledRuleSet(
        version=next_version(),
        rules=builder.rules,
        blocked_domains=list(builder.blocked_domains),
        allowlist_domains=list(builder.allowlist_domains),
        allow_only_listed=builder.allow_only_listed,
        time_restrictions=time_restrictions,
        categories=list(builder.categories),
    )


def resolve_time_restrictions(db: Session, student: Student) -> TimeRestrictions:
    policies = applicable_policies(db, student, ("time_restriction",))
    for policy in policies:
        rules = load_policy_rules(policy)
        if isinstance(rules, TimeRestrictionRules):
            return build_time_restrictions(policy, rules)
    return TimeRestrictions(enabled=False)
