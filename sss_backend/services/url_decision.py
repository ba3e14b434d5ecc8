"""
Real-time allow/block decision for a single URL.

This path is cheaper than compiling a full rule-set and intentionally
weaker: allowlist and blocklist policies are flattened into sets, so
policy priority does not order allow against deny here the way the
compiler's bands do.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from ..models.blocked_site import BlockedSite
from ..models.student import Student
from ..schemas.extension import UrlDecision
from ..schemas.policy import AllowlistRules, BlocklistRules
from .pattern_matcher import glob_matches, normalize_domain, suffix_match
from .rule_compiler import applicable_policies, load_policy_rules
from .scope import applicable_site_clause

logger = logging.getLogger("url_decision")

POLICY_BLOCK_REASON = "Blocked by policy"


def find_blocked_site(db: Session, student: Student, domain: Optional[str]) -> Optional[BlockedSite]:
    """Applicable site whose domain pattern equals ``domain`` or whose regex pattern contains it.

    The domain branch compares case-insensitively against both the raw and
    the normalised domain; the regex branch uses the raw domain only.
    """
    if not domain:
        return None
    exact = sorted({domain.lower(), normalize_domain(domain)} - {""})
    contains = func.lower(BlockedSite.pattern).contains(domain.lower(), autoescape=True)
    stmt = (
        select(BlockedSite)
        .where(
            BlockedSite.is_active.is_(True),
            applicable_site_clause(student),
            or_(
                and_(BlockedSite.pattern_type == "domain", func.lower(BlockedSite.pattern).in_(exact)),
                and_(BlockedSite.pattern_type == "regex", contains),
            ),
        )
        .order_by(BlockedSite.created_at.asc(), BlockedSite.id.asc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def decide(db: Session, student: Student, url: Optional[str], domain: Optional[str]) -> UrlDecision:
    site = find_blocked_site(db, student, domain)
    if site is not None:
        return UrlDecision(blocked=True, reason=site.category or POLICY_BLOCK_REASON, category=site.category)

    allowlist_domains: dict[str, None] = {}
    blocked_domains: dict[str, None] = {}
    blocked_patterns: list[str] = []
    allow_only_listed = False
    for policy in applicable_policies(db, student, ("allowlist", "blocklist")):
        rules = load_policy_rules(policy)
        if isinstance(rules, AllowlistRules):
            allowlist_domains.update(dict.fromkeys(rules.allowed_domains))
            allow_only_listed = allow_only_listed or rules.allow_only_listed
        elif isinstance(rules, BlocklistRules):
            blocked_domains.update(dict.fromkeys(rules.blocked_domains))
            blocked_patterns.extend(rules.blocked_patterns)

    if allow_only_listed and allowlist_domains:
        if not any(suffix_match(domain, allowed) for allowed in allowlist_domains):
            return UrlDecision(blocked=True, reason="Not in allowlist", category="allowlist")

    if domain and any(suffix_match(domain, blocked) for blocked in blocked_domains):
        return UrlDecision(blocked=True, reason=POLICY_BLOCK_REASON, category="blocklist")

    if url and any(glob_matches(pattern, url) for pattern in blocked_patterns):
        return UrlDecision(blocked=True, reason=POLICY_BLOCK_REASON, category="blocklist")

    return UrlDecision(blocked=False)
