"""
Activity categorisation backed by a time-bounded rule cache.

Rules have no priority: the first active rule (in stored order) whose
pattern matches wins. The cache is an explicit object so the app and the
tests can each own one; a stale read of up to ``ttl_seconds`` after a rule
change is accepted, and writes through the admin API invalidate it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.db import SessionContext
from ..core.errors import UpstreamError, log_exception
from ..models.activity import DEFAULT_CATEGORY_NAME, ActivityCategory, ActivityCategoryRule
from .pattern_matcher import matches

logger = logging.getLogger("category_classifier")


@dataclass(frozen=True)
class CategoryRuleSnapshot:
    pattern: str
    pattern_type: str
    category_name: str


RuleLoader = Callable[[], Sequence[CategoryRuleSnapshot]]


def load_active_category_rules(db: Session) -> list[CategoryRuleSnapshot]:
    stmt = (
        select(ActivityCategoryRule.pattern, ActivityCategoryRule.pattern_type, ActivityCategory.name)
        .join(ActivityCategory, ActivityCategory.id == ActivityCategoryRule.category_id)
        .where(ActivityCategoryRule.is_active.is_(True))
        .order_by(ActivityCategoryRule.created_at.asc(), ActivityCategoryRule.id.asc())
    )
    return [
        CategoryRuleSnapshot(pattern=pattern, pattern_type=pattern_type or "domain", category_name=name)
        for pattern, pattern_type, name in db.execute(stmt).all()
        if name
    ]


def session_rule_loader() -> list[CategoryRuleSnapshot]:
    with SessionContext() as db:
        return load_active_category_rules(db)


class CategoryRuleCache:
    def __init__(
        self,
        loader: RuleLoader,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: tuple[CategoryRuleSnapshot, ...] = ()
        self._loaded_at: Optional[float] = None

    @property
    def loaded_at(self) -> Optional[float]:
        return self._loaded_at

    def _is_fresh(self, now: float) -> bool:
        if self._loaded_at is None or not self._snapshot:
            return False
        return (now - self._loaded_at) < self.ttl_seconds

    def get_or_refresh(self) -> tuple[CategoryRuleSnapshot, ...]:
        now = self._clock()
        with self._lock:
            if self._is_fresh(now):
                return self._snapshot
        # Load outside the lock; concurrent refreshes compute the same snapshot.
        try:
            rules = tuple(self._loader())
        except SQLAlchemyError as exc:
            log_exception(logger, "Category rule refresh failed", exc=exc)
            raise UpstreamError("Category rules unavailable") from exc
        with self._lock:
            self._snapshot = rules
            self._loaded_at = now
        logger.debug("Loaded %d category rules", len(rules))
        return rules

    def invalidate(self) -> None:
        with self._lock:
            self._loaded_at = None
            self._snapshot = ()


class CategoryClassifier:
    def __init__(self, cache: CategoryRuleCache) -> None:
        self.cache = cache

    def classify(self, url: Optional[str], domain: Optional[str]) -> Optional[str]:
        for rule in self.cache.get_or_refresh():
            if matches(rule.pattern, rule.pattern_type, domain, url):
                return rule.category_name
        return None

    def invalidate(self) -> None:
        self.cache.invalidate()


def build_default_classifier() -> CategoryClassifier:
    return CategoryClassifier(CategoryRuleCache(session_rule_loader, ttl_seconds=settings.category_cache_ttl_sec))


def get_classifier(request: Request) -> CategoryClassifier:
    classifier = getattr(request.app.state, "category_classifier", None)
    if classifier is None:
        classifier = build_default_classifier()
        request.app.state.category_classifier = classifier
    return classifier


def ensure_default_category(db: Session) -> ActivityCategory:
    existing = db.execute(
        select(ActivityCategory).where(ActivityCategory.name == DEFAULT_CATEGORY_NAME)
    ).scalar_one_or_none()
    if existing:
        return existing
    category = ActivityCategory(
        name=DEFAULT_CATEGORY_NAME,
        description="Default category for uncategorized domains",
        color="slate",
        is_active=True,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info("Created default activity category %s", DEFAULT_CATEGORY_NAME)
    return category
