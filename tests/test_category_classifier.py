import pytest
from sqlalchemy.exc import OperationalError

from sss_backend.core.errors import UpstreamError
from sss_backend.models.activity import DEFAULT_CATEGORY_NAME, ActivityCategory
from sss_backend.services.category_classifier import (
    CategoryClassifier,
    CategoryRuleCache,
    CategoryRuleSnapshot,
    ensure_default_category,
    load_active_category_rules,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _CountingLoader:
    def __init__(self, rules) -> None:
        self.rules = list(rules)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return list(self.rules)


def _classifier_for(db, ttl: float = 60.0) -> CategoryClassifier:
    return CategoryClassifier(CategoryRuleCache(lambda: load_active_category_rules(db), ttl_seconds=ttl))


def test_wildcard_category_rule(db, factory):
    education = factory.category("Education")
    factory.category_rule(education, "*.wikipedia.org")
    classifier = _classifier_for(db)

    assert classifier.classify("https://en.wikipedia.org/wiki/Python", "en.wikipedia.org") == "Education"
    assert classifier.classify("https://wikipedia.com/", "wikipedia.com") is None


def test_inactive_rules_are_not_loaded(db, factory):
    games = factory.category("Games")
    factory.category_rule(games, "chess.com", is_active=False)
    assert load_active_category_rules(db) == []


def test_first_matching_rule_wins():
    loader = _CountingLoader(
        [
            CategoryRuleSnapshot("*.google.com", "domain", "Search"),
            CategoryRuleSnapshot("docs.google.com", "domain", "Productivity"),
        ]
    )
    classifier = CategoryClassifier(CategoryRuleCache(loader))
    assert classifier.classify("https://docs.google.com/", "docs.google.com") == "Search"


def test_cache_refreshes_only_after_ttl():
    clock = _Clock()
    loader = _CountingLoader([CategoryRuleSnapshot("news.com", "domain", "News")])
    cache = CategoryRuleCache(loader, ttl_seconds=60, clock=clock)

    cache.get_or_refresh()
    clock.now += 59
    cache.get_or_refresh()
    assert loader.calls == 1

    loader.rules = [CategoryRuleSnapshot("news.com", "domain", "Media")]
    clock.now += 2
    rules = cache.get_or_refresh()
    assert loader.calls == 2
    assert rules[0].category_name == "Media"


def test_empty_snapshot_is_reloaded_on_next_call():
    clock = _Clock()
    loader = _CountingLoader([])
    cache = CategoryRuleCache(loader, ttl_seconds=60, clock=clock)

    cache.get_or_refresh()
    cache.get_or_refresh()
    assert loader.calls == 2


def test_invalidate_forces_reload():
    loader = _CountingLoader([CategoryRuleSnapshot("a.com", "domain", "A")])
    classifier = CategoryClassifier(CategoryRuleCache(loader))
    classifier.classify(None, "a.com")
    classifier.invalidate()
    classifier.classify(None, "a.com")
    assert loader.calls == 2


def test_loader_failure_is_upstream_error():
    def _broken():
        raise OperationalError("SELECT 1", {}, Exception("db down"))

    cache = CategoryRuleCache(_broken)
    with pytest.raises(UpstreamError):
        cache.get_or_refresh()


def test_ensure_default_category_is_idempotent(db):
    first = ensure_default_category(db)
    second = ensure_default_category(db)
    assert first.id == second.id
    assert db.query(ActivityCategory).filter(ActivityCategory.name == DEFAULT_CATEGORY_NAME).count() == 1
