from sss_backend.services.rule_compiler import compile_rules
from sss_backend.services.url_decision import decide, find_blocked_site


def test_allow_only_listed_blocks_everything_else(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.policy("blocklist", {"blockedDomains": ["c.com"]}, priority=1)
    factory.policy("allowlist", {"allowedDomains": ["a.com"], "allowOnlyListed": True}, priority=5)

    assert decide(db, student, "https://a.com/page", "a.com").blocked is False
    assert decide(db, student, "https://www.a.com/", "www.a.com").blocked is False

    decision = decide(db, student, "https://b.com/", "b.com")
    assert decision.blocked is True
    assert decision.reason == "Not in allowlist"
    assert decision.category == "allowlist"


def test_blocked_site_reason_is_its_category(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.site("Casino.com", category="gambling")

    decision = decide(db, student, "https://casino.com/", "casino.com")
    assert decision.blocked is True
    assert decision.reason == "gambling"
    assert decision.category == "gambling"

    # Normalised comparison on the domain branch.
    assert decide(db, student, None, "www.casino.com").blocked is True
    # Exact only; subdomains do not match a stored domain site.
    assert decide(db, student, None, "live.casino.com").blocked is False


def test_regex_site_matches_when_pattern_contains_domain(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.site(r"^https?://(www\.)?poker.net/.*", pattern_type="regex", category="gambling")

    assert find_blocked_site(db, student, "poker.net") is not None
    assert find_blocked_site(db, student, "chess.net") is None


def test_site_scoped_to_other_student_is_ignored(db, factory):
    center = factory.center()
    student = factory.student(center)
    other = factory.student(center)
    factory.site("private.example", scope="student", scope_id=other.id)

    assert decide(db, student, None, "private.example").blocked is False
    assert decide(db, other, None, "private.example").blocked is True


def test_blocklist_domains_use_suffix_match(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.policy("blocklist", {"blockedDomains": ["youtube.com"]})

    for domain in ("youtube.com", "www.youtube.com", "m.youtube.com"):
        decision = decide(db, student, f"https://{domain}/", domain)
        assert decision.blocked is True
        assert decision.reason == "Blocked by policy"
        assert decision.category == "blocklist"
    assert decide(db, student, "https://notyoutube.com/", "notyoutube.com").blocked is False


def test_blocklist_patterns_are_globbed_against_url(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.policy("blocklist", {"blockedPatterns": ["*/games/*"]})

    assert decide(db, student, "https://example.com/games/chess", "example.com").blocked is True
    assert decide(db, student, "https://example.com/news", "example.com").blocked is False


def test_nothing_applicable_is_allowed(db, factory):
    center = factory.center()
    student = factory.student(center)
    decision = decide(db, student, "https://example.com/", "example.com")
    assert decision.blocked is False
    assert decision.reason is None


def test_decision_ignores_priority_between_allow_and_block(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.policy("blocklist", {"blockedDomains": ["a.com"]}, priority=10)
    factory.policy("allowlist", {"allowedDomains": ["a.com"]}, priority=1)

    assert decide(db, student, "https://a.com/", "a.com").blocked is True

    compiled = compile_rules(db, student)
    allow = next(rule for rule in compiled.rules if rule.action.type == "allow")
    block = next(rule for rule in compiled.rules if rule.action.type == "block")
    assert allow.priority == 101
    assert block.priority == 51
