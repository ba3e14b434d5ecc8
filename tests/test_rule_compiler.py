from sss_backend.services.rule_compiler import (
    CATCH_ALL_REGEX,
    compile_rules,
    create_rule_condition,
    next_version,
    resolve_time_restrictions,
)
from sss_backend.schemas.policy import normalize_allowed_days


def _without_version(wire: dict) -> dict:
    return {key: value for key, value in wire.items() if key != "version"}


def test_global_blocked_site_compiles_to_anchored_domain_rule(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.site("https://www.youtube.com/", category="streaming")

    wire = compile_rules(db, student).to_wire()

    assert wire["blockedDomains"] == ["youtube.com"]
    assert wire["categories"] == ["streaming"]
    [rule] = wire["rules"]
    assert rule == {
        "id": 1,
        "priority": 51,
        "action": {"type": "block"},
        "condition": {"urlFilter": "||youtube.com", "resourceTypes": ["main_frame", "sub_frame"]},
        "category": "streaming",
    }
    assert wire["timeRestrictions"] == {"enabled": False}


def test_more_specific_scope_outranks_broader_scope(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.site("center.example", scope="center", scope_id=center.id)
    factory.site("student.example", scope="student", scope_id=student.id)

    rules = compile_rules(db, student).rules
    by_filter = {rule.condition.url_filter: rule.priority for rule in rules}
    assert by_filter == {"||center.example": 52, "||student.example": 53}


def test_entries_for_other_centers_and_students_are_excluded(db, factory):
    center = factory.center()
    other = factory.center("Other")
    student = factory.student(center)
    neighbour = factory.student(other)
    factory.site("other-center.example", scope="center", scope_id=other.id)
    factory.site("neighbour.example", scope="student", scope_id=neighbour.id)
    factory.site("inactive.example", is_active=False)
    factory.policy("blocklist", {"blockedDomains": ["x.example"]}, scope="center", center_id=other.id)

    compiled = compile_rules(db, student)
    assert compiled.rules == []
    assert compiled.blocked_domains == []


def test_blocklist_and_allowlist_policies(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.policy(
        "blocklist",
        {"blockedDomains": ["games.com"], "blockedPatterns": ["casino"], "blockedCategories": ["gambling"]},
        priority=5,
    )
    factory.policy("allowlist", {"allowedDomains": ["khanacademy.org"]}, scope="center", center_id=center.id)

    compiled = compile_rules(db, student)
    wire = compiled.to_wire()

    assert [rule["id"] for rule in wire["rules"]] == [1, 2, 3]
    assert [(r["priority"], r["action"]["type"]) for r in wire["rules"]] == [(51, "block"), (51, "block"), (102, "allow")]
    assert wire["rules"][0]["condition"]["urlFilter"] == "||games.com"
    assert wire["rules"][1]["condition"]["regexFilter"] == "casino"
    assert wire["rules"][2]["condition"]["urlFilter"] == "||khanacademy.org"
    assert wire["blockedDomains"] == ["games.com"]
    assert wire["allowlistDomains"] == ["khanacademy.org"]
    assert wire["categories"] == ["gambling"]
    assert wire["allowOnlyListed"] is False


def test_allow_only_listed_appends_catch_all_block(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.policy("allowlist", {"allowedDomains": ["a.com"], "allowOnlyListed": True})

    compiled = compile_rules(db, student)

    assert compiled.allow_only_listed is True
    last = compiled.rules[-1]
    assert last.priority == 1
    assert last.action.type == "block"
    assert last.condition.regex_filter == CATCH_ALL_REGEX
    assert last.id == len(compiled.rules)


def test_allow_only_listed_without_domains_has_no_catch_all(db, factory):
    center = factory.center()
    student = factory.student(center)
    # Stored directly; the write path would refuse an empty allowlist.
    factory.policy("allowlist", {"allowedDomains": [], "allowOnlyListed": True})

    compiled = compile_rules(db, student)
    assert compiled.rules == []
    assert compiled.allow_only_listed is True


def test_compilation_is_deterministic_apart_from_version(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.site("a.example")
    factory.policy("blocklist", {"blockedDomains": ["b.example"]})

    first = compile_rules(db, student).to_wire()
    second = compile_rules(db, student).to_wire()
    assert _without_version(first) == _without_version(second)
    assert first["version"] != second["version"]


def test_toggle_off_and_on_restores_rule_set(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.site("keep.example")
    policy = factory.policy("blocklist", {"blockedDomains": ["toggle.example"]})

    before = _without_version(compile_rules(db, student).to_wire())

    policy.is_active = False
    db.commit()
    off = compile_rules(db, student)
    assert "toggle.example" not in off.blocked_domains

    policy.is_active = True
    db.commit()
    assert _without_version(compile_rules(db, student).to_wire()) == before


def test_malformed_stored_policy_is_skipped(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.policy("blocklist", {"blockedDomains": "not-a-list"})
    factory.policy("blocklist", {"blockedDomains": ["ok.example"]}, priority=1)

    compiled = compile_rules(db, student)
    assert compiled.blocked_domains == ["ok.example"]


def test_student_time_restriction_wins_at_equal_priority(db, factory):
    center = factory.center()
    student = factory.student(center)
    factory.policy(
        "time_restriction",
        {"allowedHours": {"start": "08:00", "end": "20:00"}, "allowedDays": [1, 2, 3]},
        name="School days",
    )
    mine = factory.policy(
        "time_restriction",
        {"timeWindows": [{"start": "09:00", "end": "11:00"}], "allowedDays": ["Saturday"], "maxSessionMinutes": 45},
        scope="student",
        center_id=center.id,
        student_id=student.id,
        name="Weekend",
    )

    restrictions = resolve_time_restrictions(db, student)
    assert restrictions.enabled is True
    assert restrictions.policy_id == mine.id
    assert restrictions.allowed_days == ["saturday"]
    assert [(w.start, w.end) for w in restrictions.time_windows] == [("09:00", "11:00")]
    assert restrictions.max_session_minutes == 45

    assert compile_rules(db, student).time_restrictions.policy_id == mine.id


def test_higher_priority_time_restriction_wins_over_scope(db, factory):
    center = factory.center()
    student = factory.student(center)
    broad = factory.policy(
        "time_restriction",
        {"allowedHours": {"start": "07:00", "end": "19:00"}},
        priority=10,
    )
    factory.policy(
        "time_restriction",
        {"maxSessionMinutes": 30},
        scope="student",
        center_id=center.id,
        student_id=student.id,
    )

    restrictions = resolve_time_restrictions(db, student)
    assert restrictions.policy_id == broad.id
    assert [(w.start, w.end) for w in restrictions.time_windows] == [("07:00", "19:00")]


def test_no_time_restriction_is_disabled(db, factory):
    center = factory.center()
    student = factory.student(center)
    assert resolve_time_restrictions(db, student).model_dump(by_alias=True, exclude_none=True) == {"enabled": False}


def test_create_rule_condition():
    assert create_rule_condition("https://www.Example.com/x", "domain").url_filter == "||example.com"
    assert create_rule_condition("^ads\\.", "regex").regex_filter == "^ads\\."
    assert create_rule_condition("example.com/path/*", "url").url_filter == "example.com/path/*"
    empty = create_rule_condition("", "domain")
    assert empty.url_filter is None and empty.regex_filter is None


def test_normalize_allowed_days():
    assert normalize_allowed_days([0, 6, "Monday", "funday", 9, True]) == ["sunday", "saturday", "monday"]
    assert normalize_allowed_days(None) == []


def test_next_version_is_strictly_increasing():
    frozen = lambda: 1_700_000_000.0  # noqa: E731
    first = next_version(frozen)
    second = next_version(frozen)
    assert int(second, 36) == int(first, 36) + 1


def test_stored_time_restriction_with_bad_days_still_applies(db, factory):
    center = factory.center()
    student = factory.student(center)
    policy = factory.policy(
        "time_restriction",
        {"allowedDays": ["monday", None, 2.5], "maxSessionMinutes": 60, "timeWindows": [{"start": "09:00", "end": None}]},
        scope="student",
        center_id=center.id,
        student_id=student.id,
    )

    restrictions = compile_rules(db, student).time_restrictions
    assert restrictions.enabled is True
    assert restrictions.policy_id == policy.id
    assert restrictions.allowed_days == ["monday"]
    assert restrictions.max_session_minutes == 60
    assert restrictions.time_windows == []
