import pytest

from sss_backend.core.config import settings
from sss_backend.core.errors import ForbiddenError, ValidationError
from sss_backend.services.commands import (
    COMMAND_EVENT,
    create_commands,
    get_command,
    list_commands,
    poll_commands,
    retry_command,
    to_command_out,
)
from sss_backend.services.live_channel import LiveChannel, student_room


def test_offline_student_receives_command_on_heartbeat(db, factory, super_admin):
    center = factory.center()
    student = factory.student(center)
    channel = LiveChannel()

    batch = create_commands(
        db,
        super_admin,
        command_type="FORCE_LOGOUT",
        target_type="student",
        target_id=student.id,
        channel=channel,
    )
    [command] = batch.commands
    assert batch.batch_id is None
    assert command.status == "pending"
    assert command.attempts == 0

    delivered = poll_commands(db, student)
    assert [item["id"] for item in delivered] == [command.id]
    assert delivered[0]["type"] == "FORCE_LOGOUT"
    db.refresh(command)
    assert command.status == "sent"
    assert command.attempts == 1
    assert command.delivered_at is not None

    # Unacknowledged sent commands are handed out again without another attempt.
    assert [item["id"] for item in poll_commands(db, student)] == [command.id]
    db.refresh(command)
    assert command.attempts == 1

    assert poll_commands(db, student, [command.id]) == []
    db.refresh(command)
    assert command.status == "acknowledged"
    assert command.acknowledged_at is not None


def test_connected_student_gets_pushed_command(db, factory, super_admin):
    center = factory.center()
    student = factory.student(center)
    channel = LiveChannel()
    received = []
    channel.register(student_room(student.id), received.append)

    batch = create_commands(
        db,
        super_admin,
        command_type="SYNC_BLOCKLIST",
        target_type="student",
        target_id=student.id,
        payload={"reason": "policy change"},
        channel=channel,
    )
    [command] = batch.commands
    db.refresh(command)

    assert command.status == "sent"
    assert command.attempts == 1
    assert len(received) == 1
    assert received[0]["event"] == COMMAND_EVENT
    assert received[0]["data"]["id"] == command.id
    assert received[0]["data"]["payload"] == {"reason": "policy change"}


def test_dead_sink_is_dropped_and_command_stays_pending(db, factory, super_admin):
    center = factory.center()
    student = factory.student(center)
    channel = LiveChannel()

    def _closed(message):
        raise RuntimeError("Event loop is closed")

    channel.register(student_room(student.id), _closed)
    [command] = create_commands(
        db, super_admin, command_type="FORCE_LOGOUT", target_type="student", target_id=student.id, channel=channel
    ).commands

    db.refresh(command)
    assert command.status == "pending"
    assert channel.connection_count(student_room(student.id)) == 0


def test_center_target_creates_batch_for_active_students(db, factory, super_admin):
    center = factory.center()
    first = factory.student(center)
    second = factory.student(center)
    factory.student(center, is_active=False)

    batch = create_commands(
        db, super_admin, command_type="SYNC_BLOCKLIST", target_type="center", target_id=center.id
    )
    assert {command.student_id for command in batch.commands} == {first.id, second.id}
    assert batch.batch_id is not None
    assert {command.batch_id for command in batch.commands} == {batch.batch_id}
    assert {command.scope for command in batch.commands} == {"center"}


def test_restricted_actor_broadcast_is_narrowed_to_own_center(db, factory, center_admin):
    own = factory.center("Own")
    other = factory.center("Other")
    mine = factory.student(own)
    factory.student(other)

    batch = create_commands(db, center_admin(own), command_type="SYNC_BLOCKLIST", target_type="all")
    [command] = batch.commands
    assert command.student_id == mine.id
    assert command.scope == "center"
    assert command.scope_id == own.id


def test_super_admin_broadcast_reaches_everyone(db, factory, super_admin):
    first = factory.student(factory.center("One"))
    second = factory.student(factory.center("Two"))

    batch = create_commands(db, super_admin, command_type="FORCE_LOGOUT", target_type="all")
    assert {command.student_id for command in batch.commands} == {first.id, second.id}
    assert {command.scope for command in batch.commands} == {"all"}


def test_invalid_command_requests(db, factory, super_admin):
    center = factory.center()
    student = factory.student(center)
    empty = factory.center("Empty")

    with pytest.raises(ValidationError):
        create_commands(db, super_admin, command_type="REBOOT", target_type="student", target_id=student.id)
    with pytest.raises(ValidationError):
        create_commands(db, super_admin, command_type="FORCE_LOGOUT", target_type="device", target_id=student.id)
    with pytest.raises(ValidationError) as excinfo:
        create_commands(db, super_admin, command_type="FORCE_LOGOUT", target_type="center", target_id=empty.id)
    assert excinfo.value.message == "No students found for command"


def test_max_attempts_marks_command_failed(db, factory, monkeypatch):
    monkeypatch.setattr(settings, "command_max_attempts", 2)
    center = factory.center()
    student = factory.student(center)
    command = factory.command(student, attempts=2)

    assert poll_commands(db, student) == []
    db.refresh(command)
    assert command.status == "failed"
    assert command.error == "Max delivery attempts exceeded"


def test_attempts_are_unbounded_without_cap(db, factory, monkeypatch):
    monkeypatch.setattr(settings, "command_max_attempts", None)
    center = factory.center()
    student = factory.student(center)
    command = factory.command(student, attempts=25)

    assert [item["id"] for item in poll_commands(db, student)] == [command.id]
    db.refresh(command)
    assert command.attempts == 26


def test_retry_requeues_failed_command(db, factory, super_admin):
    center = factory.center()
    student = factory.student(center)
    command = factory.command(student, status="failed", attempts=3)
    channel = LiveChannel()
    received = []
    channel.register(student_room(student.id), received.append)

    retried = retry_command(db, super_admin, channel, command.id)
    assert retried.status == "sent"
    assert retried.attempts == 4
    assert retried.error is None
    assert len(received) == 1


def test_command_visibility_for_restricted_actor(db, factory, super_admin, center_admin):
    own = factory.center("Own")
    other = factory.center("Other")
    mine = factory.command(factory.student(own))
    theirs = factory.command(factory.student(other))

    actor = center_admin(own)
    with pytest.raises(ForbiddenError):
        get_command(db, actor, theirs.id)
    assert get_command(db, actor, mine.id).id == mine.id

    rows, total = list_commands(db, actor)
    assert total == 1
    assert [row.id for row in rows] == [mine.id]

    rows, total = list_commands(db, super_admin, status="pending")
    assert total == 2

    out = to_command_out(mine)
    assert out["student"] == mine.student_id
    assert out["status"] == "pending"
    assert "batchId" in out
