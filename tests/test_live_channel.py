import asyncio
import logging

from sss_backend.api.v1.live import _stop_sender
from sss_backend.services.live_channel import LiveChannel, student_room


def test_emit_reaches_every_sink_in_room():
    channel = LiveChannel()
    first, second, other = [], [], []
    room = student_room("s1")
    channel.register(room, first.append)
    channel.register(room, second.append)
    channel.register(student_room("s2"), other.append)

    assert channel.emit(room, "admin_command", {"id": "c1"}) == 2
    assert first == second == [{"event": "admin_command", "data": {"id": "c1"}}]
    assert other == []


def test_unregister_empties_room():
    channel = LiveChannel()
    room = student_room("s1")
    token = channel.register(room, lambda message: None)
    channel.unregister(room, token)
    assert channel.connection_count(room) == 0
    assert channel.emit(room, "admin_command", {}) == 0


def test_stop_sender_collects_failed_send(caplog):
    async def _run():
        async def _send():
            raise RuntimeError("socket closed")

        task = asyncio.create_task(_send())
        await asyncio.sleep(0)
        await _stop_sender(task, "student:s1")
        return task

    with caplog.at_level(logging.ERROR, logger="live"):
        task = asyncio.run(_run())
    assert task.done()
    assert "Live send failed" in caplog.text


def test_stop_sender_cancels_idle_pump():
    async def _run():
        task = asyncio.create_task(asyncio.Queue().get())
        await asyncio.sleep(0)
        await _stop_sender(task, "student:s1")
        return task

    assert asyncio.run(_run()).cancelled()
