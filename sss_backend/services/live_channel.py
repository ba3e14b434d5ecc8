"""
In-process registry of live extension connections, keyed by room.

Each connected extension socket registers a sink under ``student:<id>``.
Emitting to a room hands the message to every sink in it; the WebSocket
endpoint's sink forwards onto the socket's event loop, so `emit` is safe
to call from the sync request threadpool.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from typing import Any, Callable

from fastapi import Request
from starlette.websockets import WebSocket

logger = logging.getLogger("live_channel")

Sink = Callable[[dict], None]


def student_room(student_id: str) -> str:
    return f"student:{student_id}"


class LiveChannel:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rooms: dict[str, dict[int, Sink]] = {}
        self._ids = itertools.count(1)

    def register(self, room: str, sink: Sink) -> int:
        with self._lock:
            token = next(self._ids)
            self._rooms.setdefault(room, {})[token] = sink
        logger.info("Live connection joined room=%s token=%s", room, token)
        return token

    def unregister(self, room: str, token: int) -> None:
        with self._lock:
            members = self._rooms.get(room)
            if not members:
                return
            members.pop(token, None)
            if not members:
                self._rooms.pop(room, None)
        logger.info("Live connection left room=%s token=%s", room, token)

    def connection_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, {}))

    def emit(self, room: str, event: str, payload: Any) -> int:
        """Send to every sink in the room and return how many accepted it."""
        with self._lock:
            sinks = list(self._rooms.get(room, {}).items())
        message = {"event": event, "data": payload}
        delivered = 0
        for token, sink in sinks:
            try:
                sink(message)
            except RuntimeError as exc:
                # Event loop of a dropped socket is already closed.
                logger.warning("Dropping dead live connection room=%s token=%s: %s", room, token, exc)
                self.unregister(room, token)
                continue
            delivered += 1
        return delivered


def queue_sink(queue: asyncio.Queue, loop: asyncio.AbstractEventLoop) -> Sink:
    def _sink(message: dict) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, message)

    return _sink


def get_live_channel(request: Request) -> LiveChannel:
    channel = getattr(request.app.state, "live_channel", None)
    if channel is None:
        channel = LiveChannel()
        request.app.state.live_channel = channel
    return channel


def websocket_live_channel(websocket: WebSocket) -> LiveChannel:
    channel = getattr(websocket.app.state, "live_channel", None)
    if channel is None:
        channel = LiveChannel()
        websocket.app.state.live_channel = channel
    return channel
