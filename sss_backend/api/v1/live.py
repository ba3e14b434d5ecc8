"""
Live push channel for the browser extension.

The extension opens ``/api/v1/live/ws?token=<session token>`` and joins
its ``student:<id>`` room; admin commands are pushed down this socket as
``{"event": "admin_command", "data": {...}}`` messages.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from ...core.auth import student_from_token
from ...core.db import SessionContext
from ...core.errors import log_exception
from ...services.live_channel import queue_sink, student_room, websocket_live_channel


router = APIRouter(prefix="/api/v1/live", tags=["live"])
logger = logging.getLogger("live")


def _authenticate(token: Optional[str]) -> str:
    with SessionContext() as db:
        return student_from_token(db, token).id


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _stop_sender(sender: asyncio.Task, room: str) -> None:
    sender.cancel()
    try:
        await sender
    except (asyncio.CancelledError, WebSocketDisconnect):
        pass
    except Exception as exc:
        log_exception(logger, "Live send failed", extra={"room": room}, exc=exc)


@router.websocket("/ws")
async def live_socket(websocket: WebSocket, token: Optional[str] = Query(None)) -> None:
    try:
        student_id = await run_in_threadpool(_authenticate, token)
    except HTTPException as exc:
        logger.info("Rejected live connection: %s", exc.detail)
        await websocket.close(code=1008)
        return

    channel = websocket_live_channel(websocket)
    room = student_room(student_id)
    queue: asyncio.Queue = asyncio.Queue()
    # Joined before accept so nothing emitted after the handshake is missed.
    member = channel.register(room, queue_sink(queue, asyncio.get_running_loop()))
    try:
        await websocket.accept()
    except Exception:
        channel.unregister(room, member)
        raise
    sender = asyncio.create_task(_pump(websocket, queue))
    try:
        while True:
            # Client frames are keep-alives only.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        channel.unregister(room, member)
        await _stop_sender(sender, room)
