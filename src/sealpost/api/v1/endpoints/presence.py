# src/sealpost/api/v1/endpoints/presence.py
"""Live presence channel: WebSocket push of "new message" hints."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from sealpost.core.errors import NotFoundError
from sealpost.core.settings import settings

from ..dependencies import DeviceRegistryDep, PresenceDep, SessionDep

router = APIRouter(tags=["presence"])

logger = logging.getLogger(__name__)


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class WebSocketChannel:
    """Presence channel backed by a Starlette WebSocket.

    Frames are queued and written by one pump task, so ``offer`` never waits
    on the network and concurrent pushes never interleave on the socket.
    ``offer`` may be called from worker threads; the queue is only touched on
    the event loop that owns the socket.
    """

    def __init__(self, websocket: WebSocket, max_pending: int) -> None:
        self.websocket = websocket
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max_pending)
        self._closed = False
        self._pump: asyncio.Task[None] | None = None

    @property
    def writable(self) -> bool:
        return (
            not self._closed
            and self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        )

    def start(self) -> None:
        """Start the writer task."""
        if self._pump is None:
            self._pump = self._loop.create_task(self._run_pump())

    def offer(self, frame: Mapping[str, Any]) -> bool:
        if not self.writable:
            return False
        if _on_loop(self._loop):
            return self._enqueue(dict(frame))
        self._loop.call_soon_threadsafe(self._enqueue, dict(frame))
        return True

    def _enqueue(self, frame: dict[str, Any]) -> bool:
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Presence send queue full; dropping %s frame", frame.get("type"))
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._pump is not None:
            if _on_loop(self._loop):
                self._pump.cancel()
            else:
                self._loop.call_soon_threadsafe(self._pump.cancel)

    async def _run_pump(self) -> None:
        while True:
            frame = await self._queue.get()
            try:
                await self.websocket.send_json(frame)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug("Presence channel write failed: %s", e)
                self._closed = True
                return


@router.get("/presence/{device_id}")
async def get_presence(device_id: str, presence: PresenceDep) -> dict[str, Any]:
    """Report whether a device currently holds a live channel."""
    return {"deviceId": device_id, "online": presence.is_online(device_id)}


@router.websocket("/ws/{device_id}")
async def presence_socket(
    websocket: WebSocket,
    device_id: str,
    db: SessionDep,
    devices: DeviceRegistryDep,
    presence: PresenceDep,
) -> None:
    """Hold a device's live channel open until the transport closes.

    Frames sent to the client: ``connected`` on open, ``new_message`` hints
    as envelopes arrive, and ``pong`` in reply to ``ping``.
    """
    try:
        devices.get_by_id(device_id)
    except NotFoundError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Device not found")
        return
    finally:
        # Release the pooled connection; the socket may stay open for hours.
        db.rollback()

    await websocket.accept()
    channel = WebSocketChannel(websocket, settings.presence_send_queue_size)
    channel.start()
    presence.on_connect(device_id, channel)
    try:
        while True:
            raw = await websocket.receive_text()
            reply = presence.handle_frame(device_id, raw)
            if reply is not None:
                channel.offer(reply)
    except WebSocketDisconnect:
        pass
    finally:
        presence.on_disconnect(device_id, channel)
        channel.close()
