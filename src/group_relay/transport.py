"""Transport seam between the relay hub and WebSocket connections."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from .models import PingProbe

logger = logging.getLogger(__name__)

CLOSE_POLICY_VIOLATION = 1008
CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011


class Connection(Protocol):
    """What the hub needs from a live client connection.

    ``send`` must not block: frames are queued and delivered in order.
    """

    @property
    def is_open(self) -> bool: ...

    def send(self, frame: str) -> None: ...

    def ping(self) -> None: ...

    async def close(self, code: int, reason: str = "") -> None: ...

    async def terminate(self) -> None: ...


class WebSocketConnection:
    """Starlette WebSocket wrapped with a bounded outbound queue and writer task.

    A connection whose queue fills up is marked closed: later sends are
    dropped and the hub removes it on the next liveness sweep.
    """

    def __init__(self, websocket: WebSocket, *, max_queue: int = 256) -> None:
        self._websocket = websocket
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_queue)
        self._writer: asyncio.Task[None] | None = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def accept(self) -> None:
        await self._websocket.accept()
        self._open = True
        self._writer = asyncio.create_task(self._write_loop(), name="relay-ws-writer")

    def send(self, frame: str) -> None:
        if not self._open:
            return
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            # reader stalled; stop queueing and let the liveness sweep drop it
            logger.warning("Outbound queue full (%d frames), marking connection closed", self._queue.maxsize)
            self._open = False

    def ping(self) -> None:
        # ASGI has no access to protocol-level pings; probe in-band instead.
        self.send(PingProbe().to_frame())

    async def receive(self) -> str:
        """Wait for the next text frame; raises ``WebSocketDisconnect`` on close."""

        message = await self._websocket.receive()
        if message["type"] == "websocket.disconnect":
            self._open = False
            raise WebSocketDisconnect(code=message.get("code", 1000))
        if message.get("text") is not None:
            return message["text"]
        data = message.get("bytes") or b""
        return data.decode("utf-8", errors="replace")

    async def close(self, code: int, reason: str = "") -> None:
        self._open = False
        await self._stop_writer()
        if WebSocketState.DISCONNECTED in (self._websocket.application_state, self._websocket.client_state):
            return
        try:
            await self._websocket.close(code=code, reason=reason)
        except RuntimeError:
            logger.debug("Ignored error while closing websocket", exc_info=True)

    async def terminate(self) -> None:
        await self.close(CLOSE_GOING_AWAY, "liveness timeout")

    async def _stop_writer(self) -> None:
        writer, self._writer = self._writer, None
        if writer is None or writer is asyncio.current_task():
            return
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass

    async def _write_loop(self) -> None:
        try:
            while True:
                frame = await self._queue.get()
                await self._websocket.send_text(frame)
        except asyncio.CancelledError:
            raise
        except (RuntimeError, WebSocketDisconnect, OSError) as exc:
            logger.warning("Failed to send frame to client: %s", exc)
            self._open = False
