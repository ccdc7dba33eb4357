"""Relay hub: connection lifecycle, group broadcast and liveness sweeps."""

from __future__ import annotations

import asyncio
import hmac
import itertools
import logging
from typing import Dict, Protocol, Tuple

from fastapi.websockets import WebSocketDisconnect

from .config import Settings
from .groups import Group, GroupRegistry
from .models import ChatEvent, ChatRequest, HelloRequest, OutboundEvent, PongReply, SystemEvent
from .rate_limit import FixedWindowRateLimiter, RateLimitExceeded
from .resolution import ConnectRequest, client_address, resolve_group_key
from .schemas import parse_frame
from .session import Session
from .transport import CLOSE_INTERNAL_ERROR, CLOSE_POLICY_VIOLATION, Connection

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class ServedConnection(Connection, Protocol):
    """Connection that can also be accepted and read from."""

    async def accept(self) -> None: ...

    async def receive(self) -> str: ...


def _to_base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            return "".join(reversed(digits))


class RelayHub:
    """Owns groups, live sessions and the chat rate limiter.

    All handlers run on one event loop. The only await inside frame handling
    is the rate limiter check; everything else mutates state synchronously
    and pushes frames onto non-blocking connection queues.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        registry: GroupRegistry | None = None,
        limiter: FixedWindowRateLimiter | None = None,
    ) -> None:
        self._settings = settings
        self.registry = registry or GroupRegistry(history_limit=settings.history_limit)
        self.limiter = limiter or FixedWindowRateLimiter(
            points=settings.rate_limit_points,
            window=settings.rate_limit_window_seconds,
            max_keys=settings.rate_limit_max_keys,
        )
        self._connections: Dict[str, Tuple[Session, Connection]] = {}
        self._ids = itertools.count(1)
        self._heartbeat_task: asyncio.Task[None] | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def sessions(self) -> list[Session]:
        return [session for session, _ in self._connections.values()]

    async def start(self) -> None:
        """Start the periodic liveness sweep."""

        if self._heartbeat_task is not None:
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="relay-heartbeat")
        logger.info("Relay hub started, heartbeat every %.1fs", self._settings.heartbeat_interval_seconds)

    async def stop(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        for _, connection in list(self._connections.values()):
            await connection.close(1001, "server shutdown")

    def authorize(self, request: ConnectRequest) -> bool:
        secret = self._settings.chat_key
        if not secret:
            return True
        supplied = request.query.get("key") or ""
        return hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8"))

    async def handle_connection(self, connection: ServedConnection, request: ConnectRequest) -> None:
        """Drive one connection from accept to cleanup."""

        await connection.accept()
        session = await self.connect(connection, request)
        if session is None:
            return
        try:
            while True:
                raw = await connection.receive()
                await self.handle_frame(session, raw)
        except WebSocketDisconnect:
            logger.debug("Session %s disconnected", session.session_id)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error in websocket loop: %s", exc)
            await connection.close(CLOSE_INTERNAL_ERROR, "Internal error")
        finally:
            self.disconnect(session)
            await connection.close(1000)

    async def connect(self, connection: Connection, request: ConnectRequest) -> Session | None:
        """Authorize, resolve the group and send the initial roster.

        Returns ``None`` (after closing the connection with 1008) when the
        shared secret does not match.
        """

        if not self.authorize(request):
            logger.info("Rejected unauthorized connection from %s", request.peer_host or "unknown")
            await connection.close(CLOSE_POLICY_VIOLATION, "unauthorized")
            return None

        trust = self._settings.trust_forwarded_for
        group_key = resolve_group_key(
            request,
            require_code=self._settings.require_group_code,
            trust_forwarded_for=trust,
        )
        group = self.registry.get_or_create(group_key)
        session = Session(
            session_id=_to_base36(next(self._ids)),
            group_key=group_key,
            address=client_address(request, trust_forwarded_for=trust),
        )
        self._connections[session.session_id] = (session, connection)
        logger.debug("Session %s connected to group %s", session.session_id, group_key)
        connection.send(group.roster().to_frame())
        return session

    async def handle_frame(self, session: Session, raw: str | bytes) -> None:
        """Parse one inbound frame and dispatch it by type."""

        if session.closed:
            return
        message = parse_frame(raw)
        if isinstance(message, PongReply):
            session.is_alive = True
        elif isinstance(message, HelloRequest):
            self._handle_hello(session, message)
        elif isinstance(message, ChatRequest):
            await self._handle_chat(session, message)

    def disconnect(self, session: Session) -> None:
        """Release the session; announces departure only for joined sessions.

        Safe to call more than once.
        """

        if session.closed:
            return
        session.closed = True
        self._connections.pop(session.session_id, None)
        if session.nickname is None:
            return
        group = self.registry.get(session.group_key)
        if group is None or not group.remove_member(session.nickname):
            return
        logger.info("%s left group %s", session.nickname, group.key)
        self._announce(group, SystemEvent(text=f"{session.nickname} left"))
        self.broadcast(group.key, group.roster())

    def broadcast(self, group_key: str, event: OutboundEvent) -> int:
        """Send ``event`` to every joined, open connection in ``group_key``."""

        frame = event.to_frame()
        deliveries = 0
        for session, connection in list(self._connections.values()):
            if session.group_key != group_key or not session.joined or not connection.is_open:
                continue
            try:
                connection.send(frame)
                deliveries += 1
            except RuntimeError as exc:
                logger.warning("Failed to send %s to session %s: %s", event.type, session.session_id, exc)
        return deliveries

    async def heartbeat(self) -> int:
        """Run one liveness sweep; returns how many connections were dropped."""

        dropped = 0
        for session, connection in list(self._connections.values()):
            if session.closed:
                continue
            if not session.is_alive or not connection.is_open:
                logger.info("Terminating unresponsive session %s", session.session_id)
                await connection.terminate()
                self.disconnect(session)
                dropped += 1
                continue
            session.is_alive = False
            connection.ping()
        return dropped

    async def _heartbeat_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._settings.heartbeat_interval_seconds)
                try:
                    await self.heartbeat()
                except Exception:  # pylint: disable=broad-except
                    logger.exception("Liveness sweep failed")
        except asyncio.CancelledError:
            logger.debug("Heartbeat loop cancelled")
            raise

    def _handle_hello(self, session: Session, message: HelloRequest) -> None:
        if session.joined:
            return
        group = self.registry.get_or_create(session.group_key)
        nickname = self._pick_nickname(group, session, message.nickname)
        session.claim_nickname(nickname)
        group.add_member(nickname)
        logger.info("%s joined group %s", nickname, group.key)

        _, connection = self._connections[session.session_id]
        for event in group.history():
            if not connection.is_open:
                break
            connection.send(event.to_frame())

        self._announce(group, SystemEvent(text=f"{nickname} joined"))
        self.broadcast(group.key, group.roster())

    async def _handle_chat(self, session: Session, message: ChatRequest) -> None:
        if not session.joined:
            return
        try:
            await self.limiter.consume(session.address or "unknown")
        except RateLimitExceeded:
            logger.debug("Dropped chat from session %s: rate limited", session.session_id)
            return
        if session.closed:
            return
        text = message.text.strip()[: self._settings.message_max_length]
        if not text:
            return
        group = self.registry.get_or_create(session.group_key)
        self._announce(group, ChatEvent(from_=session.nickname, text=text))

    def _announce(self, group: Group, event: SystemEvent | ChatEvent) -> None:
        group.record(event)
        self.broadcast(group.key, event)

    def _pick_nickname(self, group: Group, session: Session, desired: str) -> str:
        nickname = desired.strip()[: self._settings.nickname_max_length] or f"user-{session.session_id}"
        while group.has_member(nickname):
            nickname = f"{nickname}-{session.session_id}"
        return nickname
