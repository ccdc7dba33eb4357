"""Test doubles for driving the relay hub without a real transport."""

from __future__ import annotations

import json
from typing import Any

from group_relay.resolution import ConnectRequest


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeConnection:
    """In-memory stand-in for a WebSocket connection."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.frames: list[str] = []
        self.pings = 0
        self.closed_with: tuple[int, str] | None = None
        self.terminated = False
        self.fail_sends = fail_sends
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, frame: str) -> None:
        if self.fail_sends:
            raise RuntimeError("transport half-closed")
        self.frames.append(frame)

    def ping(self) -> None:
        self.pings += 1

    async def close(self, code: int, reason: str = "") -> None:
        self._open = False
        if self.closed_with is None:
            self.closed_with = (code, reason)

    async def terminate(self) -> None:
        self.terminated = True
        await self.close(1001, "liveness timeout")

    def events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        decoded = [json.loads(frame) for frame in self.frames]
        if event_type is None:
            return decoded
        return [event for event in decoded if event["type"] == event_type]

    def clear(self) -> None:
        self.frames.clear()


def make_request(*, group: str | None = None, key: str | None = None, host: str = "10.0.0.5") -> ConnectRequest:
    query: dict[str, str] = {}
    if group is not None:
        query["g"] = group
    if key is not None:
        query["key"] = key
    return ConnectRequest(query=query, headers={}, peer_host=host)


def hello(nickname: Any) -> str:
    return json.dumps({"type": "hello", "nickname": nickname})


def chat(text: Any) -> str:
    return json.dumps({"type": "chat", "text": text})
