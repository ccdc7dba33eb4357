"""Wire models for the group relay protocol."""

from __future__ import annotations

import time
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""

    return int(time.time() * 1000)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    ts: int = Field(default_factory=now_ms, description="Epoch milliseconds when the event was created.")

    def to_frame(self) -> str:
        return self.model_dump_json()


class RosterEvent(_Event):
    """Sorted snapshot of display names currently claimed in a group."""

    type: Literal["roster"] = "roster"
    members: list[str] = Field(default_factory=list)


class SystemEvent(_Event):
    """Free-text notice such as join/leave announcements."""

    type: Literal["system"] = "system"
    text: str


class ChatEvent(_Event):
    """Chat line sent by a joined member."""

    type: Literal["chat"] = "chat"
    from_: str = Field(..., alias="from")
    text: str

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_frame(self) -> str:
        return self.model_dump_json(by_alias=True)


class PingProbe(_Event):
    """Liveness probe pushed by the server; clients answer with `pong`."""

    type: Literal["ping"] = "ping"


# Events kept in a group's history and replayed to new members.
HistoryEvent = Union[SystemEvent, ChatEvent]
OutboundEvent = Union[RosterEvent, SystemEvent, ChatEvent, PingProbe]


class HelloRequest(BaseModel):
    """Identity handshake sent once per connection."""

    type: Literal["hello"] = "hello"
    nickname: str = ""


class ChatRequest(BaseModel):
    """Chat line submitted by a client."""

    type: Literal["chat"] = "chat"
    text: str = ""


class PongReply(BaseModel):
    """Answer to a liveness probe."""

    type: Literal["pong"] = "pong"


InboundMessage = Union[HelloRequest, ChatRequest, PongReply]
