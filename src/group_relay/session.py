"""Per-connection session state."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Session:
    """State owned by one open connection.

    ``group_key`` is fixed at connect time. ``nickname`` stays ``None`` until
    the handshake and can be claimed exactly once.
    """

    session_id: str
    group_key: str
    address: str
    nickname: str | None = None
    is_alive: bool = True
    closed: bool = field(default=False, repr=False)

    @property
    def joined(self) -> bool:
        return self.nickname is not None

    def claim_nickname(self, nickname: str) -> None:
        if self.nickname is not None:
            raise RuntimeError(f"Session {self.session_id} already joined as {self.nickname}")
        self.nickname = nickname
