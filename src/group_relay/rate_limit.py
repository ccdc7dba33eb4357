"""In-process fixed window limiter for chat messages.

Each key gets ``points`` consumptions per ``window`` seconds. The window for
a key opens on its first consumption and the counter resets once it elapses.
State is process-local and expired windows are evicted lazily.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict


class RateLimitExceeded(RuntimeError):
    """Raised when a key has used up its budget for the current window."""

    def __init__(self, key: str, retry_after: float) -> None:
        super().__init__(f"Rate limit exceeded for {key}")
        self.key = key
        self.retry_after = retry_after


@dataclass
class _Window:
    started_at: float
    consumed: int = 0


class FixedWindowRateLimiter:
    """Per-key budget of ``points`` actions per ``window`` seconds."""

    def __init__(
        self,
        *,
        points: int,
        window: float,
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if points < 1:
            raise ValueError("points must be positive")
        if window <= 0:
            raise ValueError("window must be positive")
        self._points = points
        self._window = window
        self._max_keys = max_keys
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    @property
    def tracked_keys(self) -> int:
        return len(self._windows)

    async def consume(self, key: str) -> int:
        """Spend one point for ``key``.

        Returns:
            int: Points left in the current window.

        Raises:
            RateLimitExceeded: when the window's budget is exhausted.
        """

        now = self._clock()
        window = self._windows.get(key)
        if window is None or now - window.started_at >= self._window:
            if window is None and len(self._windows) >= self._max_keys:
                self._evict(now)
            self._windows.pop(key, None)
            window = _Window(started_at=now)
            self._windows[key] = window

        if window.consumed >= self._points:
            raise RateLimitExceeded(key, retry_after=self._window - (now - window.started_at))
        window.consumed += 1
        return self._points - window.consumed

    def _evict(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now - window.started_at >= self._window]
        for key in expired:
            del self._windows[key]
        if len(self._windows) >= self._max_keys:
            # all windows live: drop the oldest one
            self._windows.pop(next(iter(self._windows)), None)
