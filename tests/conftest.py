from __future__ import annotations

from typing import Iterator

import pytest

from group_relay.config import Settings, get_settings
from group_relay.hub import RelayHub
from group_relay.rate_limit import FixedWindowRateLimiter

from .fakes import FakeClock


@pytest.fixture(autouse=True)
def reset_settings() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(chat_key="", require_group_code=False, history_limit=200)


@pytest.fixture
def hub(settings: Settings, clock: FakeClock) -> RelayHub:
    limiter = FixedWindowRateLimiter(
        points=settings.rate_limit_points,
        window=settings.rate_limit_window_seconds,
        clock=clock,
    )
    return RelayHub(settings, limiter=limiter)
