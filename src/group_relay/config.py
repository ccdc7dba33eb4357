"""Configuration for the group relay service."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_STATIC_DIR = Path(__file__).resolve().parent / "static"


class Settings(BaseSettings):
    """Environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_version: str = Field("1.0.0", description="Semantic version returned by health endpoints.")
    host: str = Field("0.0.0.0", alias="HOST", description="Interface the server binds to.")
    port: int = Field(8080, ge=1, le=65535, alias="PORT", description="Listening port.")
    chat_key: str = Field(
        "",
        alias="CHAT_KEY",
        description="Shared secret expected in the `key` query parameter. Empty disables the check.",
    )
    require_group_code: bool = Field(
        False,
        alias="REQUIRE_GROUP_CODE",
        description="Put connections without a group code into one neutral group instead of address buckets.",
    )
    heartbeat_interval_seconds: float = Field(
        30.0,
        gt=0,
        alias="HEARTBEAT_INTERVAL_SECONDS",
        description="Period of the liveness probe sweep.",
    )
    history_limit: int = Field(
        200,
        ge=0,
        alias="HISTORY_LIMIT",
        description="Max number of system/chat events retained per group.",
    )
    nickname_max_length: int = Field(32, ge=1, alias="NICKNAME_MAX_LENGTH")
    message_max_length: int = Field(1000, ge=1, alias="MESSAGE_MAX_LENGTH")

    rate_limit_points: int = Field(
        10,
        ge=1,
        alias="RATE_LIMIT_POINTS",
        description="Chat messages allowed per address within one window.",
    )
    rate_limit_window_seconds: float = Field(
        3.0,
        gt=0,
        alias="RATE_LIMIT_WINDOW_SECONDS",
        description="Length of the rate limit window.",
    )
    rate_limit_max_keys: int = Field(
        10_000,
        ge=1,
        alias="RATE_LIMIT_MAX_KEYS",
        description="Upper bound on tracked rate limit keys.",
    )
    trust_forwarded_for: bool = Field(
        True,
        alias="TRUST_FORWARDED_FOR",
        description="Take the client address from X-Forwarded-For when present.",
    )
    outbound_queue_limit: int = Field(
        256,
        ge=1,
        alias="OUTBOUND_QUEUE_LIMIT",
        description="Frames buffered per connection before a stalled reader is dropped.",
    )

    static_dir: Path = Field(_DEFAULT_STATIC_DIR, alias="STATIC_DIR")
    enable_metrics: bool = Field(False, alias="ENABLE_METRICS")

    @property
    def auth_enabled(self) -> bool:
        return bool(self.chat_key)


class HealthPayload(BaseModel):
    """Health-check response payload."""

    status: Literal["ok"]
    api_version: str


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance.

    Returns:
        Settings: Loaded environment settings.
    """

    return Settings()
