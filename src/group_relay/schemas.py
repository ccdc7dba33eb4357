"""JSON Schema validation for inbound relay frames."""

from __future__ import annotations

import json
import logging
from typing import Any

from jsonschema import Draft7Validator, ValidationError

from .models import ChatRequest, HelloRequest, InboundMessage, PongReply

logger = logging.getLogger(__name__)

_SCALAR = {"type": ["string", "number", "boolean", "null"]}

SCHEMAS: dict[str, dict[str, Any]] = {
    "hello": {
        "type": "object",
        "required": ["type"],
        "properties": {
            "type": {"const": "hello"},
            "nickname": _SCALAR,
        },
    },
    "chat": {
        "type": "object",
        "required": ["type"],
        "properties": {
            "type": {"const": "chat"},
            "text": _SCALAR,
        },
    },
    "pong": {
        "type": "object",
        "required": ["type"],
        "properties": {"type": {"const": "pong"}},
    },
}

_VALIDATORS = {name: Draft7Validator(schema) for name, schema in SCHEMAS.items()}


def _as_text(value: Any) -> str:
    # falsy scalars (null, false, 0, "") count as missing
    if not value:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def parse_frame(raw: str | bytes) -> InboundMessage | None:
    """Decode a text frame into an inbound message.

    Returns ``None`` for anything that is not JSON, not an object, has an
    unknown ``type`` or fails its schema. Callers drop such frames silently.
    """

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None

    frame_type = data.get("type")
    validator = _VALIDATORS.get(frame_type) if isinstance(frame_type, str) else None
    if validator is None:
        return None
    try:
        validator.validate(data)
    except ValidationError as exc:
        logger.debug("Dropping invalid %s frame: %s", data.get("type"), exc.message)
        return None

    if data["type"] == "hello":
        return HelloRequest(nickname=_as_text(data.get("nickname")))
    if data["type"] == "chat":
        return ChatRequest(text=_as_text(data.get("text")))
    return PongReply()
