"""API routes for the group relay service."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, WebSocket
from fastapi.responses import FileResponse, PlainTextResponse, Response

from ..config import HealthPayload, Settings, get_settings
from ..hub import RelayHub
from ..resolution import ConnectRequest
from ..transport import WebSocketConnection

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_hub_from_app(app) -> RelayHub:  # type: ignore[no-untyped-def]
    hub = getattr(app.state, "hub", None)
    if hub is None:
        raise RuntimeError("RelayHub is not initialised")
    return hub


def get_hub(request: Request) -> RelayHub:
    """Fetch relay hub from HTTP request context."""

    return _get_hub_from_app(request.app)


def get_hub_for_ws(websocket: WebSocket) -> RelayHub:
    """Fetch relay hub for WebSocket connections."""

    return _get_hub_from_app(websocket.app)


def connect_request(websocket: WebSocket) -> ConnectRequest:
    query: dict[str, str] = {}
    for name, value in websocket.query_params.multi_items():
        query.setdefault(name, value)
    return ConnectRequest(
        query=query,
        headers={key.lower(): value for key, value in websocket.headers.items()},
        peer_host=websocket.client.host if websocket.client else None,
    )


@router.get("/health", response_model=HealthPayload, tags=["system"])
async def read_health(settings: Annotated[Settings, Depends(get_settings)]) -> HealthPayload:
    """Return service health information."""

    return HealthPayload(status="ok", api_version=settings.api_version)


@router.get("/config", tags=["system"])
async def read_config(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict[str, Any]:
    """Return public config snapshot for diagnostics."""

    hub = get_hub(request)
    return {
        "apiVersion": settings.api_version,
        "authRequired": settings.auth_enabled,
        "requireGroupCode": settings.require_group_code,
        "historyLimit": settings.history_limit,
        "rateLimit": {
            "points": settings.rate_limit_points,
            "windowSeconds": settings.rate_limit_window_seconds,
        },
        "connections": hub.connection_count,
        "groups": len(hub.registry),
        "traceId": getattr(request.state, "trace_id", ""),
    }


@router.get("/", include_in_schema=False)
async def index(settings: Annotated[Settings, Depends(get_settings)]) -> Response:
    """Serve the static chat page."""

    page = settings.static_dir / "index.html"
    if page.is_file():
        return FileResponse(page)
    return PlainTextResponse("index.html not found", status_code=404)


@router.websocket("/ws")
async def relay_ws(websocket: WebSocket) -> None:
    """Relay endpoint: `?key=<secret>&g=<group code>` are both optional."""

    hub = get_hub_for_ws(websocket)
    connection = WebSocketConnection(websocket, max_queue=hub.settings.outbound_queue_limit)
    await hub.handle_connection(connection, connect_request(websocket))
