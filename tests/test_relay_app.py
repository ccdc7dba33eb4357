from __future__ import annotations

import concurrent.futures
from pathlib import Path

import pytest
from fastapi import WebSocket
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketDisconnect

from group_relay.api.routes import connect_request
from group_relay.app import create_app


def test_health_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_VERSION", "1.2.3")
    app = create_app()
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "api_version": "1.2.3"}
    assert response.headers["X-Trace-Id"]


def test_config_snapshot(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHAT_KEY", "s3cret")
    monkeypatch.setenv("REQUIRE_GROUP_CODE", "true")
    app = create_app()
    with TestClient(app) as client:
        body = client.get("/config").json()

    assert body["authRequired"] is True
    assert body["requireGroupCode"] is True
    assert body["rateLimit"] == {"points": 10, "windowSeconds": 3.0}
    assert body["historyLimit"] == 200
    assert "s3cret" not in str(body)


def test_index_page_is_served() -> None:
    app = create_app()
    with TestClient(app) as client:
        page = client.get("/")
        script = client.get("/static/app.js")

    assert page.status_code == 200
    assert "Group Relay" in page.text
    assert script.status_code == 200


def test_missing_index_page_returns_404(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STATIC_DIR", str(tmp_path))
    app = create_app()
    with TestClient(app) as client:
        response = client.get("/")

    assert response.status_code == 404
    assert response.text == "index.html not found"


def test_websocket_rejects_wrong_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHAT_KEY", "s3cret")
    app = create_app()
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws?key=nope&g=room") as ws:
                ws.receive_json()

    assert exc_info.value.code == 1008


def test_websocket_join_chat_and_leave(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHAT_KEY", "s3cret")
    app = create_app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?key=s3cret&g=Room1") as ws_a:
            first = _receive_with_timeout(ws_a)
            assert first["type"] == "roster"
            assert first["members"] == []
            ws_a.send_json({"type": "hello", "nickname": "alice"})
            assert _receive_with_timeout(ws_a)["text"] == "alice joined"
            assert _receive_with_timeout(ws_a)["members"] == ["alice"]

            with client.websocket_connect("/ws?key=s3cret&g=room1") as ws_b:
                assert _receive_with_timeout(ws_b)["members"] == ["alice"]
                ws_b.send_json({"type": "hello", "nickname": "alice"})
                replay = _receive_with_timeout(ws_b)
                joined = _receive_with_timeout(ws_b)
                roster = _receive_with_timeout(ws_b)
                assert replay["text"] == "alice joined"
                assert joined["text"] == "alice-2 joined"
                assert roster["members"] == ["alice", "alice-2"]

                assert _receive_with_timeout(ws_a)["text"] == "alice-2 joined"
                assert _receive_with_timeout(ws_a)["members"] == ["alice", "alice-2"]

                ws_a.send_text("this is not json")
                ws_a.send_json({"type": "chat", "text": "  hi there  "})
                message = _receive_with_timeout(ws_b)
                assert message["type"] == "chat"
                assert message["from"] == "alice"
                assert message["text"] == "hi there"
                assert _receive_with_timeout(ws_a)["text"] == "hi there"

            left = _receive_with_timeout(ws_a)
            roster = _receive_with_timeout(ws_a)
            assert left == {"type": "system", "text": "alice-2 left", "ts": left["ts"]}
            assert roster["members"] == ["alice"]


def test_websocket_groups_are_isolated(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CHAT_KEY", raising=False)
    app = create_app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?g=red") as red, client.websocket_connect("/ws?g=blue") as blue:
            _receive_with_timeout(red)
            _receive_with_timeout(blue)
            blue.send_json({"type": "hello", "nickname": "bob"})
            red.send_json({"type": "hello", "nickname": "rita"})

            assert _receive_with_timeout(red)["text"] == "rita joined"
            assert _receive_with_timeout(red)["members"] == ["rita"]
            assert _receive_with_timeout(blue)["text"] == "bob joined"
            assert _receive_with_timeout(blue)["members"] == ["bob"]


def test_server_ping_is_answered_in_band(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CHAT_KEY", raising=False)
    app = create_app()
    with TestClient(app) as client:
        hub = app.state.hub
        with client.websocket_connect("/ws?g=liveness") as ws:
            _receive_with_timeout(ws)
            ws.send_json({"type": "hello", "nickname": "pat"})
            assert _receive_with_timeout(ws)["text"] == "pat joined"
            _receive_with_timeout(ws)

            assert client.portal.call(hub.heartbeat) == 0
            ping = _receive_with_timeout(ws)
            assert ping["type"] == "ping"
            assert isinstance(ping["ts"], int)

            ws.send_json({"type": "pong"})
            ws.send_json({"type": "chat", "text": "after pong"})
            assert _receive_with_timeout(ws)["text"] == "after pong"

            assert client.portal.call(hub.heartbeat) == 0
            assert _receive_with_timeout(ws)["type"] == "ping"

            assert client.portal.call(hub.heartbeat) == 1
            with pytest.raises(WebSocketDisconnect) as exc_info:
                _receive_with_timeout(ws)

        assert exc_info.value.code == 1001
        assert hub.connection_count == 0


def test_repeated_query_params_use_first_value() -> None:
    async def _receive() -> dict:
        return {"type": "websocket.connect"}

    async def _send(message: dict) -> None:
        return None

    scope = {
        "type": "websocket",
        "path": "/ws",
        "query_string": b"g=first&g=second&key=a&key=b",
        "headers": [(b"x-forwarded-for", b"192.0.2.7")],
        "client": ("10.0.0.1", 5000),
    }
    request = connect_request(WebSocket(scope, _receive, _send))

    assert dict(request.query) == {"g": "first", "key": "a"}
    assert request.headers["x-forwarded-for"] == "192.0.2.7"
    assert request.peer_host == "10.0.0.1"

def _receive_with_timeout(ws, timeout: float = 2.0):  # type: ignore[no-untyped-def]
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    fut = executor.submit(ws.receive_json)
    try:
        return fut.result(timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
