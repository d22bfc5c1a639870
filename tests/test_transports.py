"""Tests for the stdio, SSE and streamable-HTTP transport bindings."""

from __future__ import annotations

import asyncio
import json
import socket

import httpx
import pytest
import uvicorn
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from shopify_theme_mcp.errors import SessionNotFound
from shopify_theme_mcp.mcp import transports
from shopify_theme_mcp.mcp.server import PARSE_ERROR, ThemeMCPServer
from shopify_theme_mcp.mcp.transports import (
    SSETransport,
    SessionRegistry,
    StdioTransport,
    StreamableHTTPTransport,
    create_transport,
)
from tests.mock_shopify import SHOP


@pytest.fixture
def server_factory(executor):
    return MagicMock(side_effect=lambda: ThemeMCPServer(executor))


# ===========================================================================
# Factory
# ===========================================================================


class TestCreateTransport:
    def test_kinds(self, server_factory):
        assert isinstance(create_transport("stdio", server_factory), StdioTransport)
        assert isinstance(create_transport("sse", server_factory), SSETransport)
        assert isinstance(create_transport("http", server_factory), StreamableHTTPTransport)

    def test_http_options_passed_through(self, server_factory):
        transport = create_transport("sse", server_factory, host="127.0.0.1", port=9999, shop=SHOP)
        assert transport.host == "127.0.0.1"
        assert transport.port == 9999
        assert transport.shop == SHOP

    def test_unknown_kind(self, server_factory):
        with pytest.raises(ValueError, match="Unknown transport"):
            create_transport("websocket", server_factory)


# ===========================================================================
# stdio
# ===========================================================================


class TestStdioTransport:
    @pytest.mark.asyncio
    async def test_run_until_eof(self, server_factory):
        reader = asyncio.StreamReader()
        reader.feed_data(b'{"jsonrpc": "2.0", "id": 1, "method": "ping"}\n')
        reader.feed_data(b"this is not json\n")
        reader.feed_data(b'{"jsonrpc": "2.0", "method": "notifications/initialized"}\n')
        reader.feed_data(b"\n")
        reader.feed_data(
            b'{"jsonrpc": "2.0", "id": 2, "method": "tools/call",'
            b' "params": {"name": "list_themes", "arguments": {}}}\n'
        )
        reader.feed_eof()

        written: list = []

        async def write(message):
            written.append(message)

        await StdioTransport(server_factory).run(reader, write)

        assert len(written) == 3
        assert written[0] == {"jsonrpc": "2.0", "id": 1, "result": {}}
        assert written[1]["error"]["code"] == PARSE_ERROR
        assert written[2]["id"] == 2
        assert written[2]["result"]["isError"] is False
        # one protocol handler for the whole pipe
        assert server_factory.call_count == 1

    @pytest.mark.asyncio
    async def test_batch_line(self, server_factory):
        reader = asyncio.StreamReader()
        reader.feed_data(
            b'[{"jsonrpc": "2.0", "id": 1, "method": "ping"},'
            b' {"jsonrpc": "2.0", "id": 2, "method": "ping"}]\n'
        )
        reader.feed_eof()
        written: list = []

        async def write(message):
            written.append(message)

        await StdioTransport(server_factory).run(reader, write)
        assert [r["id"] for r in written[0]] == [1, 2]


# ===========================================================================
# SSE
# ===========================================================================


class TestSessionRegistry:
    def test_open_get_close(self, executor):
        registry = SessionRegistry()
        session = registry.open(ThemeMCPServer(executor))
        assert session.session_id in registry
        assert registry.get(session.session_id) is session
        assert len(registry) == 1

        registry.close(session.session_id)
        assert session.session_id not in registry
        with pytest.raises(SessionNotFound):
            registry.get(session.session_id)

    def test_unknown_session(self):
        with pytest.raises(SessionNotFound) as exc_info:
            SessionRegistry().get("never-opened")
        assert exc_info.value.session_id == "never-opened"

    def test_close_twice_is_harmless(self, executor):
        registry = SessionRegistry()
        session = registry.open(ThemeMCPServer(executor))
        registry.close(session.session_id)
        registry.close(session.session_id)
        assert len(registry) == 0

    def test_ids_are_unique(self, executor):
        registry = SessionRegistry()
        ids = {registry.open(ThemeMCPServer(executor)).session_id for _ in range(50)}
        assert len(ids) == 50


class TestSSETransport:
    @pytest.fixture(autouse=True)
    def _transport(self, server_factory, mock_shop):
        self.transport = SSETransport(server_factory, shop=SHOP)
        self.client = TestClient(self.transport.create_app())
        self.mock_shop = mock_shop

    def test_routes(self):
        paths = {r.path for r in self.client.app.routes if hasattr(r, "path")}
        assert {"/sse", "/message", "/health"} <= paths

    def test_health(self):
        resp = self.client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "service": "shopify-mcp",
            "shop": SHOP,
            "transport": "sse",
            "active_sessions": 0,
        }

    def test_post_to_unknown_session_is_404(self):
        with patch.object(ThemeMCPServer, "handle_message") as handler:
            resp = self.client.post(
                "/message?sessionId=does-not-exist",
                json={"jsonrpc": "2.0", "id": 1, "method": "ping"},
            )
        assert resp.status_code == 404
        assert resp.json() == {"error": "Session not found"}
        handler.assert_not_called()

    def test_post_to_closed_session_is_404(self, executor):
        session = self.transport.sessions.open(ThemeMCPServer(executor))
        self.transport.sessions.close(session.session_id)

        resp = self.client.post(
            f"/message?sessionId={session.session_id}",
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "tools/call",
                "params": {"name": "list_themes"},
            },
        )
        assert resp.status_code == 404
        assert session.queue.empty()
        assert self.mock_shop.requests == []

    def test_post_routes_to_session_queue(self, executor):
        session = self.transport.sessions.open(ThemeMCPServer(executor))
        resp = self.client.post(
            f"/message?sessionId={session.session_id}",
            json={"jsonrpc": "2.0", "id": 7, "method": "ping"},
        )
        assert resp.status_code == 202
        assert resp.text == "Accepted"
        assert session.queue.get_nowait() == {"jsonrpc": "2.0", "id": 7, "result": {}}

    def test_tool_call_over_session(self, executor):
        session = self.transport.sessions.open(ThemeMCPServer(executor))
        resp = self.client.post(
            f"/message?sessionId={session.session_id}",
            json={
                "jsonrpc": "2.0",
                "id": 8,
                "method": "tools/call",
                "params": {"name": "read_file", "arguments": {"key": "sections/header.liquid"}},
            },
        )
        assert resp.status_code == 202
        response = session.queue.get_nowait()
        assert response["result"]["content"][0]["text"] == "<header>{{ shop.name }}</header>\n"

    def test_notification_queues_nothing(self, executor):
        session = self.transport.sessions.open(ThemeMCPServer(executor))
        resp = self.client.post(
            f"/message?sessionId={session.session_id}",
            json={"jsonrpc": "2.0", "method": "notifications/initialized"},
        )
        assert resp.status_code == 202
        assert session.queue.empty()

    def test_invalid_json(self, executor):
        session = self.transport.sessions.open(ThemeMCPServer(executor))
        resp = self.client.post(
            f"/message?sessionId={session.session_id}",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == PARSE_ERROR

    def test_health_counts_sessions(self, executor):
        self.transport.sessions.open(ThemeMCPServer(executor))
        assert self.client.get("/health").json()["active_sessions"] == 1


async def _next_event(lines) -> tuple[str, str]:
    """Read one SSE frame, skipping keepalive comments."""
    event, data = "", ""
    async for line in lines:
        if line.startswith(":"):
            continue
        if not line:
            if event:
                return event, data
            continue
        name, _, value = line.partition(": ")
        if name == "event":
            event = value
        elif name == "data":
            data = value
    raise AssertionError("event stream ended early")


class TestSSEStream:
    """GET /sse against a real uvicorn server, since TestClient buffers
    streaming bodies."""

    @pytest.fixture(autouse=True)
    def _fast_keepalive(self, monkeypatch):
        monkeypatch.setattr(transports, "SSE_KEEPALIVE_SECONDS", 0.05)

    @pytest.mark.asyncio
    async def test_session_lifecycle(self, server_factory):
        transport = SSETransport(server_factory, shop=SHOP)
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        server = uvicorn.Server(
            uvicorn.Config(transport.create_app(), log_level="warning")
        )
        task = asyncio.create_task(server.serve(sockets=[sock]))
        for _ in range(200):
            if server.started:
                break
            await asyncio.sleep(0.02)
        assert server.started

        try:
            async with httpx.AsyncClient(
                base_url=f"http://127.0.0.1:{port}", timeout=5.0
            ) as client:
                async with client.stream("GET", "/sse") as stream:
                    assert stream.headers["content-type"].startswith("text/event-stream")
                    lines = stream.aiter_lines()

                    event, endpoint = await _next_event(lines)
                    assert event == "endpoint"
                    assert endpoint.startswith("/message?sessionId=")
                    session_id = endpoint.split("sessionId=", 1)[1]
                    assert session_id in transport.sessions

                    resp = await client.post(
                        endpoint, json={"jsonrpc": "2.0", "id": 1, "method": "ping"}
                    )
                    assert resp.status_code == 202

                    event, data = await _next_event(lines)
                    assert event == "message"
                    assert json.loads(data) == {"jsonrpc": "2.0", "id": 1, "result": {}}

                # client hung up; the stream's cleanup drops the session
                for _ in range(200):
                    if len(transport.sessions) == 0:
                        break
                    await asyncio.sleep(0.02)
                assert len(transport.sessions) == 0

                resp = await client.post(
                    endpoint, json={"jsonrpc": "2.0", "id": 2, "method": "ping"}
                )
                assert resp.status_code == 404
                assert resp.json() == {"error": "Session not found"}
        finally:
            server.should_exit = True
            await task


# ===========================================================================
# Streamable HTTP
# ===========================================================================


class TestStreamableHTTPTransport:
    @pytest.fixture(autouse=True)
    def _transport(self, server_factory):
        self.factory = server_factory
        self.transport = StreamableHTTPTransport(server_factory, shop=SHOP)
        self.client = TestClient(self.transport.create_app())

    def test_health(self):
        resp = self.client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "service": "shopify-mcp",
            "shop": SHOP,
            "transport": "http",
        }

    def test_initialize(self):
        resp = self.client.post(
            "/mcp",
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {"protocolVersion": "2025-03-26", "capabilities": {}},
            },
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json()["result"]["protocolVersion"] == "2025-03-26"

    def test_tool_call(self):
        resp = self.client.post(
            "/mcp",
            json={
                "jsonrpc": "2.0",
                "id": 2,
                "method": "tools/call",
                "params": {"name": "list_theme_files", "arguments": {}},
            },
        )
        result = resp.json()["result"]
        assert result["isError"] is False
        keys = [f["key"] for f in json.loads(result["content"][0]["text"])]
        assert "layout/theme.liquid" in keys

    def test_new_handler_per_request(self):
        for i in range(3):
            self.client.post("/mcp", json={"jsonrpc": "2.0", "id": i, "method": "ping"})
        assert self.factory.call_count == 3

    def test_notification_is_202(self):
        resp = self.client.post(
            "/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"}
        )
        assert resp.status_code == 202
        assert resp.content == b""

    def test_batch(self):
        resp = self.client.post(
            "/mcp",
            json=[
                {"jsonrpc": "2.0", "id": 1, "method": "ping"},
                {"jsonrpc": "2.0", "method": "notifications/initialized"},
                {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
            ],
        )
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()] == [1, 2]

    def test_invalid_json(self):
        resp = self.client.post(
            "/mcp", content=b"{{{", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == PARSE_ERROR

    @pytest.mark.parametrize("method", ["GET", "DELETE"])
    def test_other_methods_not_allowed(self, method):
        resp = self.client.request(method, "/mcp")
        assert resp.status_code == 405
        assert resp.headers["allow"] == "POST"

    def test_cors_preflight(self):
        resp = self.client.options(
            "/mcp",
            headers={
                "Origin": "https://claude.ai",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_cors_on_simple_request(self):
        resp = self.client.get("/health", headers={"Origin": "https://example.com"})
        assert resp.headers["access-control-allow-origin"] == "*"
