"""Transport bindings for the theme MCP server.

All three transports carry the same ThemeMCPServer protocol handler;
none of them contains tool logic.

  - stdio: newline-delimited JSON-RPC on stdin/stdout (Claude Desktop,
    Cursor, ...).  One client, no sessions.
  - sse: ``GET /sse`` opens an event stream, ``POST /message?sessionId=``
    carries client messages.  Responses are pushed down the stream.
  - http (streamable HTTP): ``POST /mcp``; a fresh protocol handler per
    request, responses returned in the HTTP body.

Both HTTP variants also serve ``GET /health`` and permissive CORS.

Usage::

    transport = create_transport("sse", server_factory, port=3457)
    await transport.serve()
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.responses import StreamingResponse

from shopify_theme_mcp import __version__
from shopify_theme_mcp.errors import SessionNotFound, TransportError
from shopify_theme_mcp.mcp.server import PARSE_ERROR, ThemeMCPServer, _jsonrpc_error

logger = logging.getLogger(__name__)

ServerFactory = Callable[[], ThemeMCPServer]

SERVICE_NAME = "shopify-mcp"
SSE_KEEPALIVE_SECONDS = 30.0


class MCPTransport(abc.ABC):
    """One way of moving JSON-RPC messages between a client and the server."""

    name: str = ""

    def __init__(self, server_factory: ServerFactory) -> None:
        self._server_factory = server_factory

    @abc.abstractmethod
    async def serve(self) -> None:
        """Run until the client goes away or the process is interrupted."""


# ---------------------------------------------------------------------------
# stdio
# ---------------------------------------------------------------------------


class StdioTransport(MCPTransport):
    """Newline-delimited JSON-RPC over the process's stdin/stdout."""

    name = "stdio"

    async def serve(self) -> None:
        logger.info("Shopify theme MCP server starting on stdio")
        reader, writer = await self._open_pipes()

        async def write(message: Any) -> None:
            data = json.dumps(message) + "\n"
            writer.write(data.encode("utf-8"))
            await writer.drain()

        try:
            await self.run(reader, write)
        except asyncio.CancelledError:
            logger.info("MCP server shutting down")
            raise

    async def run(
        self,
        reader: asyncio.StreamReader,
        write: Callable[[Any], Awaitable[None]],
    ) -> None:
        """Read messages until EOF, writing one response per request."""
        server = self._server_factory()
        while True:
            try:
                line = await reader.readline()
            except (OSError, ValueError) as exc:
                raise TransportError(f"stdin read failed: {exc}") from exc
            if not line:
                logger.info("stdin closed; stopping")
                break
            if not line.strip():
                continue

            try:
                message = json.loads(line.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                await write(_jsonrpc_error(None, PARSE_ERROR, "Invalid JSON"))
                continue

            if isinstance(message, list):
                response: Any = await server.handle_batch(message) or None
            else:
                response = await server.handle_message(message)
            if response is not None:
                await write(response)

    async def _open_pipes(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        loop = asyncio.get_running_loop()
        try:
            reader = asyncio.StreamReader()
            protocol = asyncio.StreamReaderProtocol(reader)
            await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)

            writer_transport, writer_protocol = await loop.connect_write_pipe(
                asyncio.streams.FlowControlMixin, sys.stdout.buffer
            )
        except (OSError, ValueError) as exc:
            raise TransportError(f"cannot attach to stdio: {exc}") from exc
        writer = asyncio.StreamWriter(writer_transport, writer_protocol, None, loop)
        return reader, writer


# ---------------------------------------------------------------------------
# HTTP base
# ---------------------------------------------------------------------------


class HTTPTransport(MCPTransport):
    """Shared FastAPI scaffolding: CORS, /health and the uvicorn runner."""

    def __init__(
        self,
        server_factory: ServerFactory,
        host: str = "0.0.0.0",
        port: int = 3457,
        shop: str = "",
        log_level: str = "info",
    ) -> None:
        super().__init__(server_factory)
        self.host = host
        self.port = port
        self.shop = shop
        self.log_level = log_level.lower()

    def create_app(self) -> FastAPI:
        app = FastAPI(
            title="Shopify Theme MCP Server",
            version=__version__,
            docs_url=None,
            redoc_url=None,
        )
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Mcp-Session-Id"],
            expose_headers=["Mcp-Session-Id"],
        )

        @app.get("/health")
        async def health() -> dict:
            return self.health()

        self._add_routes(app)
        return app

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "shop": self.shop,
            "transport": self.name,
        }

    @abc.abstractmethod
    def _add_routes(self, app: FastAPI) -> None:
        """Mount the protocol endpoints."""

    async def serve(self) -> None:
        logger.info(
            "Shopify theme MCP server (%s) on http://%s:%d | Shop: %s",
            self.name, self.host, self.port, self.shop,
        )
        config = uvicorn.Config(
            self.create_app(), host=self.host, port=self.port, log_level=self.log_level
        )
        server = uvicorn.Server(config)
        await server.serve()


# ---------------------------------------------------------------------------
# SSE
# ---------------------------------------------------------------------------


@dataclass
class SSESession:
    """One open SSE stream and the protocol handler bound to it."""
    session_id: str
    server: ThemeMCPServer
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)

    async def deliver(self, message: Any) -> None:
        """Handle an inbound message and queue the response for the stream."""
        if isinstance(message, list):
            response: Any = await self.server.handle_batch(message) or None
        else:
            response = await self.server.handle_message(message)
        if response is not None:
            await self.queue.put(response)


class SessionRegistry:
    """Session id → SSESession map.

    Only touched from the event loop on connect, post and disconnect, so
    no locking.  Ids are random uuids and a closed id is never reopened.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SSESession] = {}

    def open(self, server: ThemeMCPServer) -> SSESession:
        session = SSESession(session_id=uuid.uuid4().hex, server=server)
        self._sessions[session.session_id] = session
        logger.info("SSE session opened: %s", session.session_id)
        return session

    def get(self, session_id: str) -> SSESession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def close(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("SSE session closed: %s", session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def _sse_event(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


class SSETransport(HTTPTransport):
    """HTTP+SSE transport (MCP protocol revision 2024-11-05).

      - GET  /sse                   → event stream; first event names the
                                      message endpoint
      - POST /message?sessionId=... → client → server JSON-RPC
    """

    name = "sse"
    message_path = "/message"

    def __init__(self, server_factory: ServerFactory, **kwargs: Any) -> None:
        super().__init__(server_factory, **kwargs)
        self.sessions = SessionRegistry()

    def health(self) -> dict[str, Any]:
        data = super().health()
        data["active_sessions"] = len(self.sessions)
        return data

    def _add_routes(self, app: FastAPI) -> None:
        @app.get("/sse")
        async def sse_endpoint(request: Request) -> StreamingResponse:
            session = self.sessions.open(self._server_factory())
            endpoint = f"{self.message_path}?sessionId={session.session_id}"

            async def event_stream():
                try:
                    yield _sse_event("endpoint", endpoint)
                    while True:
                        if await request.is_disconnected():
                            break
                        try:
                            msg = await asyncio.wait_for(
                                session.queue.get(), timeout=SSE_KEEPALIVE_SECONDS
                            )
                        except asyncio.TimeoutError:
                            yield ": keepalive\n\n"
                            continue
                        yield _sse_event("message", json.dumps(msg))
                finally:
                    self.sessions.close(session.session_id)

            return StreamingResponse(
                event_stream(),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive",
                    "X-Accel-Buffering": "no",
                },
            )

        @app.post(self.message_path)
        async def message_endpoint(request: Request) -> Response:
            session_id = (
                request.query_params.get("sessionId")
                or request.query_params.get("session_id", "")
            )
            try:
                session = self.sessions.get(session_id)
            except SessionNotFound:
                return JSONResponse({"error": "Session not found"}, status_code=404)

            try:
                body = await request.json()
            except ValueError:
                return JSONResponse(
                    _jsonrpc_error(None, PARSE_ERROR, "Invalid JSON"),
                    status_code=400,
                )

            await session.deliver(body)
            return PlainTextResponse("Accepted", status_code=202)


# ---------------------------------------------------------------------------
# Streamable HTTP
# ---------------------------------------------------------------------------


class StreamableHTTPTransport(HTTPTransport):
    """Stateless streamable-HTTP transport.

    Every ``POST /mcp`` gets its own protocol handler, processes exactly
    the message (or batch) it carries and is discarded.  No sessions and
    no server-initiated stream, so GET and DELETE are refused.
    """

    name = "http"
    path = "/mcp"

    def _add_routes(self, app: FastAPI) -> None:
        @app.post(self.path)
        async def mcp_endpoint(request: Request) -> Response:
            try:
                body = await request.json()
            except ValueError:
                return JSONResponse(
                    _jsonrpc_error(None, PARSE_ERROR, "Parse error: Invalid JSON"),
                    status_code=400,
                )

            server = self._server_factory()
            if isinstance(body, list):
                response: Any = await server.handle_batch(body)
            else:
                response = await server.handle_message(body)

            if not response:
                return Response(status_code=202)
            return JSONResponse(response)

        @app.api_route(self.path, methods=["GET", "DELETE"])
        async def mcp_not_allowed() -> JSONResponse:
            return JSONResponse(
                _jsonrpc_error(None, -32000, "Method not allowed."),
                status_code=405,
                headers={"Allow": "POST"},
            )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


TRANSPORTS: dict[str, type[MCPTransport]] = {
    "stdio": StdioTransport,
    "sse": SSETransport,
    "http": StreamableHTTPTransport,
}


def create_transport(
    kind: str,
    server_factory: ServerFactory,
    *,
    host: str = "0.0.0.0",
    port: int = 3457,
    shop: str = "",
    log_level: str = "info",
) -> MCPTransport:
    """Build the transport named ``kind`` (stdio, sse or http)."""
    cls = TRANSPORTS.get(kind)
    if cls is None:
        raise ValueError(f"Unknown transport: {kind}")
    if issubclass(cls, HTTPTransport):
        return cls(server_factory, host=host, port=port, shop=shop, log_level=log_level)
    return cls(server_factory)
