"""MCP protocol handler for the Shopify theme tools.

Implements the Model Context Protocol lifecycle over JSON-RPC 2.0.
This is a thin protocol layer: tool work is delegated to
ThemeToolExecutor, and byte-level I/O lives in
``shopify_theme_mcp.mcp.transports``.

Usage::

    server = ThemeMCPServer()
    response = await server.handle_message(
        {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}
    )
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from shopify_theme_mcp import __version__
from shopify_theme_mcp.errors import InvalidToolArguments
from shopify_theme_mcp.mcp.tools import ThemeToolExecutor

logger = logging.getLogger(__name__)

# Newest first; the first entry is answered when the client asks for
# a version we do not know.
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
MCP_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

SERVER_INFO = {
    "name": "shopify-theme-editor",
    "version": __version__,
}

SERVER_CAPABILITIES = {
    "tools": {"listChanged": False},
}


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 helpers
# ---------------------------------------------------------------------------


def _jsonrpc_response(id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def _jsonrpc_error(id: Any, code: int, message: str, data: Any = None) -> dict:
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


# Error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------


class ThemeMCPServer:
    """MCP server exposing the Shopify theme tools.

    Handles the MCP protocol lifecycle:
      1. initialize → version negotiation and capabilities
      2. notifications/initialized → no response
      3. tools/list → enumerate the seven theme tools
      4. tools/call → execute one tool
    """

    def __init__(self, executor: ThemeToolExecutor | None = None) -> None:
        self.executor = executor or ThemeToolExecutor()
        self.session_id = uuid.uuid4().hex
        self._initialized = False

        # Method dispatch table
        self._methods: dict[str, Any] = {
            "initialize": self._handle_initialize,
            "initialized": self._handle_initialized,
            "notifications/initialized": self._handle_initialized,
            "ping": self._handle_ping,
            "tools/list": self._handle_tools_list,
            "tools/call": self._handle_tools_call,
        }

    @property
    def initialized(self) -> bool:
        return self._initialized

    # --- Protocol handlers ---

    async def _handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        client_info = params.get("clientInfo", {})
        logger.info(
            "MCP client connecting: %s %s",
            client_info.get("name", "unknown"),
            client_info.get("version", ""),
        )
        requested = params.get("protocolVersion")
        version = (
            requested if requested in SUPPORTED_PROTOCOL_VERSIONS
            else MCP_PROTOCOL_VERSION
        )
        return {
            "protocolVersion": version,
            "capabilities": SERVER_CAPABILITIES,
            "serverInfo": SERVER_INFO,
        }

    async def _handle_initialized(self, params: dict[str, Any]) -> None:
        self._initialized = True
        logger.debug("MCP session initialized: %s", self.session_id)
        return None

    async def _handle_ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _handle_tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": self.executor.list_tools()}

    async def _handle_tools_call(self, params: dict[str, Any]) -> dict[str, Any]:
        tool_name = params.get("name", "")
        arguments = params.get("arguments") or {}

        logger.info("MCP tool call: %s", tool_name)
        return await self.executor.execute(tool_name, arguments)

    # --- Message routing ---

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        """Route a JSON-RPC 2.0 message to the appropriate handler.

        Returns the response, or None for notifications.
        """
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            msg_id = message.get("id") if isinstance(message, dict) else None
            return _jsonrpc_error(msg_id, INVALID_REQUEST, "Not a JSON-RPC 2.0 message")

        method = message.get("method", "")
        params = message.get("params") or {}
        msg_id = message.get("id")

        handler = self._methods.get(method)
        if handler is None:
            if msg_id is not None:
                return _jsonrpc_error(msg_id, METHOD_NOT_FOUND, f"Unknown method: {method}")
            return None  # unknown notification, ignore

        try:
            result = await handler(params)
        except InvalidToolArguments as exc:
            if msg_id is None:
                return None
            return _jsonrpc_error(msg_id, INVALID_PARAMS, str(exc))
        except Exception as exc:
            logger.exception("Error handling %s", method)
            if msg_id is None:
                return None
            return _jsonrpc_error(msg_id, INTERNAL_ERROR, str(exc))

        if msg_id is None:
            return None  # notification, no response
        return _jsonrpc_response(msg_id, result)

    async def handle_batch(self, messages: list[Any]) -> list[dict[str, Any]]:
        """Handle a JSON-RPC batch; notifications contribute no entry."""
        if not messages:
            return [_jsonrpc_error(None, INVALID_REQUEST, "Empty batch")]
        responses = []
        for message in messages:
            response = await self.handle_message(message)
            if response is not None:
                responses.append(response)
        return responses
