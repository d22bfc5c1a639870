"""MCP (Model Context Protocol) server for Shopify theme editing.

Exposes seven theme operations as MCP tools that any compatible agent
(Claude, Cursor, ...) can call:

  - Typed tool definitions with JSON Schema inputs
  - JSON-RPC 2.0 over stdio, HTTP+SSE or streamable HTTP

Usage::

    from shopify_theme_mcp.mcp import ThemeMCPServer, create_transport

    transport = create_transport("stdio", ThemeMCPServer)
    await transport.serve()
"""

from shopify_theme_mcp.mcp.tools import THEME_TOOLS, ThemeToolExecutor
from shopify_theme_mcp.mcp.server import ThemeMCPServer
from shopify_theme_mcp.mcp.transports import (
    MCPTransport,
    SessionRegistry,
    create_transport,
)

__all__ = [
    "THEME_TOOLS",
    "ThemeToolExecutor",
    "ThemeMCPServer",
    "MCPTransport",
    "SessionRegistry",
    "create_transport",
]
