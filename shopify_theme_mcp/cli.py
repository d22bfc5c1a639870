"""Shopify theme MCP command line.

Usage:
    shopify-theme-mcp serve                      # stdio (Claude Desktop, Cursor)
    shopify-theme-mcp serve --transport sse      # GET /sse + POST /message
    shopify-theme-mcp serve --transport http     # POST /mcp (streamable HTTP)
    shopify-theme-mcp tools                      # print the tool catalogue
    shopify-theme-mcp call read_file --args '{"key": "layout/theme.liquid"}'

Configuration comes from the environment (or .env): SHOPIFY_SHOP,
SHOPIFY_ACCESS_TOKEN (required), SHOPIFY_ACTIVE_THEME_ID, PORT.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Callable

from shopify_theme_mcp.config.settings import settings
from shopify_theme_mcp.mcp.server import ThemeMCPServer
from shopify_theme_mcp.mcp.tools import ThemeToolExecutor
from shopify_theme_mcp.mcp.transports import TRANSPORTS, create_transport
from shopify_theme_mcp.shopify.client import ShopifyClient, ShopifyConfig

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="shopify-theme-mcp",
        description="Shopify theme editor exposed as MCP tools",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command")

    # serve
    srv = subparsers.add_parser("serve", help="Start the MCP server")
    srv.add_argument(
        "--transport",
        choices=sorted(TRANSPORTS),
        default="stdio",
        help="Transport mode (default: stdio)",
    )
    srv.add_argument("--host", default=None, help="HTTP host (default: $HOST)")
    srv.add_argument("--port", type=int, default=None, help="HTTP port (default: $PORT)")

    # tools
    subparsers.add_parser("tools", help="List available tools as JSON")

    # call
    call = subparsers.add_parser("call", help="Run one tool and print its output")
    call.add_argument("name", help="Tool name, e.g. list_themes")
    call.add_argument(
        "--args", type=json.loads, default={}, help="Tool arguments as JSON"
    )

    args = parser.parse_args(argv)

    # Logging goes to stderr: stdout is the stdio transport's channel.
    level = logging.DEBUG if args.verbose else settings.LOG_LEVEL.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "serve":
            _cmd_serve(args)
        elif args.command == "tools":
            _cmd_tools()
        elif args.command == "call":
            sys.exit(asyncio.run(_cmd_call(args)))
    except KeyboardInterrupt:
        logger.info("Shutting down")
        sys.exit(0)
    except Exception as exc:
        logger.error("Error: %s", exc)
        if args.verbose:
            raise
        sys.exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _build_executor() -> ThemeToolExecutor:
    """Validate configuration and wire client → executor.

    Raises ConfigurationError before any client exists when the token is
    missing, so no request can go out.
    """
    settings.require_token()
    client = ShopifyClient(ShopifyConfig.from_settings(settings))
    return ThemeToolExecutor(client, default_theme_id=settings.SHOPIFY_ACTIVE_THEME_ID)


def _server_factory(executor: ThemeToolExecutor) -> Callable[[], ThemeMCPServer]:
    return lambda: ThemeMCPServer(executor)


def _on_sigterm(signum, frame) -> None:
    raise KeyboardInterrupt


def _cmd_serve(args: argparse.Namespace) -> None:
    """Start the MCP server on the chosen transport."""
    executor = _build_executor()
    transport = create_transport(
        args.transport,
        _server_factory(executor),
        host=args.host or settings.HOST,
        port=args.port or settings.PORT,
        shop=settings.SHOPIFY_SHOP,
        log_level=settings.LOG_LEVEL,
    )
    # SIGTERM takes the same graceful path as Ctrl-C
    signal.signal(signal.SIGTERM, _on_sigterm)
    logger.info("Starting MCP server (transport: %s) | Shop: %s", transport.name, settings.SHOPIFY_SHOP)
    asyncio.run(transport.serve())


def _cmd_tools() -> None:
    """Print the tool catalogue."""
    executor = ThemeToolExecutor(
        ShopifyClient(ShopifyConfig.from_settings(settings)),
        default_theme_id=settings.SHOPIFY_ACTIVE_THEME_ID,
    )
    print(json.dumps(executor.list_tools(), indent=2))


async def _cmd_call(args: argparse.Namespace) -> int:
    """Run one tool; exit status 1 when the tool reports an error."""
    executor = _build_executor()
    result = await executor.execute(args.name, args.args)
    for item in result["content"]:
        print(item["text"])
    return 1 if result["isError"] else 0


if __name__ == "__main__":
    main()
