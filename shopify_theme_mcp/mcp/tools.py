"""MCP tool definitions for Shopify theme editing.

Maps the theme operations to MCP tool format with JSON Schema input
definitions.  Every tool is one Admin API request through
``ShopifyClient`` -- this is glue, not new logic.

Tools:
  - Themes: list_themes, get_active_theme, duplicate_theme
  - Files: list_theme_files, read_file, write_file
  - Settings: get_theme_settings

``theme_id`` falls back to the configured active theme when omitted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from shopify_theme_mcp.errors import InvalidToolArguments, ResponseFormatError
from shopify_theme_mcp.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)

BINARY_PLACEHOLDER = "(binary)"
EMPTY_PLACEHOLDER = "(empty)"
SETTINGS_KEY = "config/settings_data.json"


# ---------------------------------------------------------------------------
# Tool definition schema (MCP-compatible)
# ---------------------------------------------------------------------------


@dataclass
class MCPToolDef:
    """MCP tool definition with JSON Schema input."""
    name: str
    description: str
    input_schema: dict[str, Any]
    read_only: bool = True            # MCP annotation hint
    destructive: bool = False


_THEME_ID = {
    "type": "string",
    "description": "Theme ID (defaults to active theme)",
}

_KEY = {
    "type": "string",
    "description": 'File key, e.g. "sections/header.liquid"',
}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


THEME_TOOLS: list[MCPToolDef] = [
    # --- Themes ---
    MCPToolDef(
        name="list_themes",
        description="List all Shopify themes with ID, name, and role",
        input_schema={"type": "object", "properties": {}},
    ),

    MCPToolDef(
        name="get_active_theme",
        description="Get the currently active/published Shopify theme",
        input_schema={"type": "object", "properties": {}},
    ),

    MCPToolDef(
        name="duplicate_theme",
        description=(
            "Duplicate a theme as a backup copy.  The copy is created "
            "unpublished under the given name."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "theme_id": {
                    "type": "string",
                    "description": "ID of the theme to duplicate",
                },
                "new_name": {
                    "type": "string",
                    "description": "Name for the duplicated theme",
                },
            },
            "required": ["theme_id", "new_name"],
        },
        read_only=False,
    ),

    # --- Files ---
    MCPToolDef(
        name="list_theme_files",
        description="List all files/assets in a Shopify theme",
        input_schema={
            "type": "object",
            "properties": {"theme_id": _THEME_ID},
        },
    ),

    MCPToolDef(
        name="read_file",
        description="Read the content of a theme file/asset",
        input_schema={
            "type": "object",
            "properties": {"key": _KEY, "theme_id": _THEME_ID},
            "required": ["key"],
        },
    ),

    MCPToolDef(
        name="write_file",
        description=(
            "Write or update a theme file/asset with new content.  "
            "Replaces the whole file."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "key": _KEY,
                "value": {
                    "type": "string",
                    "description": "The full file content to write",
                },
                "theme_id": _THEME_ID,
            },
            "required": ["key", "value"],
        },
        read_only=False,
        destructive=True,
    ),

    # --- Settings ---
    MCPToolDef(
        name="get_theme_settings",
        description=f"Read {SETTINGS_KEY} from a theme",
        input_schema={
            "type": "object",
            "properties": {"theme_id": _THEME_ID},
        },
    ),
]

_TOOLS_BY_NAME = {t.name: t for t in THEME_TOOLS}


# ---------------------------------------------------------------------------
# Tool executor
# ---------------------------------------------------------------------------


class ThemeToolExecutor:
    """Executes MCP tool calls against the Shopify Admin API.

    Handler methods let ``UpstreamError`` propagate; ``execute`` is the
    protocol boundary that turns any failure into an ``isError`` result.
    """

    def __init__(
        self,
        client: ShopifyClient | None = None,
        default_theme_id: str | None = None,
    ) -> None:
        self.client = client or ShopifyClient()
        if default_theme_id is None:
            from shopify_theme_mcp.config.settings import settings
            default_theme_id = settings.SHOPIFY_ACTIVE_THEME_ID
        self.default_theme_id = default_theme_id

        self._tool_map: dict[str, Callable[..., Coroutine[Any, Any, str]]] = {
            "list_themes": self.list_themes,
            "get_active_theme": self.get_active_theme,
            "list_theme_files": self.list_theme_files,
            "read_file": self.read_file,
            "write_file": self.write_file,
            "duplicate_theme": self.duplicate_theme,
            "get_theme_settings": self.get_theme_settings,
        }

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Execute an MCP tool call and wrap the text in MCP content."""
        handler = self._tool_map.get(tool_name)
        if handler is None:
            return {
                "isError": True,
                "content": [{"type": "text", "text": f"Unknown tool: {tool_name}"}],
            }
        kwargs = validate_arguments(_TOOLS_BY_NAME[tool_name], arguments)
        try:
            text = await handler(**kwargs)
        except Exception as exc:
            logger.error("Tool execution failed: %s: %s", tool_name, exc)
            return {
                "isError": True,
                "content": [{"type": "text", "text": str(exc)}],
            }
        return {
            "isError": False,
            "content": [{"type": "text", "text": text}],
        }

    def list_tools(self) -> list[dict[str, Any]]:
        """Return MCP-formatted tool list."""
        return [
            {
                "name": t.name,
                "description": t.description,
                "inputSchema": t.input_schema,
                "annotations": {
                    "readOnlyHint": t.read_only,
                    "destructiveHint": t.destructive,
                    "openWorldHint": True,
                },
            }
            for t in THEME_TOOLS
        ]

    def _theme(self, theme_id: str | None) -> str:
        return theme_id or self.default_theme_id

    # --- Tool implementations (thin wrappers) ---

    async def list_themes(self) -> str:
        data = await self.client.list_themes()
        themes = [
            {
                "id": str(t["id"]),
                "name": t.get("name"),
                "role": t.get("role"),
                "updated_at": t.get("updated_at"),
            }
            for t in _envelope(data, "themes")
        ]
        return _format_result(themes)

    async def get_active_theme(self) -> str:
        data = await self.client.list_themes(role="main")
        themes = _envelope(data, "themes")
        return _format_result(themes[0] if themes else None)

    async def list_theme_files(self, theme_id: str | None = None) -> str:
        data = await self.client.list_assets(self._theme(theme_id))
        files = [
            {
                "key": a["key"],
                "size": a.get("size"),
                "updated_at": a.get("updated_at"),
            }
            for a in _envelope(data, "assets")
        ]
        return _format_result(files)

    async def read_file(self, key: str, theme_id: str | None = None) -> str:
        data = await self.client.get_asset(self._theme(theme_id), key)
        asset = _envelope(data, "asset")
        return asset.get("value") or BINARY_PLACEHOLDER

    async def write_file(
        self, key: str, value: str, theme_id: str | None = None
    ) -> str:
        data = await self.client.put_asset(self._theme(theme_id), key, value)
        asset = _envelope(data, "asset")
        return _format_result({
            "success": True,
            "key": asset.get("key", key),
            "updated_at": asset.get("updated_at"),
        })

    async def duplicate_theme(self, theme_id: str, new_name: str) -> str:
        data = await self.client.create_theme({
            "name": new_name,
            "role": "unpublished",
            "src": self.client.duplicate_source_url(theme_id),
        })
        theme = _envelope(data, "theme")
        return _format_result({
            "success": True,
            "id": str(theme["id"]),
            "name": theme.get("name"),
        })

    async def get_theme_settings(self, theme_id: str | None = None) -> str:
        data = await self.client.get_asset(self._theme(theme_id), SETTINGS_KEY)
        asset = _envelope(data, "asset")
        return asset.get("value") or EMPTY_PLACEHOLDER


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def validate_arguments(tool: MCPToolDef, arguments: dict[str, Any] | None) -> dict[str, Any]:
    """Check arguments against the tool's input schema.

    Unknown keys are dropped; required keys must be present and non-null,
    and every declared string property must actually be a string.  An
    optional property may be null (``theme_id: null`` means the default).
    """
    arguments = arguments or {}
    if not isinstance(arguments, dict):
        raise InvalidToolArguments(f"{tool.name}: arguments must be an object")

    properties = tool.input_schema.get("properties", {})
    missing = [
        k for k in tool.input_schema.get("required", [])
        if arguments.get(k) is None
    ]
    if missing:
        raise InvalidToolArguments(
            f"{tool.name}: missing required argument(s): {', '.join(missing)}"
        )

    kwargs: dict[str, Any] = {}
    for name, value in arguments.items():
        if name not in properties:
            continue
        if value is not None and not isinstance(value, str):
            raise InvalidToolArguments(f"{tool.name}: '{name}' must be a string")
        kwargs[name] = value
    return kwargs


def _envelope(data: Any, key: str) -> Any:
    """Pull ``key`` out of a Shopify response envelope."""
    if not isinstance(data, dict) or key not in data:
        raise ResponseFormatError(f"Shopify response has no '{key}' field")
    return data[key]


def _format_result(result: Any) -> str:
    """Format a tool result as pretty-printed JSON for the MCP response."""
    return json.dumps(result, indent=2, default=str)
