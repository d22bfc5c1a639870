"""Shopify Admin REST API client.

One request per call against ``https://{shop}/admin/api/{version}/``,
authenticated with a static Admin API access token.  The client never
retries, paginates or caches: a status >= 400 surfaces immediately as
``UpstreamError`` carrying the status code and raw body.

Endpoints used by the theme tools:
  - themes.json                   list / create (duplicate) themes
  - themes/{id}/assets.json       list, read and write theme files

Reference: https://shopify.dev/docs/api/admin-rest/latest/resources/theme
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from shopify_theme_mcp.config.settings import Settings, settings as default_settings
from shopify_theme_mcp.errors import TransportError, UpstreamError

logger = logging.getLogger(__name__)

_TOKEN_HEADER = "X-Shopify-Access-Token"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class ShopifyConfig:
    """Connection settings for one shop."""
    shop: str = ""
    access_token: str = ""
    api_version: str = "2026-04"
    timeout_seconds: float | None = None

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "ShopifyConfig":
        s = source or default_settings
        return cls(
            shop=s.SHOPIFY_SHOP,
            access_token=s.SHOPIFY_ACCESS_TOKEN,
            api_version=s.SHOPIFY_API_VERSION,
            timeout_seconds=s.SHOPIFY_TIMEOUT,
        )

    @property
    def base_url(self) -> str:
        return f"https://{self.shop}/admin/api/{self.api_version}/"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ShopifyClient:
    """Async client for the Shopify Admin REST API.

    ``transport`` replaces the network layer (tests pass a mock
    ``httpx.AsyncBaseTransport``).
    """

    def __init__(
        self,
        config: ShopifyConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or ShopifyConfig.from_settings()
        self._transport = transport

    @property
    def shop(self) -> str:
        return self._config.shop

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.base_url,
            headers={
                _TOKEN_HEADER: self._config.access_token,
                "Accept": "application/json",
            },
            timeout=self._config.timeout_seconds,
            transport=self._transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        """Send one request and return the decoded response.

        Returns parsed JSON, or the raw text when the body is not JSON.
        Raises ``UpstreamError`` for status >= 400 and ``TransportError``
        when the request never completes.
        """
        kwargs: dict[str, Any] = {}
        if params:
            kwargs["params"] = params
        if body is not None:
            # httpx sets Content-Type: application/json only when a body is sent
            kwargs["json"] = body

        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning(
                "Shopify %s %s returned %d", method, path, resp.status_code
            )
            raise UpstreamError(resp.status_code, resp.text)

        try:
            return resp.json()
        except ValueError:
            logger.warning(
                "Shopify %s %s returned non-JSON body; passing raw text through",
                method, path,
            )
            return resp.text

    # --- Themes ---

    async def list_themes(self, role: str = "") -> Any:
        """List themes, optionally filtered by role (main, unpublished, ...)."""
        params = {"role": role} if role else None
        return await self.request("GET", "themes.json", params=params)

    async def create_theme(self, theme: dict[str, Any]) -> Any:
        """Create a theme. With a ``src`` URL this duplicates another theme."""
        return await self.request("POST", "themes.json", body={"theme": theme})

    def duplicate_source_url(self, theme_id: str) -> str:
        return f"https://{self._config.shop}/admin/themes/{theme_id}/duplicate"

    # --- Assets ---

    async def list_assets(self, theme_id: str) -> Any:
        return await self.request("GET", f"themes/{theme_id}/assets.json")

    async def get_asset(self, theme_id: str, key: str) -> Any:
        """Fetch one asset. ``key`` is URL-encoded into ``asset[key]``."""
        return await self.request(
            "GET",
            f"themes/{theme_id}/assets.json",
            params={"asset[key]": key},
        )

    async def put_asset(self, theme_id: str, key: str, value: str) -> Any:
        return await self.request(
            "PUT",
            f"themes/{theme_id}/assets.json",
            body={"asset": {"key": key, "value": value}},
        )
