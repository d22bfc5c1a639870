"""Shared fixtures: a ShopifyClient wired to the in-memory mock shop."""

from __future__ import annotations

import pytest

from shopify_theme_mcp.mcp.tools import ThemeToolExecutor
from shopify_theme_mcp.shopify.client import ShopifyClient, ShopifyConfig
from tests.mock_shopify import (
    API_VERSION,
    DEFAULT_THEME_ID,
    SHOP,
    TOKEN,
    MockShopifyTransport,
)


@pytest.fixture
def shop_config() -> ShopifyConfig:
    return ShopifyConfig(shop=SHOP, access_token=TOKEN, api_version=API_VERSION)


@pytest.fixture
def mock_shop() -> MockShopifyTransport:
    return MockShopifyTransport()


@pytest.fixture
def shopify_client(shop_config, mock_shop) -> ShopifyClient:
    return ShopifyClient(shop_config, transport=mock_shop)


@pytest.fixture
def executor(shopify_client) -> ThemeToolExecutor:
    return ThemeToolExecutor(shopify_client, default_theme_id=DEFAULT_THEME_ID)
