from shopify_theme_mcp.shopify.client import ShopifyClient, ShopifyConfig

__all__ = ["ShopifyClient", "ShopifyConfig"]
