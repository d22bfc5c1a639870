from shopify_theme_mcp.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
