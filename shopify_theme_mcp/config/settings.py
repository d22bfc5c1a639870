"""Server configuration via environment / .env file."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shopify_theme_mcp.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Shopify ---
    SHOPIFY_SHOP: str = "ciro-jewelry.myshopify.com"
    SHOPIFY_ACCESS_TOKEN: str = ""
    SHOPIFY_ACTIVE_THEME_ID: str = "161795899724"
    SHOPIFY_API_VERSION: str = "2026-04"
    # Unset means no timeout: a hung upstream call hangs the tool call.
    SHOPIFY_TIMEOUT: float | None = None

    # --- HTTP transports ---
    HOST: str = "0.0.0.0"
    PORT: int = 3457

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    @field_validator("SHOPIFY_SHOP", mode="before")
    @classmethod
    def _strip_scheme(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().removeprefix("https://").removeprefix("http://")
            return v.rstrip("/")
        return v

    @field_validator("SHOPIFY_TIMEOUT", mode="before")
    @classmethod
    def _empty_timeout(cls, v):
        if v == "":
            return None
        return v

    def require_token(self) -> str:
        """Return the access token or raise ConfigurationError."""
        if not self.SHOPIFY_ACCESS_TOKEN:
            raise ConfigurationError(
                "SHOPIFY_ACCESS_TOKEN environment variable is required"
            )
        return self.SHOPIFY_ACCESS_TOKEN


settings = Settings()
