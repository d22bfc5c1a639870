"""Exception types shared by the client, tool and transport layers."""

from __future__ import annotations


class ShopifyThemeError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ShopifyThemeError):
    """Raised at startup when required configuration is missing."""


class UpstreamError(ShopifyThemeError):
    """Raised when the Shopify Admin API answers with status >= 400.

    Carries the status code and the raw response body unmodified.
    """

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Shopify API {status_code}: {body}")


class ResponseFormatError(ShopifyThemeError):
    """Raised when a successful response lacks the expected envelope."""


class TransportError(ShopifyThemeError):
    """Raised when the network or a stdio pipe fails underneath us."""


class SessionNotFound(ShopifyThemeError):
    """Raised when an SSE message targets an unknown or closed session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class InvalidToolArguments(ShopifyThemeError):
    """Raised when tool arguments do not satisfy the input schema."""
