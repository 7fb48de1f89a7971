"""Error classes for the session and webhook layer."""
from __future__ import annotations

from typing import Optional


class ShopifyAppError(Exception):
    """Base class for errors raised by this package."""


class TransportError(ShopifyAppError):
    """Raised for network failures, timeouts or unexpected HTTP statuses."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        snippet = message if len(message) <= 300 else message[:300]
        if status_code is not None:
            msg = f"HTTP {status_code}: {snippet}"
        else:
            msg = snippet
        super().__init__(msg)
        self.status_code = status_code


class PersistenceError(TransportError):
    """Raised when the session backend cannot complete a call.

    The session may or may not have been written; callers must not assume
    a partial store.
    """


class AdminApiError(TransportError):
    """Raised for HTTP or GraphQL errors from the Shopify Admin API."""
