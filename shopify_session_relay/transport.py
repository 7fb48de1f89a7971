"""Transport abstractions."""
from __future__ import annotations

from abc import ABC, abstractmethod
import os
from typing import Any, Mapping, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    import requests


class Transport(ABC):
    """Abstract transport interface."""

    @abstractmethod
    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        timeout: float,
    ) -> "requests.Response":  # noqa: D401
        """Send an HTTP request and return the response."""
        raise NotImplementedError


class RequestsTransport(Transport):
    """Transport using the requests library, one attempt per call.

    Automatic retries are switched off: deletes against the session backend
    must never be replayed behind the caller's back, and callers that want
    resilience wrap the call themselves.

    Args:
        force_close: If True, send ``Connection: close`` with each request to
            disable keep-alives. Defaults to the ``SHOPIFY_HTTP_FORCE_CLOSE``
            env var or ``True``.
    """

    def __init__(self, *, force_close: bool | None = None) -> None:
        import requests
        from requests.adapters import HTTPAdapter
        from urllib3.util import Retry

        if force_close is None:
            force_close = os.getenv("SHOPIFY_HTTP_FORCE_CLOSE", "1") not in ("0", "false", "")
        retry = Retry(total=0, raise_on_status=False)
        adapter = HTTPAdapter(max_retries=retry)
        session = requests.Session()
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        if force_close:
            session.headers.setdefault("Connection", "close")
        self._session = session

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        timeout: float,
    ) -> "requests.Response":
        return self._session.request(
            method, url, headers=dict(headers or {}), json=json, timeout=timeout
        )

    def close(self) -> None:
        self._session.close()
