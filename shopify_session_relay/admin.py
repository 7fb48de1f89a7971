"""Minimal Shopify Admin GraphQL client used for webhook subscriptions."""
from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Any, Mapping

from .errors import AdminApiError
from .session import Session
from .transport import RequestsTransport, Transport


@dataclass
class AdminContext:
    """Authenticated access to one shop's Admin GraphQL endpoint.

    Attributes:
        shop: Shop domain, with or without scheme.
        access_token: Admin API access token.
        api_version: Admin API version (default: '2025-01').
        transport: Transport used for requests (defaults to RequestsTransport).
        timeout: Request timeout in seconds.
    """

    shop: str
    access_token: str = field(repr=False)
    api_version: str = "2025-01"
    transport: Transport = field(default_factory=RequestsTransport)
    timeout: float = 30
    graphql_url: str = field(init=False)

    def __post_init__(self) -> None:
        host = self.shop.strip().rstrip("/")
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        self.graphql_url = f"{host}/admin/api/{self.api_version}/graphql.json"

    @classmethod
    def for_session(cls, session: Session, **kwargs: Any) -> "AdminContext":
        if not session.access_token:
            raise ValueError(f"Session {session.id} has no access token")
        return cls(session.shop, session.access_token, **kwargs)


def execute(
    ctx: AdminContext,
    query: str,
    variables: Mapping[str, Any] | None = None,
    retries: int = 2,
) -> dict[str, Any]:
    """Execute a GraphQL document against the Admin API.

    5xx responses are retried with exponential backoff; only idempotent
    documents should be sent with ``retries > 0``.

    Returns:
        dict: The parsed JSON response.

    Raises:
        AdminApiError: On transport failure, non-200 status, malformed JSON
            or top-level GraphQL ``errors``.
    """

    payload = {"query": query, "variables": dict(variables or {})}
    headers = {
        "X-Shopify-Access-Token": ctx.access_token,
        "Content-Type": "application/json",
    }

    for attempt in range(retries + 1):
        try:
            resp = ctx.transport.request(
                "POST", ctx.graphql_url, headers=headers, json=payload, timeout=ctx.timeout
            )
        except Exception as exc:
            raise AdminApiError(str(exc)) from exc

        status = getattr(resp, "status_code", None)
        if status is None:
            raise AdminApiError("Transport response missing status_code")
        if status >= 500 and attempt < retries:
            time.sleep(2 ** attempt)
            continue
        if status != 200:
            snippet = getattr(resp, "text", "")[:300]
            raise AdminApiError(snippet, status)
        try:
            data = resp.json()
        except Exception as exc:
            snippet = getattr(resp, "text", "")[:300]
            raise AdminApiError(snippet, status) from exc
        if not isinstance(data, dict):
            raise AdminApiError(f"Expected a JSON object, got {type(data).__name__}", status)
        if "errors" in data:
            raise AdminApiError(str(data["errors"])[:300])
        return data
    raise AdminApiError("Max retries exceeded")
