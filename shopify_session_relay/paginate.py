"""Cursor pagination over Admin API connections."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping

from .admin import AdminContext, execute

logger = logging.getLogger(__name__)

LIST_SUBSCRIPTIONS = """
query webhookSubscriptions($first: Int!, $after: String) {
  webhookSubscriptions(first: $first, after: $after) {
    pageInfo { hasNextPage endCursor }
    nodes {
      id
      topic
      endpoint {
        __typename
        ... on WebhookHttpEndpoint { callbackUrl }
      }
    }
  }
}
"""


def _connection(data: Any, connection_path: list[str]) -> dict[str, Any]:
    conn: Any = data
    for key in connection_path:
        if not isinstance(conn, dict) or key not in conn:
            raise ValueError(f"connection_path missing key '{key}'")
        conn = conn[key]
    if not isinstance(conn, dict):
        raise ValueError("Connection is not an object")
    return conn


def _page_nodes(conn: dict[str, Any]) -> list[Any]:
    if "nodes" in conn:
        items = conn["nodes"]
    elif "edges" in conn:
        edges = conn["edges"]
        if not isinstance(edges, list):
            raise ValueError("Connection 'edges' is not a list")
        items = [edge.get("node") for edge in edges if isinstance(edge, dict)]
    else:
        raise ValueError("Connection missing 'nodes' or 'edges'")
    if not isinstance(items, list):
        raise ValueError("Connection 'nodes' is not a list")
    return items


def cursor_pages(
    ctx: AdminContext,
    query: str,
    connection_path: list[str],
    variables: Mapping[str, Any] | None = None,
    page_size: int = 100,
) -> Iterable[Any]:
    """
    Yield nodes from a cursor-based connection until
    `pageInfo.hasNextPage` is false.

    The query must accept `$first:Int!` and `$after:String`.
    `connection_path` is the list of keys from the response root to the
    connection, e.g. `["data", "webhookSubscriptions"]`.

    Raises:
        ValueError: If `connection_path` is invalid or the connection is not
            shaped like a connection.
        AdminApiError: Propagated from `execute`.
    """
    params: dict[str, Any] = dict(variables or {})
    first = params.get("first")
    params["first"] = first if (isinstance(first, int) and first > 0) else page_size
    params["after"] = None
    while True:
        conn = _connection(execute(ctx, query, params), connection_path)
        yield from _page_nodes(conn)
        page_info = conn.get("pageInfo")
        if not isinstance(page_info, dict) or not page_info.get("hasNextPage"):
            break
        cursor = page_info.get("endCursor")
        if not cursor:
            break
        params["after"] = cursor


def webhook_subscriptions(ctx: AdminContext, page_size: int = 100) -> Iterator[tuple[str, str]]:
    """Yield ``(topic, callback_url)`` for each HTTP webhook subscription.

    Subscriptions with another endpoint type and malformed nodes are skipped.
    """
    path = ["data", "webhookSubscriptions"]
    for node in cursor_pages(ctx, LIST_SUBSCRIPTIONS, path, page_size=page_size):
        if not isinstance(node, dict):
            logger.warning("Skipping malformed webhook subscription node: %r", node)
            continue
        endpoint = node.get("endpoint")
        url = endpoint.get("callbackUrl") if isinstance(endpoint, dict) else None
        topic = node.get("topic")
        if isinstance(topic, str) and isinstance(url, str) and url:
            yield topic, url
