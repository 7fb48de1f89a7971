import json
import pathlib
import sys
import threading
import time
from dataclasses import dataclass

import pytest

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from shopify_session_relay.registry import (
    APP_UNINSTALLED,
    WebhookHandlerEntry,
    WebhookRegistry,
    normalize_topic,
)
from shopify_session_relay.session import Session
from shopify_session_relay.transport import Transport

FIXTURES = pathlib.Path(__file__).resolve().parent / "fixtures"
CALLBACK = "https://app.example.com/api/webhooks"


@dataclass
class DummyResponse:
    status_code: int
    _json: dict
    text: str = ""

    def json(self):
        return self._json


class GraphQLTransport(Transport):
    """Answers subscription listing from fixtures and creates by topic."""

    def __init__(self, pages=None, create_results=None):
        self.pages = list(pages or [])
        self.create_results = create_results or {}
        self.created = []

    def request(self, method, url, *, headers=None, json=None, timeout):
        query = json["query"]
        if "webhookSubscriptions(" in query:
            page = self.pages.pop(0)
            if isinstance(page, Exception):
                raise page
            return page
        topic = json["variables"]["topic"]
        self.created.append((topic, json["variables"]["webhookSubscription"]["callbackUrl"]))
        result = self.create_results.get(topic, {"userErrors": []})
        if isinstance(result, DummyResponse):
            return result
        return DummyResponse(200, {"data": {"webhookSubscriptionCreate": result}})


class RecordingInstallations:
    def __init__(self):
        self.deleted = []

    def delete(self, shop):
        self.deleted.append(shop)
        return True


def noop(topic, shop, body):
    return None


def load(name):
    return DummyResponse(200, json.loads((FIXTURES / name).read_text()))


def make_registry(handlers=(), transport=None, installations=None):
    return WebhookRegistry(
        installations or RecordingInstallations(), CALLBACK, handlers, transport=transport
    )


def test_normalize_topic():
    assert normalize_topic("app/uninstalled") == APP_UNINSTALLED
    assert normalize_topic("ORDERS_CREATE") == "ORDERS_CREATE"


def test_table_empty_until_ensured():
    registry = make_registry([WebhookHandlerEntry("orders/create", noop)])
    assert registry.topics == []
    assert registry.ensure_handlers_registered() is True
    assert registry.topics == [APP_UNINSTALLED, "ORDERS_CREATE"]
    assert registry.ensure_handlers_registered() is False


def test_builtin_uninstall_handler_deletes_installation():
    installations = RecordingInstallations()
    registry = make_registry(installations=installations)
    registry.ensure_handlers_registered()
    registry.get_handler("app/uninstalled")("app/uninstalled", "test.myshopify.com", "{}")
    assert installations.deleted == ["test.myshopify.com"]


def test_reregistering_topic_is_noop():
    registry = make_registry()
    registry.ensure_handlers_registered()
    other = lambda topic, shop, body: "other"  # noqa: E731
    assert registry.add_handlers([WebhookHandlerEntry("APP_UNINSTALLED", other)]) == []
    assert registry.get_handler(APP_UNINSTALLED) is not other
    assert registry.add_handlers([WebhookHandlerEntry("orders/paid", noop)]) == ["ORDERS_PAID"]


def test_concurrent_ensure_populates_once():
    calls = []

    def slow_handlers():
        calls.append(1)
        time.sleep(0.05)
        return [WebhookHandlerEntry("orders/create", noop), WebhookHandlerEntry("products/update", noop)]

    registry = make_registry(slow_handlers)
    n = 8
    barrier = threading.Barrier(n)
    seen = []
    populated = []

    def worker():
        barrier.wait()
        populated.append(registry.ensure_handlers_registered())
        seen.append(sorted(registry.topics))

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=2)

    assert len(calls) == 1
    assert populated.count(True) == 1
    assert seen == [[APP_UNINSTALLED, "ORDERS_CREATE", "PRODUCTS_UPDATE"]] * n


def test_register_skips_existing_and_creates_missing():
    transport = GraphQLTransport(pages=[load("subscriptions_page1.json"), load("subscriptions_page2.json")])
    registry = make_registry(
        [WebhookHandlerEntry("orders/create", noop), WebhookHandlerEntry("products/update", noop)],
        transport=transport,
    )
    report = registry.register_with_platform(Session("offline_a", "a.myshopify.com", access_token="tok"))
    assert report.ok
    assert {r.topic: r.status for r in report.results} == {
        APP_UNINSTALLED: "existing",
        "ORDERS_CREATE": "created",
        "PRODUCTS_UPDATE": "created",
    }
    assert transport.created == [("ORDERS_CREATE", CALLBACK), ("PRODUCTS_UPDATE", CALLBACK)]


def test_register_aggregates_failures():
    from shopify_session_relay.errors import AdminApiError

    transport = GraphQLTransport(
        pages=[AdminApiError("listing down")],
        create_results={
            APP_UNINSTALLED: DummyResponse(401, {}, text="unauthorized"),
            "ORDERS_CREATE": {"userErrors": [{"field": ["callbackUrl"], "message": "Address for this topic has already been taken"}]},
            "PRODUCTS_UPDATE": {"userErrors": [{"field": ["topic"], "message": "Topic is invalid"}]},
            "ORDERS_PAID": {"userErrors": []},
        },
    )
    registry = make_registry(
        [WebhookHandlerEntry(t, noop) for t in ("orders/create", "products/update", "orders/paid")],
        transport=transport,
    )
    report = registry.register_with_platform(Session("offline_a", "a.myshopify.com", access_token="tok"))
    statuses = {r.topic: r.status for r in report.results}
    assert statuses == {
        APP_UNINSTALLED: "failed",
        "ORDERS_CREATE": "existing",
        "PRODUCTS_UPDATE": "failed",
        "ORDERS_PAID": "created",
    }
    assert not report.ok
    assert [f.topic for f in report.failures] == [APP_UNINSTALLED, "PRODUCTS_UPDATE"]
    assert "Topic is invalid" in report.failures[1].error


def test_register_requires_token():
    registry = make_registry(transport=GraphQLTransport())
    with pytest.raises(ValueError):
        registry.register_with_platform(Session("offline_a", "a.myshopify.com"))


def test_malformed_create_response_fails_only_that_topic():
    transport = GraphQLTransport(
        pages=[DummyResponse(200, {"data": {"webhookSubscriptions": {"nodes": []}}})],
        create_results={
            APP_UNINSTALLED: DummyResponse(200, ["unexpected"]),
            "ORDERS_CREATE": {"userErrors": "not a list"},
            "ORDERS_PAID": DummyResponse(200, {"data": None}),
            "PRODUCTS_UPDATE": {"userErrors": ["Address for this topic has already been taken"]},
        },
    )
    registry = make_registry(
        [WebhookHandlerEntry(t, noop) for t in ("orders/create", "orders/paid", "products/update", "carts/update")],
        transport=transport,
    )
    report = registry.register_with_platform(Session("offline_a", "a.myshopify.com", access_token="tok"))
    assert [topic for topic, _ in transport.created] == [
        APP_UNINSTALLED, "ORDERS_CREATE", "ORDERS_PAID", "PRODUCTS_UPDATE", "CARTS_UPDATE",
    ]
    assert {r.topic: r.status for r in report.results} == {
        APP_UNINSTALLED: "failed",
        "ORDERS_CREATE": "failed",
        "ORDERS_PAID": "failed",
        "PRODUCTS_UPDATE": "existing",
        "CARTS_UPDATE": "created",
    }


def test_malformed_subscription_nodes_are_skipped():
    page = {"data": {"webhookSubscriptions": {
        "pageInfo": {"hasNextPage": False},
        "nodes": [
            "garbage",
            {"topic": "ORDERS_CREATE", "endpoint": "not an object"},
            {"topic": APP_UNINSTALLED, "endpoint": {"callbackUrl": CALLBACK}},
        ],
    }}}
    transport = GraphQLTransport(pages=[DummyResponse(200, page)])
    registry = make_registry([WebhookHandlerEntry("orders/create", noop)], transport=transport)
    report = registry.register_with_platform(Session("offline_a", "a.myshopify.com", access_token="tok"))
    assert {r.topic: r.status for r in report.results} == {
        APP_UNINSTALLED: "existing",
        "ORDERS_CREATE": "created",
    }


def test_listing_with_non_object_body_still_creates():
    transport = GraphQLTransport(pages=[DummyResponse(200, ["unexpected"])])
    registry = make_registry(transport=transport)
    report = registry.register_with_platform(Session("offline_a", "a.myshopify.com", access_token="tok"))
    assert report.ok
    assert transport.created == [(APP_UNINSTALLED, CALLBACK)]
