import pathlib
import sys
from dataclasses import dataclass
from typing import Any

from fastapi.testclient import TestClient

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from shopify_session_relay.app import create_app
from shopify_session_relay.config import Settings
from shopify_session_relay.session import Session
from shopify_session_relay.transport import Transport
from shopify_session_relay.verification import compute_hmac

SECRET = "app-secret"


@dataclass
class DummyResponse:
    status_code: int
    _json: Any = None
    text: str = ""

    def json(self):
        return self._json


class RoutingTransport(Transport):
    """Backend and Admin API double keyed on method and URL."""

    def __init__(self):
        self.calls = []

    def request(self, method, url, *, headers=None, json=None, timeout):
        self.calls.append((method, url, json))
        if url.endswith("/sessions/shop/test.myshopify.com"):
            return DummyResponse(200, [{"id": "offline_test.myshopify.com", "shop": "test.myshopify.com"}])
        if url.endswith("graphql.json"):
            if "webhookSubscriptions(" in json["query"]:
                return DummyResponse(200, {"data": {"webhookSubscriptions": {
                    "pageInfo": {"hasNextPage": False}, "nodes": []}}})
            return DummyResponse(200, {"data": {"webhookSubscriptionCreate": {"userErrors": []}}})
        return DummyResponse(200, {})


def make_client():
    settings = Settings(
        backend_base_url="http://backend.test",
        api_secret=SECRET,
        app_url="https://app.example.com/",
    )
    transport = RoutingTransport()

    def resolve(token):
        return Session("offline_test.myshopify.com", "test.myshopify.com", access_token="shpat")

    app = create_app(settings, resolve, transport=transport)
    return TestClient(app), transport


def test_settings_callback_url():
    assert Settings(app_url="https://app.example.com/").callback_url == "https://app.example.com/api/webhooks"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("BACKEND_BASE_URL", "http://sessions.internal")
    monkeypatch.setenv("SESSION_STORE_TIMEOUT", "2.5")
    settings = Settings.from_env()
    assert settings.backend_base_url == "http://sessions.internal"
    assert settings.timeout == 2.5
    assert settings.webhook_path == "/api/webhooks"


def test_uninstall_webhook_deletes_sessions():
    client, transport = make_client()
    body = b'{"domain": "test.myshopify.com"}'
    resp = client.post(
        "/api/webhooks",
        content=body,
        headers={
            "X-Shopify-Topic": "app/uninstalled",
            "X-Shopify-Shop-Domain": "test.myshopify.com",
            "X-Shopify-Hmac-Sha256": compute_hmac(SECRET, body),
        },
    )
    assert resp.status_code == 200
    deletes = [c for c in transport.calls if c[0] == "DELETE"]
    assert deletes == [("DELETE", "http://backend.test/sessions", {"ids": ["offline_test.myshopify.com"]})]


def test_bad_signature_is_unauthorized():
    client, transport = make_client()
    resp = client.post(
        "/api/webhooks",
        content=b"{}",
        headers={"X-Shopify-Topic": "app/uninstalled", "X-Shopify-Shop-Domain": "test.myshopify.com",
                 "X-Shopify-Hmac-Sha256": "forged"},
    )
    assert resp.status_code == 401
    assert transport.calls == []


def test_bootstrap_requires_bearer():
    client, _ = make_client()
    assert client.post("/api/session").status_code == 401


def test_bootstrap_reports_steps():
    client, transport = make_client()
    resp = client.post("/api/session", headers={"Authorization": "Bearer id-token"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert [s["name"] for s in data["steps"]] == ["acquire_token", "store_session", "register_webhooks"]
    assert ("POST", "http://backend.test/sessions") in [(m, u) for m, u, _ in transport.calls]
    assert "shpat" not in resp.text
