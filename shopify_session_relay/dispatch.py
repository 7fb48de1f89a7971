"""Inbound webhook dispatch: verify, route, acknowledge.

Security contract:
- Only a signature failure produces 401; no handler runs in that case
- A verified delivery is always acknowledged with 200, even for unknown
  topics or failing handlers, since the platform retries anything else and
  the retry would fail the same way
- A handler table that cannot be built yields 503 so the delivery is retried
- Error details are never returned to the caller
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Mapping

from .registry import WebhookRegistry
from .verification import HMAC_HEADER, verify_webhook

logger = logging.getLogger(__name__)

TOPIC_HEADER = "x-shopify-topic"
SHOP_HEADER = "x-shopify-shop-domain"
WEBHOOK_ID_HEADER = "x-shopify-webhook-id"

# Outcomes
HANDLED = "handled"
UNHANDLED = "unhandled"
HANDLER_FAILED = "handler_failed"
UNAUTHORIZED = "unauthorized"
MISSING_HEADERS = "missing_headers"
REGISTRY_UNAVAILABLE = "registry_unavailable"


@dataclass(frozen=True)
class DispatchResult:
    status_code: int
    outcome: str
    topic: str = ""
    shop: str = ""

    @property
    def acknowledged(self) -> bool:
        return 200 <= self.status_code < 300


class WebhookDispatcher:
    """Routes verified platform webhooks to handlers in a registry."""

    def __init__(self, registry: WebhookRegistry, api_secret: str) -> None:
        self.registry = registry
        self.api_secret = api_secret

    def _audit(self, result: DispatchResult, webhook_id: str) -> DispatchResult:
        logger.info(
            "WEBHOOK topic=%s shop=%s id=%s outcome=%s status=%d",
            result.topic or "unknown",
            result.shop or "unknown",
            webhook_id or "-",
            result.outcome,
            result.status_code,
        )
        return result

    def process(self, headers: Mapping[str, str], body: bytes) -> DispatchResult:
        """Handle one delivery given its headers and raw, unparsed body."""
        lowered = {k.lower(): v for k, v in headers.items()}
        topic = lowered.get(TOPIC_HEADER, "").strip()
        shop = lowered.get(SHOP_HEADER, "").strip()
        webhook_id = lowered.get(WEBHOOK_ID_HEADER, "")

        if not verify_webhook(self.api_secret, body, lowered.get(HMAC_HEADER)):
            return self._audit(DispatchResult(401, UNAUTHORIZED, topic, shop), webhook_id)

        if not topic or not shop:
            return self._audit(DispatchResult(400, MISSING_HEADERS, topic, shop), webhook_id)

        try:
            self.registry.ensure_handlers_registered()
            handler = self.registry.get_handler(topic)
        except Exception:
            # table stays unpopulated; the next delivery retries population
            logger.exception("Webhook handler table unavailable topic=%s shop=%s", topic, shop)
            return self._audit(DispatchResult(503, REGISTRY_UNAVAILABLE, topic, shop), webhook_id)
        if handler is None:
            logger.warning("No webhook handler registered for topic %s", topic)
            return self._audit(DispatchResult(200, UNHANDLED, topic, shop), webhook_id)

        try:
            handler(topic, shop, body.decode("utf-8", errors="replace"))
        except Exception:
            logger.exception("Webhook handler failed topic=%s shop=%s", topic, shop)
            return self._audit(DispatchResult(200, HANDLER_FAILED, topic, shop), webhook_id)
        return self._audit(DispatchResult(200, HANDLED, topic, shop), webhook_id)
