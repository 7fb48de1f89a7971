"""Webhook handler registry and platform subscription."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import threading
from typing import Any, Callable, Iterable, Optional, Union

from .admin import AdminContext, execute
from .errors import AdminApiError
from .installations import AppInstallations
from .paginate import webhook_subscriptions
from .session import Session
from .transport import Transport

logger = logging.getLogger(__name__)

APP_UNINSTALLED = "APP_UNINSTALLED"
HTTP_DELIVERY = "http"

WebhookHandler = Callable[[str, str, str], Any]

CREATE_SUBSCRIPTION = """
mutation webhookSubscriptionCreate($topic: WebhookSubscriptionTopic!, $webhookSubscription: WebhookSubscriptionInput!) {
  webhookSubscriptionCreate(topic: $topic, webhookSubscription: $webhookSubscription) {
    webhookSubscription { id topic }
    userErrors { field message }
  }
}
"""


def normalize_topic(topic: str) -> str:
    """``'app/uninstalled'`` -> ``'APP_UNINSTALLED'``."""
    return topic.strip().upper().replace("/", "_")


@dataclass(frozen=True)
class WebhookHandlerEntry:
    topic: str
    handler: WebhookHandler
    callback_url: Optional[str] = None
    delivery_method: str = HTTP_DELIVERY


@dataclass
class TopicRegistration:
    topic: str
    status: str  # created, existing or failed
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


@dataclass
class RegistrationReport:
    """Outcome of subscribing every registered topic for one shop."""

    shop: str
    results: list[TopicRegistration] = field(default_factory=list)

    @property
    def failures(self) -> list[TopicRegistration]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_dict(self) -> dict[str, Any]:
        return {
            "shop": self.shop,
            "results": [
                {"topic": r.topic, "status": r.status, "error": r.error} for r in self.results
            ],
        }


HandlerSource = Union[Iterable[WebhookHandlerEntry], Callable[[], Iterable[WebhookHandlerEntry]]]


class WebhookRegistry:
    """Process-wide table of webhook topic -> handler.

    The table starts empty and is populated once, on first use, by
    :meth:`ensure_handlers_registered`: the built-in uninstall handler plus
    the application handlers given at construction. Population is guarded
    by a lock so concurrent first deliveries build the table exactly once
    and never observe it half built.

    Args:
        installations: Collaborator notified when a shop uninstalls the app.
        callback_url: Absolute delivery URL declared to the platform.
        handlers: Application handler entries, or a callable returning them.
            A callable is invoked during population.
        api_version: Admin API version used for subscriptions.
        transport: Transport for Admin API calls.
        timeout: Admin API request timeout in seconds.
    """

    def __init__(
        self,
        installations: AppInstallations,
        callback_url: str,
        handlers: HandlerSource = (),
        *,
        api_version: str = "2025-01",
        transport: Optional[Transport] = None,
        timeout: float = 30,
    ) -> None:
        self.installations = installations
        self.callback_url = callback_url
        self._handler_source = handlers
        self.api_version = api_version
        self.transport = transport
        self.timeout = timeout
        self._table: dict[str, WebhookHandlerEntry] = {}
        self._lock = threading.Lock()
        self._ready = threading.Event()

    @property
    def initialized(self) -> bool:
        return self._ready.is_set()

    @property
    def topics(self) -> list[str]:
        with self._lock:
            return list(self._table)

    def entries(self) -> list[WebhookHandlerEntry]:
        with self._lock:
            return list(self._table.values())

    def get_handler(self, topic: str) -> Optional[WebhookHandler]:
        with self._lock:
            entry = self._table.get(normalize_topic(topic))
        return entry.handler if entry else None

    def add_handlers(self, entries: Iterable[WebhookHandlerEntry]) -> list[str]:
        """Add entries whose topic is not registered yet.

        Returns:
            list: The topics that were added. Topics already present are
            logged and left untouched.
        """
        with self._lock:
            return self._add_locked(entries)

    def _add_locked(self, entries: Iterable[WebhookHandlerEntry]) -> list[str]:
        added = []
        for entry in entries:
            topic = normalize_topic(entry.topic)
            if topic in self._table:
                logger.info("Webhook handler for %s already registered, skipping", topic)
                continue
            self._table[topic] = WebhookHandlerEntry(
                topic=topic,
                handler=entry.handler,
                callback_url=entry.callback_url or self.callback_url,
                delivery_method=entry.delivery_method,
            )
            added.append(topic)
        return added

    def _builtin_entries(self) -> list[WebhookHandlerEntry]:
        return [WebhookHandlerEntry(APP_UNINSTALLED, self._on_app_uninstalled)]

    def _on_app_uninstalled(self, topic: str, shop: str, body: str) -> None:
        logger.info("App uninstalled from shop=%s", shop)
        self.installations.delete(shop)

    def ensure_handlers_registered(self) -> bool:
        """Populate the table unless that has already happened.

        Returns:
            bool: True for the one caller that performed the population.
        """
        if self._ready.is_set():
            return False
        with self._lock:
            if self._ready.is_set():
                return False
            source = self._handler_source
            extra = source() if callable(source) else source
            added = self._add_locked(self._builtin_entries())
            added += self._add_locked(extra)
            self._ready.set()
        logger.info("Webhook handlers registered: %s", ", ".join(added))
        return True

    def _existing_subscriptions(self, ctx: AdminContext) -> dict[str, set[str]]:
        existing: dict[str, set[str]] = {}
        for topic, url in webhook_subscriptions(ctx):
            existing.setdefault(topic, set()).add(url)
        return existing

    def _subscribe(self, ctx: AdminContext, entry: WebhookHandlerEntry) -> TopicRegistration:
        variables = {
            "topic": entry.topic,
            "webhookSubscription": {"callbackUrl": entry.callback_url, "format": "JSON"},
        }
        try:
            data = execute(ctx, CREATE_SUBSCRIPTION, variables)
        except AdminApiError as exc:
            return TopicRegistration(entry.topic, "failed", str(exc))
        payload = data.get("data")
        result = payload.get("webhookSubscriptionCreate") if isinstance(payload, dict) else None
        if not isinstance(result, dict):
            return TopicRegistration(entry.topic, "failed", "Malformed webhookSubscriptionCreate response")
        user_errors = result.get("userErrors") or []
        if not isinstance(user_errors, list):
            return TopicRegistration(entry.topic, "failed", "Malformed userErrors in response")
        messages = [
            str(e.get("message", "")) if isinstance(e, dict) else str(e) for e in user_errors
        ]
        if not messages:
            return TopicRegistration(entry.topic, "created")
        if all("already been taken" in m for m in messages):
            return TopicRegistration(entry.topic, "existing")
        return TopicRegistration(entry.topic, "failed", "; ".join(messages))

    def register_with_platform(self, session: Session) -> RegistrationReport:
        """Subscribe the shop to every registered topic.

        Topics already subscribed at the same callback URL are left alone.
        A failure for one topic is recorded and the remaining topics are
        still attempted.

        Raises:
            ValueError: If ``session`` carries no access token.
        """
        self.ensure_handlers_registered()
        kwargs: dict[str, Any] = {"api_version": self.api_version, "timeout": self.timeout}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        ctx = AdminContext.for_session(session, **kwargs)

        try:
            existing = self._existing_subscriptions(ctx)
        except (AdminApiError, ValueError) as exc:
            logger.warning("Could not list webhook subscriptions for shop=%s: %s", session.shop, exc)
            existing = {}

        report = RegistrationReport(shop=session.shop)
        for entry in self.entries():
            if entry.delivery_method != HTTP_DELIVERY:
                report.results.append(
                    TopicRegistration(entry.topic, "failed", f"Unsupported delivery method {entry.delivery_method}")
                )
                continue
            if entry.callback_url in existing.get(entry.topic, ()):
                report.results.append(TopicRegistration(entry.topic, "existing"))
                continue
            outcome = self._subscribe(ctx, entry)
            if not outcome.ok:
                logger.error("Webhook registration failed topic=%s shop=%s: %s", entry.topic, session.shop, outcome.error)
            report.results.append(outcome)
        logger.info(
            "Webhook registration for shop=%s: %s",
            session.shop,
            ", ".join(f"{r.topic}={r.status}" for r in report.results),
        )
        return report
