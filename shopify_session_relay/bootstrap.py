"""Startup sequence run when the embedded app loads."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Optional

from .registry import WebhookRegistry
from .session import Session
from .storage import BackendSessionStorage

logger = logging.getLogger(__name__)

TokenSource = Callable[[], str]
SessionResolver = Callable[[str], Session]


@dataclass
class StepResult:
    name: str
    ok: bool
    error: Optional[str] = None
    skipped: bool = False


@dataclass
class BootstrapReport:
    steps: list[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    def step(self, name: str) -> Optional[StepResult]:
        for s in self.steps:
            if s.name == name:
                return s
        return None

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "steps": [
                {"name": s.name, "ok": s.ok, "skipped": s.skipped, "error": s.error}
                for s in self.steps
            ],
        }


class SessionBootstrap:
    """Acquire a bearer token, persist its session, subscribe webhooks.

    Each step is isolated: a storage failure does not prevent webhook
    registration. Only a missing token stops the sequence. :meth:`run`
    never raises; every outcome is reported in the returned
    :class:`BootstrapReport`.

    Args:
        storage: Session store the resolved session is persisted to.
        registry: Registry whose topics are subscribed on the platform.
        resolve_session: Exchanges the bearer token for a :class:`Session`.
    """

    def __init__(
        self,
        storage: BackendSessionStorage,
        registry: WebhookRegistry,
        resolve_session: SessionResolver,
    ) -> None:
        self.storage = storage
        self.registry = registry
        self.resolve_session = resolve_session

    def run(self, acquire_token: TokenSource) -> BootstrapReport:
        report = BootstrapReport()

        try:
            token = acquire_token()
            if not token:
                raise ValueError("Empty bearer token")
        except Exception as exc:
            logger.error("Error getting token: %s", exc)
            report.steps.append(StepResult("acquire_token", False, str(exc)))
            for name in ("store_session", "register_webhooks"):
                report.steps.append(StepResult(name, False, "no token", skipped=True))
            return report
        report.steps.append(StepResult("acquire_token", True))

        session: Optional[Session] = None
        try:
            session = self.resolve_session(token)
            self.storage.store(session)
        except Exception as exc:
            logger.error("Error storing token: %s", exc)
            report.steps.append(StepResult("store_session", False, str(exc)))
        else:
            logger.info("Token stored for shop=%s", session.shop)
            report.steps.append(StepResult("store_session", True))

        try:
            if session is None:
                session = self.resolve_session(token)
            registration = self.registry.register_with_platform(session)
        except Exception as exc:
            logger.error("Error registering webhook: %s", exc)
            report.steps.append(StepResult("register_webhooks", False, str(exc)))
        else:
            if registration.ok:
                logger.info("Webhook registered for shop=%s", session.shop)
                report.steps.append(StepResult("register_webhooks", True))
            else:
                failed = ", ".join(f"{r.topic}: {r.error}" for r in registration.failures)
                logger.error("Error registering webhook: %s", failed)
                report.steps.append(StepResult("register_webhooks", False, failed))
        return report
