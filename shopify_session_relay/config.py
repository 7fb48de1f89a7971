"""Runtime settings read from the environment."""
from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class Settings:
    """Configuration for the session and webhook layer.

    Attributes:
        backend_base_url: Base URL of the session backend.
        api_secret: Shared app secret used to verify webhook signatures. An
            empty secret rejects every webhook.
        app_url: Public URL of this app, used to build callback URLs.
        webhook_path: Path the platform delivers webhooks to.
        bootstrap_path: Path the embedded frontend posts its token to.
        api_version: Shopify Admin API version.
        timeout: Timeout in seconds for session backend calls.
    """

    backend_base_url: str = "http://localhost:3000"
    api_secret: str = ""
    app_url: str = ""
    webhook_path: str = "/api/webhooks"
    bootstrap_path: str = "/api/session"
    api_version: str = "2025-01"
    timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            backend_base_url=os.getenv("BACKEND_BASE_URL", cls.backend_base_url),
            api_secret=os.getenv("SHOPIFY_API_SECRET", ""),
            app_url=os.getenv("SHOPIFY_APP_URL", ""),
            webhook_path=os.getenv("WEBHOOK_CALLBACK_PATH", cls.webhook_path),
            api_version=os.getenv("SHOPIFY_API_VERSION", cls.api_version),
            timeout=float(os.getenv("SESSION_STORE_TIMEOUT", str(cls.timeout))),
        )

    @property
    def callback_url(self) -> str:
        """Absolute webhook delivery URL declared to the platform."""
        path = self.webhook_path if self.webhook_path.startswith("/") else f"/{self.webhook_path}"
        return f"{self.app_url.strip().rstrip('/')}{path}"
