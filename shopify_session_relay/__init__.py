"""Public API exports."""
from .bootstrap import BootstrapReport, SessionBootstrap
from .config import Settings
from .dispatch import DispatchResult, WebhookDispatcher
from .errors import AdminApiError, PersistenceError, TransportError
from .installations import AppInstallations
from .registry import WebhookHandlerEntry, WebhookRegistry
from .session import Session
from .storage import BackendSessionStorage

__all__ = [
    "AdminApiError",
    "AppInstallations",
    "BackendSessionStorage",
    "BootstrapReport",
    "DispatchResult",
    "PersistenceError",
    "Session",
    "SessionBootstrap",
    "Settings",
    "TransportError",
    "WebhookDispatcher",
    "WebhookHandlerEntry",
    "WebhookRegistry",
]
