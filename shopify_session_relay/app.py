"""FastAPI application exposing the webhook and bootstrap routes."""
from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .bootstrap import SessionBootstrap, SessionResolver
from .config import Settings
from .dispatch import WebhookDispatcher
from .installations import AppInstallations
from .registry import HandlerSource, WebhookRegistry
from .storage import BackendSessionStorage
from .transport import RequestsTransport, Transport


def _bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def create_app(
    settings: Settings,
    resolve_session: SessionResolver,
    *,
    handlers: HandlerSource = (),
    transport: Optional[Transport] = None,
    storage: Optional[BackendSessionStorage] = None,
    registry: Optional[WebhookRegistry] = None,
) -> FastAPI:
    """Build the app with one shared registry for dispatch and bootstrap.

    Handlers are not installed here; the registry populates itself on the
    first webhook delivery or bootstrap.
    """
    transport = transport or RequestsTransport()
    storage = storage or BackendSessionStorage(
        settings.backend_base_url, transport=transport, timeout=settings.timeout
    )
    if registry is None:
        registry = WebhookRegistry(
            AppInstallations(storage),
            settings.callback_url,
            handlers,
            api_version=settings.api_version,
            transport=transport,
        )
    dispatcher = WebhookDispatcher(registry, settings.api_secret)
    bootstrap = SessionBootstrap(storage, registry, resolve_session)

    app = FastAPI(title="Shopify session relay")
    app.state.registry = registry
    app.state.storage = storage

    @app.post(settings.webhook_path)
    async def receive_webhook(request: Request):
        """Receive platform webhooks (signature-verified)."""
        body = await request.body()
        result = await run_in_threadpool(dispatcher.process, dict(request.headers), body)
        if result.acknowledged:
            return JSONResponse({"status": "received"}, status_code=result.status_code)
        return JSONResponse({"status": result.outcome}, status_code=result.status_code)

    @app.post(settings.bootstrap_path)
    async def bootstrap_session(request: Request):
        """Persist the caller's session and subscribe webhooks."""
        token = _bearer_token(request)
        if not token:
            return JSONResponse({"status": "unauthorized"}, status_code=401)
        report = await run_in_threadpool(bootstrap.run, lambda: token)
        return JSONResponse(report.as_dict(), status_code=200)

    return app
