"""Session storage delegated to a remote backend over HTTP."""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence
from urllib.parse import quote

from .errors import PersistenceError
from .session import Session
from .transport import RequestsTransport, Transport

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class BackendSessionStorage:
    """Session CRUD against the backend's ``/sessions`` API.

    Every call is a single round trip bounded by ``timeout``: there is no
    retrying and no caching. A 404 on ``load`` or ``find_by_shop`` means
    "nothing stored"; any other failure raises :class:`PersistenceError`.

    Args:
        base_url: Backend base URL, e.g. ``'http://localhost:3000'``.
        transport: HTTP transport (defaults to :class:`RequestsTransport`).
        timeout: Per-request timeout in seconds (default: 5).

    Example:
        >>> storage = BackendSessionStorage("http://localhost:3000")
        >>> storage.load("offline_example.myshopify.com")
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[Transport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.transport = transport or RequestsTransport()
        self.timeout = timeout

    def _url(self, *parts: str) -> str:
        segments = "/".join(quote(p, safe="") for p in parts)
        return f"{self.base_url}/sessions/{segments}" if segments else f"{self.base_url}/sessions"

    def _send(self, method: str, url: str, json: Any = None) -> Any:
        headers = {"Content-Type": "application/json"} if json is not None else None
        try:
            resp = self.transport.request(
                method, url, headers=headers, json=json, timeout=self.timeout
            )
        except Exception as exc:
            raise PersistenceError(f"{method} {url} failed: {exc}") from exc
        status = getattr(resp, "status_code", None)
        if status is None:
            raise PersistenceError("Transport response missing status_code")
        return resp

    @staticmethod
    def _raise_for_status(resp: Any) -> None:
        if not 200 <= resp.status_code < 300:
            raise PersistenceError(getattr(resp, "text", "") or "", resp.status_code)

    @staticmethod
    def _body(resp: Any) -> Any:
        try:
            return resp.json()
        except Exception as exc:
            snippet = getattr(resp, "text", "")[:300]
            raise PersistenceError(f"Malformed response body: {snippet}", resp.status_code) from exc

    def store(self, session: Session) -> bool:
        """Create or replace ``session`` in the backend, token included.

        Raises:
            PersistenceError: On transport failure or a non-2xx response.
        """
        logger.info("storeSession id=%s shop=%s", session.id, session.shop)
        try:
            resp = self._send("POST", self._url(), json=session.to_payload())
            self._raise_for_status(resp)
        except PersistenceError:
            logger.error("storeSession failed id=%s shop=%s", session.id, session.shop)
            raise
        logger.debug("storeSession completed id=%s", session.id)
        return True

    def load(self, id: str) -> Optional[Session]:
        """Fetch a session by id, or ``None`` if the backend has none.

        Raises:
            PersistenceError: On transport failure, a non-2xx/404 response or
                a body that is not a session record.
        """
        logger.debug("loadSession id=%s", id)
        resp = self._send("GET", self._url(id))
        if resp.status_code == 404:
            logger.info("loadSession not found id=%s", id)
            return None
        self._raise_for_status(resp)
        data = self._body(resp)
        try:
            return Session.from_record(data)
        except ValueError as exc:
            raise PersistenceError(f"Malformed session record: {exc}", resp.status_code) from exc

    def delete(self, id: str) -> bool:
        """Remove one session. A missing session is reported by the backend.

        Raises:
            PersistenceError: On transport failure or any non-2xx response,
                404 included.
        """
        logger.info("deleteSession id=%s", id)
        resp = self._send("DELETE", self._url(id))
        self._raise_for_status(resp)
        return True

    def delete_many(self, ids: Sequence[str]) -> bool:
        """Remove several sessions in one call.

        Raises:
            PersistenceError: On transport failure or any non-2xx response.
        """
        ids = list(ids)
        logger.info("deleteSessions count=%d ids=%s", len(ids), ", ".join(ids))
        resp = self._send("DELETE", self._url(), json={"ids": ids})
        self._raise_for_status(resp)
        return True

    def find_by_shop(self, shop: str) -> list[Session]:
        """Return the shop's sessions in backend order; ``[]`` if none.

        Raises:
            PersistenceError: On transport failure, a non-2xx/404 response or
                a body that is not a list of session records.
        """
        logger.debug("findSessionsByShop shop=%s", shop)
        resp = self._send("GET", self._url("shop", shop))
        if resp.status_code == 404:
            logger.info("findSessionsByShop no sessions shop=%s", shop)
            return []
        self._raise_for_status(resp)
        data = self._body(resp)
        if not isinstance(data, list):
            raise PersistenceError("Expected a list of sessions", resp.status_code)
        try:
            sessions = [Session.from_record(raw) for raw in data]
        except ValueError as exc:
            raise PersistenceError(f"Malformed session record: {exc}", resp.status_code) from exc
        logger.info("findSessionsByShop found %d sessions shop=%s", len(sessions), shop)
        return sessions
