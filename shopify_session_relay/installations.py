"""App installation bookkeeping on top of session storage."""
from __future__ import annotations

import logging

from .session import offline_session_id
from .storage import BackendSessionStorage

logger = logging.getLogger(__name__)


class AppInstallations:
    """Tracks which shops have the app installed.

    An installation is the set of sessions stored for a shop. The offline
    session is created when the shop first authorizes the app, so removing
    the shop's sessions is what uninstalling means to the backend.
    """

    def __init__(self, storage: BackendSessionStorage) -> None:
        self.storage = storage

    def includes(self, shop: str) -> bool:
        session = self.storage.load(offline_session_id(shop))
        return session is not None and bool(session.access_token)

    def delete(self, shop: str) -> bool:
        """Delete every session stored for ``shop``.

        A shop with nothing stored is not an error and makes no delete call.

        Raises:
            PersistenceError: If the backend lookup or bulk delete fails.
        """
        sessions = self.storage.find_by_shop(shop)
        if not sessions:
            logger.info("No installation recorded for shop=%s", shop)
            return True
        self.storage.delete_many([s.id for s in sessions])
        logger.info("Removed installation for shop=%s (%d sessions)", shop, len(sessions))
        return True
