"""Session object shared between the app and the session backend."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional


def parse_is_online(value: Any) -> bool:
    """Read the backend's ``isOnline`` flag; only true values count as online."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def offline_session_id(shop: str) -> str:
    """Return the id the platform SDK assigns to a shop's offline session."""
    return f"offline_{shop}"


def parse_expires(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by the backend.

    ``None`` and empty strings map to ``None``. A trailing ``Z`` is accepted
    and naive timestamps are taken to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Session:
    """An authenticated connection between the app and one shop.

    Offline sessions are shop-scoped and long-lived; online sessions belong
    to a single staff user, carry ``expires`` and ``online_access_info``.

    Attributes:
        id: Stable identifier chosen by the platform SDK.
        shop: Shop domain, e.g. ``'example.myshopify.com'``.
        is_online: Whether the session is user-scoped.
        state: OAuth handshake state, irrelevant once authorized.
        access_token: Secret bearer credential. Kept out of ``repr``.
        scope: Comma or space delimited granted access scopes.
        expires: Expiry instant for online sessions.
        online_access_info: Associated user payload for online sessions.
    """

    id: str
    shop: str
    is_online: bool = False
    state: str = ""
    access_token: Optional[str] = field(default=None, repr=False)
    scope: Optional[str] = None
    expires: Optional[datetime] = None
    online_access_info: Optional[dict[str, Any]] = None

    def __setattr__(self, name: str, value: Any) -> None:  # type: ignore[override]
        if name in ("id", "shop") and name in self.__dict__:
            raise AttributeError(f"Session.{name} cannot be changed once set")
        super().__setattr__(name, value)

    @property
    def scopes(self) -> frozenset[str]:
        if not self.scope:
            return frozenset()
        return frozenset(s for s in self.scope.replace(",", " ").split() if s)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires <= now

    def is_active(self, scopes: Iterable[str] = ()) -> bool:
        """True when the session holds a live token granting ``scopes``."""
        return (
            bool(self.access_token)
            and not self.is_expired()
            and set(scopes) <= self.scopes
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize in the backend's wire format, token included."""
        return {
            "id": self.id,
            "shop": self.shop,
            "state": self.state,
            "isOnline": self.is_online,
            "accessToken": self.access_token,
            "scope": self.scope,
            "expires": self.expires.isoformat() if self.expires else None,
            "onlineAccessInfo": self.online_access_info,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Session":
        """Rebuild a session from a backend record.

        Only the known session fields are copied; anything else the backend
        sends is ignored.

        Raises:
            ValueError: If the record is not a mapping or lacks ``id``/``shop``,
                or ``expires`` is not a valid timestamp.
        """
        if not isinstance(record, Mapping):
            raise ValueError(f"Session record must be an object, got {type(record).__name__}")
        for key in ("id", "shop"):
            if not record.get(key):
                raise ValueError(f"Session record missing '{key}'")
        return cls(
            id=str(record["id"]),
            shop=str(record["shop"]),
            is_online=parse_is_online(record.get("isOnline")),
            state=record.get("state") or "",
            access_token=record.get("accessToken"),
            scope=record.get("scope"),
            expires=parse_expires(record.get("expires")),
            online_access_info=record.get("onlineAccessInfo") or None,
        )
