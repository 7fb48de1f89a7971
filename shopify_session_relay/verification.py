"""Webhook signature verification."""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

HMAC_HEADER = "x-shopify-hmac-sha256"


def compute_hmac(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 of ``body``, as sent in ``X-Shopify-Hmac-Sha256``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_webhook(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check a webhook signature against the raw request body.

    Fails closed when no secret is configured or no signature was sent.
    """
    if not secret:
        logger.warning("Shopify API secret not set, rejecting webhook")
        return False
    if not signature:
        return False
    expected = compute_hmac(secret, body).encode("ascii")
    return hmac.compare_digest(expected, signature.strip().encode("utf-8", "surrogateescape"))
