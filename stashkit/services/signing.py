"""HMAC-signed download URLs for the local provider."""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
import uuid
from urllib.parse import quote


def compute_signature(file_id: uuid.UUID | str, expires: int, signing_key: str) -> str:
    message = f"{file_id}:{expires}".encode("utf-8")
    digest = hmac.new(signing_key.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def build_signed_url(
    base_url: str,
    file_id: uuid.UUID,
    expires: int,
    signing_key: str,
) -> str:
    signature = compute_signature(file_id, expires, signing_key)
    return f"{base_url.rstrip('/')}/{file_id}?expires={expires}&signature={quote(signature, safe='')}"


def verify_signature(
    file_id: uuid.UUID | str,
    expires: int | str | None,
    signature: str | None,
    signing_key: str | None,
    now: float | None = None,
) -> bool:
    """Check expiry first, then compare signatures in constant time."""
    if not signing_key or not signature or expires is None:
        return False
    try:
        expires_at = int(expires)
    except (TypeError, ValueError):
        return False
    if expires_at < int(now if now is not None else time.time()):
        return False
    expected = compute_signature(file_id, expires_at, signing_key)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))
