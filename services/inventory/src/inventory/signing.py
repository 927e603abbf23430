"""Signature verification for video host webhooks."""

from __future__ import annotations

import hmac
import secrets
import time
from typing import Optional, Tuple, Union

from .errors import SignatureError

BytesLike = Union[str, bytes]


def _as_bytes(value: BytesLike) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def parse_signature_header(header: str) -> Tuple[str, str]:
    """Split a ``t=<timestamp>,v1=<hex>`` header into its parts."""

    timestamp: Optional[str] = None
    signature: Optional[str] = None
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signature = value
    if not timestamp or not signature:
        raise SignatureError("Malformed signature header")
    return timestamp, signature


def sign_webhook_payload(raw_body: BytesLike, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a signature header for ``raw_body``. Used by tooling and tests."""

    ts = str(timestamp if timestamp is not None else int(time.time()))
    digest = hmac.new(
        secret.encode("utf-8"), f"{ts}.".encode("utf-8") + _as_bytes(raw_body), "sha256"
    ).hexdigest()
    return f"t={ts},v1={digest}"


def verify_webhook_signature(
    raw_body: BytesLike,
    header: str,
    secret: Optional[str],
    *,
    tolerance_seconds: Optional[int] = None,
    now: Optional[float] = None,
) -> bool:
    if not secret:
        return False
    try:
        timestamp, received = parse_signature_header(header)
    except SignatureError:
        return False

    if tolerance_seconds is not None:
        try:
            age = abs((now if now is not None else time.time()) - int(timestamp))
        except ValueError:
            return False
        if age > tolerance_seconds:
            return False

    expected = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.".encode("utf-8") + _as_bytes(raw_body), "sha256"
    ).hexdigest()
    return secrets.compare_digest(expected, received.lower())


__all__ = ["parse_signature_header", "sign_webhook_payload", "verify_webhook_signature"]
