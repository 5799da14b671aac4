"""
HMAC-SHA256 helpers for values that round-trip through a third party, such as
the OAuth `state` parameter.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any

from localedge.config import settings

SECRET_MIN_LENGTH = 16
STATE_TTL_SECONDS = 600


class SigningError(RuntimeError):
    """Raised when a signed value is missing, tampered with or expired."""


def _secret_bytes() -> bytes:
    secret = settings.STATE_SIGNING_SECRET
    if not secret:
        raise SigningError("STATE_SIGNING_SECRET is not configured")
    if len(secret) < SECRET_MIN_LENGTH:
        raise SigningError("STATE_SIGNING_SECRET is too short; please rotate it")
    return secret.encode("utf-8")


def compute_hmac(value: str, *, namespace: str) -> str:
    """Namespaced hex HMAC-SHA256 digest."""
    scoped = f"{namespace}:{value or ''}"
    return hmac.new(_secret_bytes(), scoped.encode("utf-8"), hashlib.sha256).hexdigest()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def sign_state(payload: dict[str, Any], *, namespace: str, ttl_s: int = STATE_TTL_SECONDS) -> str:
    """Encode `payload` with an expiry and a signature: `<body>.<digest>`."""
    body = dict(payload, exp=int(time.time()) + ttl_s)
    encoded = _b64encode(json.dumps(body, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{encoded}.{compute_hmac(encoded, namespace=namespace)}"


def verify_state(state: str, *, namespace: str) -> dict[str, Any]:
    """Return the payload of a state produced by `sign_state`."""
    encoded, _, digest = (state or "").partition(".")
    if not encoded or not digest:
        raise SigningError("Malformed state")

    expected = compute_hmac(encoded, namespace=namespace)
    if not hmac.compare_digest(expected, digest):
        raise SigningError("State signature mismatch")

    try:
        payload = json.loads(_b64decode(encoded))
    except ValueError as e:
        raise SigningError("State payload is not valid JSON") from e

    if int(payload.pop("exp", 0)) < time.time():
        raise SigningError("State expired")
    return payload
