"""HMAC-SHA256 signing of webhook request bodies."""
from __future__ import annotations

import hmac
import json
import secrets
from hashlib import sha256
from typing import Any, Callable

SECRET_BYTES = 32


def serialize_envelope(envelope: dict[str, Any]) -> bytes:
    """Canonical wire form; the signature covers exactly these bytes."""
    return json.dumps(
        envelope, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


def sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, sha256).hexdigest()


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    """Constant-time comparison, for receivers and tests."""
    return hmac.compare_digest(sign(body, secret), signature)


def generate_secret(random_bytes: Callable[[int], bytes] = secrets.token_bytes) -> str:
    """Hex encoded signing secret; ``random_bytes`` is injectable for tests."""
    return random_bytes(SECRET_BYTES).hex()
