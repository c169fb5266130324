"""Payload canonicalization and HMAC signatures shared with subscribers."""
from __future__ import annotations

import hmac
import json
import secrets
from hashlib import sha256
from typing import Any

SECRET_BYTES = 32


def generate_secret() -> str:
    """Return a fresh signing secret: 32 random bytes, hex-encoded."""
    return secrets.token_hex(SECRET_BYTES)


def canonical_body(envelope: dict[str, Any]) -> bytes:
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, sha256).hexdigest()


def verify_signature(body: bytes | str, signature: str, secret: str) -> bool:
    """Check a received signature against the raw request body.

    Intended for subscriber code: recompute the HMAC over the exact bytes that
    arrived and compare in constant time.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    expected = compute_signature(secret, body)
    received = signature.strip().lower().encode("utf-8")
    return hmac.compare_digest(expected.encode("ascii"), received)
