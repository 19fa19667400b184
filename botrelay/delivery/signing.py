"""HMAC-SHA256 signatures for outbound webhook bodies."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

SIGNATURE_HEADER = "X-Webhook-Signature"
_PREFIX = "sha256="


def encode_body(payload: dict[str, Any]) -> bytes:
    """Deterministic JSON encoding; the signature covers exactly these bytes."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()


def sign_body(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Constant-time check of a ``sha256=<hex>`` header value."""
    if not signature.startswith(_PREFIX):
        return False
    return hmac.compare_digest(signature, sign_body(secret, body))
