"""Credential hashing and payload signing helpers."""

from __future__ import annotations

import hashlib
import hmac
import secrets

API_KEY_PREFIX = "bq_live_"
API_KEY_DISPLAY_LENGTH = 15
SIGNATURE_SCHEME = "sha256"


def generate_api_key() -> str:
    """Create a new raw merchant API key. Only its hash is ever stored."""

    return f"{API_KEY_PREFIX}{secrets.token_hex(24)}"


def hash_api_key(raw_key: str) -> str:
    """Return the sha256 hex digest used to look up a merchant API key."""

    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def api_key_display_prefix(raw_key: str) -> str:
    return raw_key[:API_KEY_DISPLAY_LENGTH]


def tokens_match(expected: str, provided: str | None) -> bool:
    """Constant-time comparison for shared secrets passed in requests."""

    if provided is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def sign_payload(secret: str, body: bytes) -> str:
    """Return the signature header value for an outbound webhook body."""

    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_SCHEME}={digest}"


def verify_payload_signature(secret: str, body: bytes, header_value: str | None) -> bool:
    """Check a signature header produced by :func:`sign_payload`."""

    if not header_value:
        return False
    return hmac.compare_digest(sign_payload(secret, body), header_value)
