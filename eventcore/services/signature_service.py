"""
Webhook payload signing.

Receivers verify X-Webhook-Signature by recomputing HMAC-SHA256 over the
exact request body with their shared secret.
"""
import hmac
import hashlib
import json

from eventcore.exceptions import SignatureError


def canonical_json(payload: dict) -> bytes:
    """Serialize payload to the byte form that is signed and sent."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str
    ).encode("utf-8")


def sign(secret: str, body: bytes) -> str:
    """Generate hex HMAC-SHA256 signature for a webhook body."""
    if not secret:
        raise SignatureError("Subscription secret is empty")
    return hmac.new(
        secret.encode(),
        body,
        hashlib.sha256
    ).hexdigest()


def verify(secret: str, body: bytes, signature: str) -> bool:
    """Constant-time check of a received signature."""
    try:
        expected = sign(secret, body)
    except SignatureError:
        return False
    return hmac.compare_digest(expected, signature)
