"""HMAC signature helpers for provider webhooks.

FedaPay signs the raw request body with HMAC-SHA256 and sends the hex digest
in the X-FedaPay-Signature header.
"""

import hashlib
import hmac


def compute_signature(payload: bytes, secret: str) -> str:
    """Compute the hex HMAC-SHA256 of a raw body.

    Args:
        payload: Raw request body
        secret: Shared webhook secret

    Returns:
        Lower-case hex digest
    """
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Check a webhook signature in constant time.

    Args:
        payload: Raw request body, exactly as received
        signature: Value of the signature header
        secret: Shared webhook secret

    Returns:
        True if the signature matches the body
    """
    if not signature:
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(
        expected.encode("ascii"), signature.strip().lower().encode("utf-8")
    )


def compute_payload_hash(payload: bytes) -> str:
    """SHA-256 of a raw body, for log correlation without logging the body."""
    return hashlib.sha256(payload).hexdigest()
