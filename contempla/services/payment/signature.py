"""
Payment webhook signature check.

Providers sign the raw request body with HMAC-SHA256 and send the hex
digest, optionally prefixed with ``sha256=``.
"""

import hashlib
import hmac


SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``body``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    body: bytes, signature: str | None, secret: str
) -> bool:
    """
    Check a webhook signature in constant time.

    Args:
        body: Raw request body
        signature: Header value, with or without ``sha256=``
        secret: Shared webhook secret

    Returns:
        True if the signature matches
    """
    if not signature:
        return False

    signature = signature.strip()
    if signature.lower().startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX):]

    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected, signature.lower())
