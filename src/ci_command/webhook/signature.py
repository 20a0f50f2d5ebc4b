"""GitHub webhook signature verification.

GitHub signs every delivery with HMAC-SHA256 over the raw request body,
keyed by the webhook secret, and sends the result in the
`X-Hub-Signature-256` header as `sha256=<hex digest>`.
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Compute the `sha256=<hex>` signature GitHub sends for a body."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    raw_body: bytes,
    header_signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """Check a webhook body against its signature header.

    Fails closed: without a secret nothing is accepted. Both signatures
    are hashed to fixed-length digests before the constant-time
    comparison, so a length mismatch takes the same path as any other
    mismatch.

    Args:
        raw_body: The request body exactly as received.
        header_signature: Value of the X-Hub-Signature-256 header.
        secret: The shared webhook secret.

    Returns:
        True only if the signature matches.
    """
    if not secret:
        logger.error("Webhook secret is not configured; rejecting delivery")
        return False
    if not header_signature:
        return False

    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(
        hashlib.sha256(expected.encode("utf-8")).digest(),
        hashlib.sha256(header_signature.encode("utf-8")).digest(),
    )
