"""
Webhook signature authentication.

Coinbase Commerce signs each webhook body with HMAC-SHA256 keyed by the
shared webhook secret and sends the hex digest in X-CC-Webhook-Signature.
Signatures are computed over the exact bytes received, never over a
re-serialized document.
"""

import hashlib
import hmac
import logging
from typing import Optional, Union

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-CC-Webhook-Signature"


def _to_bytes(value: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return value.encode("utf-8")


def compute_signature(payload: Union[bytes, str], secret: str) -> str:
    """Return the lowercase hex HMAC-SHA256 of payload keyed by secret."""
    return hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256).hexdigest()


def verify_signature(
    payload: Union[bytes, str, None],
    signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """
    Check a webhook signature in constant time.

    Returns False (never raises) when any input is missing or malformed.
    """
    if payload is None or not signature or not secret:
        logger.warning("Webhook signature check skipped: payload, signature or secret missing")
        return False
    if not isinstance(signature, str) or not isinstance(secret, str):
        return False
    if not isinstance(payload, (bytes, bytearray, str)):
        return False

    try:
        expected = compute_signature(payload, secret)
    except UnicodeEncodeError:
        # lone surrogates cannot be encoded as utf-8
        logger.warning("Webhook signature check failed: payload or secret is not encodable")
        return False
    try:
        return hmac.compare_digest(expected, signature.strip().lower())
    except TypeError:
        # compare_digest rejects non-ASCII str input
        return False
