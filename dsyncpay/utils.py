"""
Utility functions for dsyncpay.

This module contains reusable helpers for transaction id generation, money
arithmetic and formatting, and safe access into provider responses.
"""

import logging
import secrets
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

from .logging_config import redact

logger = logging.getLogger(__name__)

TRANSACTION_ID_LENGTH = 17

_CENT = Decimal("0.01")


def generate_transaction_id(length: int = TRANSACTION_ID_LENGTH) -> str:
    """Return a random fixed-length numeric string."""
    if length < 1:
        raise ValueError("length must be at least 1")
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def to_decimal(value: Union[int, float, str, Decimal]) -> Decimal:
    """Convert a price-like value to Decimal without binary float artifacts."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def compute_total(price: Union[int, float, str, Decimal], quantity: int = 1) -> float:
    """Return price × quantity rounded half-up to two decimal places."""
    total = (to_decimal(price) * quantity).quantize(_CENT, rounding=ROUND_HALF_UP)
    return float(total)


def format_amount(amount: Union[int, float, str, Decimal]) -> str:
    """Format an amount the way provider APIs expect it ("39.98")."""
    return str(to_decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP))


def parse_amount(value: Any) -> Optional[float]:
    """Parse a provider amount string, returning None when absent or malformed."""
    if value is None:
        return None
    try:
        return float(to_decimal(value))
    except ValueError:
        logger.warning("Unparseable amount in provider response: %r", value)
        return None


def parse_datetime(datetime_str: Any) -> Optional[datetime]:
    """Parse an ISO datetime string (with optional Z suffix), or None if invalid."""
    if not isinstance(datetime_str, str) or not datetime_str:
        return None
    try:
        dt = datetime.fromisoformat(datetime_str.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Invalid datetime format: %s", datetime_str)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def deep_get(data: Any, key_path: str, default: Any = None) -> Any:
    """Get a nested value using dot notation; integer parts index into lists."""
    for key in key_path.split("."):
        if isinstance(data, dict) and key in data:
            data = data[key]
        elif isinstance(data, list) and key.lstrip("-").isdigit() and -len(data) <= int(key) < len(data):
            data = data[int(key)]
        else:
            return default
    return data


def redact_message(msg: str) -> str:
    """Redact secrets from a message before it is logged or surfaced."""
    return redact(msg)
