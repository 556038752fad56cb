"""
Access-token caching for providers that use a client-credentials exchange.

A CredentialCache holds at most one bearer token. The token is reused until
its validity window closes, then the next caller runs the exchange again.
Concurrent callers during a refresh wait on the same lock and share the
result of a single exchange.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config import TOKEN_VALIDITY_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and the monotonic time at which it stops being used."""

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class CredentialCache:
    """
    Single-token cache in front of an exchange callable.

    Args:
        exchange: Callable returning a fresh token string. Any exception it
            raises propagates to the caller of get_access_token().
        validity: Seconds a fetched token is reused. Kept shorter than the
            provider's own token lifetime so a cached token never expires
            mid-request.
        clock: Monotonic time source
    """

    def __init__(
        self,
        exchange: Callable[[], str],
        validity: float = TOKEN_VALIDITY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not callable(exchange):
            raise TypeError("exchange must be callable")
        if not isinstance(validity, (int, float)) or validity <= 0:
            raise ValueError("validity must be a positive number of seconds")
        self._exchange = exchange
        self.validity = validity
        self.clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = threading.Lock()

    @property
    def token(self) -> Optional[AccessToken]:
        return self._token

    def get_access_token(self) -> str:
        token = self._token
        if token is not None and token.is_valid(self.clock()):
            return token.value

        with self._lock:
            # Another thread may have refreshed while this one waited
            token = self._token
            if token is not None and token.is_valid(self.clock()):
                return token.value

            logger.debug("Access token missing or expired, running exchange")
            value = self._exchange()
            self._token = AccessToken(value=value, expires_at=self.clock() + self.validity)
            logger.info("Obtained new access token (valid for %ss)", self.validity)
            return value

    def invalidate(self) -> None:
        """Drop the cached token so the next call performs an exchange."""
        with self._lock:
            self._token = None
