"""
Abstract base class for metadata stores.

Defines the interface the provider adapters use to park caller metadata
between the creation and the verification of a transaction.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class StoreStatus:
    """Represents the current status of a metadata store."""

    is_healthy: bool = True
    last_check: Optional[datetime] = None
    error_message: Optional[str] = None
    response_time_ms: Optional[float] = None
    entry_count: Optional[int] = None

    def __post_init__(self):
        if self.last_check is None:
            self.last_check = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert status to dictionary."""
        return {
            "is_healthy": self.is_healthy,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "error_message": self.error_message,
            "response_time_ms": self.response_time_ms,
            "entry_count": self.entry_count,
        }


class MetadataStore(ABC):
    """
    Abstract base class for metadata stores.

    Every entry carries a time-to-live fixed at insertion. An entry is gone
    after its TTL elapses or after an explicit delete, whichever comes first.
    Implementations must be safe for concurrent put/get/delete.
    """

    def __init__(self, name: str, default_ttl: float):
        """Initialize the metadata store."""
        if not isinstance(default_ttl, (int, float)) or default_ttl <= 0:
            raise ValueError("default_ttl must be a positive number of seconds")
        self.name = name
        self.default_ttl = default_ttl
        self.status = StoreStatus()
        logger.info("Initialized metadata store: %s (ttl=%ss)", self.name, default_ttl)

    @abstractmethod
    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store value under key and schedule its deletion after ttl seconds."""
        pass

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the value stored under key, or None when absent."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is a no-op."""
        pass

    @abstractmethod
    def __contains__(self, key: object) -> bool:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    def clear(self) -> None:
        """Remove every entry."""
        raise NotImplementedError

    def close(self) -> None:
        """Release background resources. The default store has none."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def check_health(self) -> StoreStatus:
        """Check the health status of the store."""
        start_time = time.time()
        try:
            count = len(self)
            self.status = StoreStatus(
                is_healthy=True,
                response_time_ms=(time.time() - start_time) * 1000,
                entry_count=count,
            )
        except Exception as e:
            logger.warning("Health check failed for store %s: %s (%s)", self.name, e, type(e).__name__)
            self.status = StoreStatus(
                is_healthy=False,
                error_message=f"Health check failed: {e}",
                response_time_ms=(time.time() - start_time) * 1000,
            )
        return self.status

    @staticmethod
    def _validate_key(key: Any) -> str:
        from ..exceptions import ValidationError

        if not key or not isinstance(key, str):
            raise ValidationError("Metadata key must be a non-empty string", field="key", value=key)
        return key
