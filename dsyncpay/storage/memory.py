"""
In-memory metadata store.

Entries live in a lock-guarded dict. Expiry is driven by a delay queue: every
put schedules one deferred deletion on a heap, and a single daemon thread
sleeps until the earliest deadline and removes whatever has come due.
"""

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import METADATA_TTL_SECONDS
from ..exceptions import StorageError, ValidationError
from .base import MetadataStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    value: Any
    deadline: float
    generation: int


class MemoryMetadataStore(MetadataStore):
    """
    In-memory metadata store with scheduled expiry.

    A scheduled deletion only removes the entry it was scheduled for: each put
    gets a fresh generation number, so an expiry that fires after the key was
    deleted and re-put leaves the newer value alone.

    Args:
        default_ttl: Lifetime in seconds for entries put without an explicit ttl
        clock: Monotonic time source, injectable for tests
        start_worker: Start the background expiry thread on first put. When
            False, expiry only happens through purge_expired().
    """

    # Rebuild the heap once stale schedule items outnumber live entries by this much
    COMPACTION_SLACK = 64

    def __init__(
        self,
        default_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        start_worker: bool = True,
    ):
        super().__init__("MemoryMetadataStore", default_ttl if default_ttl is not None else METADATA_TTL_SECONDS)
        self._entries: Dict[str, _Entry] = {}
        self._schedule: List[Tuple[float, int, str]] = []
        self._generations = itertools.count(1)
        self._lock = threading.RLock()
        self._wakeup = threading.Condition(self._lock)
        self._clock = clock
        self._start_worker = start_worker
        self._worker: Optional[threading.Thread] = None
        self._closed = False

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        key = self._validate_key(key)
        ttl = self.default_ttl if ttl is None else ttl
        if not isinstance(ttl, (int, float)) or isinstance(ttl, bool) or ttl <= 0:
            raise ValidationError("ttl must be a positive number of seconds", field="ttl", value=ttl)

        with self._lock:
            if self._closed:
                raise StorageError("Metadata store is closed", storage_type=self.name, operation="put", entity_id=key)
            generation = next(self._generations)
            deadline = self._clock() + ttl
            self._entries[key] = _Entry(value=value, deadline=deadline, generation=generation)
            heapq.heappush(self._schedule, (deadline, generation, key))
            self._maybe_compact()
            self._ensure_worker()
            self._wakeup.notify()
        logger.debug("Stored metadata for %s (ttl=%ss)", key, ttl)

    def get(self, key: str) -> Any:
        key = self._validate_key(key)
        with self._lock:
            entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def delete(self, key: str) -> None:
        key = self._validate_key(key)
        with self._lock:
            removed = self._entries.pop(key, None)
        if removed is not None:
            logger.debug("Deleted metadata for %s", key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._schedule.clear()

    def purge_expired(self) -> int:
        """Remove every entry whose deadline has passed. Returns the count removed."""
        with self._lock:
            return self._expire_due(self._clock())

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._wakeup.notify_all()
            worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=1.0)
        logger.info("Closed metadata store %s", self.name)

    def _expire_due(self, now: float) -> int:
        removed = 0
        while self._schedule and self._schedule[0][0] <= now:
            _, generation, key = heapq.heappop(self._schedule)
            entry = self._entries.get(key)
            if entry is not None and entry.generation == generation:
                del self._entries[key]
                removed += 1
                logger.debug("Expired metadata for %s", key)
        return removed

    def _maybe_compact(self) -> None:
        if len(self._schedule) <= 2 * len(self._entries) + self.COMPACTION_SLACK:
            return
        self._schedule = [(e.deadline, e.generation, k) for k, e in self._entries.items()]
        heapq.heapify(self._schedule)

    def _ensure_worker(self) -> None:
        if not self._start_worker or (self._worker is not None and self._worker.is_alive()):
            return
        self._worker = threading.Thread(target=self._run, name="dsyncpay-metadata-expiry", daemon=True)
        self._worker.start()

    def _run(self) -> None:
        with self._lock:
            while not self._closed:
                self._expire_due(self._clock())
                if not self._schedule:
                    self._wakeup.wait()
                    continue
                timeout = self._schedule[0][0] - self._clock()
                if timeout > 0:
                    self._wakeup.wait(timeout)
        logger.debug("Metadata expiry worker stopped")
