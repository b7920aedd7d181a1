"""
Response cache for generative calls.

Entries are keyed on a task's canonical key and expire a fixed time after
insertion. Concurrent misses on the same key are collapsed: the first caller
computes, later callers block on the same future and share its outcome.
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

from ..schemas.tasks import GenerationTask

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class ResponseCache:
    """
    TTL cache with single-flight computation.

    Failed computations are never stored; every waiter on that flight receives
    the same exception and the next request computes afresh.

    Attributes:
        ttl_seconds: Lifetime of an entry after insertion.

    Example:
        >>> cache = ResponseCache(ttl_seconds=3600)
        >>> text = cache.get_or_compute(task, lambda: client.call(prompt))
        >>> text = cache.get_or_compute(task, lambda: client.call(prompt))  # hit
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, Future] = {}
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, task: GenerationTask, compute: Callable[[], T]) -> T:
        key = task.cache_key

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.expires_at > self._clock():
                    self.hits += 1
                    logger.debug("Cache HIT: %s %s", task.kind.value, key[:12])
                    return entry.value
                del self._entries[key]

            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future
                self.misses += 1

        if not owner:
            logger.debug("Cache WAIT: %s %s", task.kind.value, key[:12])
            return future.result()

        logger.debug("Cache MISS: %s %s", task.kind.value, key[:12])
        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(exc)
            raise

        with self._lock:
            self._entries[key] = CacheEntry(value, self._clock() + self.ttl_seconds)
            self._inflight.pop(key, None)
        future.set_result(value)
        return value

    def get(self, task: GenerationTask) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(task.cache_key)
            if entry is None or entry.expires_at <= self._clock():
                return None
            return entry.value

    def invalidate(self, task: GenerationTask) -> bool:
        with self._lock:
            return self._entries.pop(task.cache_key, None) is not None

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Cache PURGE: %d expired entries", len(stale))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
        logger.info("Response cache cleared")

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
