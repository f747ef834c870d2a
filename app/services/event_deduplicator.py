"""
Advisory guard against redelivered platform events.

The fingerprint store is process-local and has a bounded lifetime. An event
seen again after the horizon is treated as new; durable idempotency comes from
the unique indexes on queries and reactions, not from this component.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from app.config import get_settings
from app.schemas.events import Fingerprint


@dataclass(frozen=True)
class DeduplicatorStats:
    size: int
    hits: int
    misses: int
    evictions: int
    ttl_seconds: float
    max_entries: int


class EventDeduplicator(ABC):
    @abstractmethod
    def seen(self, fingerprint: Fingerprint) -> bool:
        """Return True if the fingerprint was already recorded; record it otherwise."""
        ...

    def forget(self, fingerprint: Fingerprint) -> None:
        """Drop a fingerprint so a failed event can be redelivered."""
        return None


class InMemoryEventDeduplicator(EventDeduplicator):
    """
    Bounded TTL cache with coarse-grained locking.

    Entries expire ``ttl_seconds`` after being recorded. When ``max_entries`` is
    reached the oldest entry is evicted first, which can only shorten the
    horizon, never extend it.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()
        self.ttl_seconds = float(ttl_seconds or settings.dedup_ttl_seconds)
        self.max_entries = int(max_entries or settings.dedup_max_entries)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[Fingerprint, float]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def seen(self, fingerprint: Fingerprint) -> bool:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            expires_at = self._entries.get(fingerprint)
            if expires_at is not None:
                self._hits += 1
                return True
            self._misses += 1
            self._entries[fingerprint] = now + self.ttl_seconds
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1
            return False

    def forget(self, fingerprint: Fingerprint) -> None:
        """Drop a fingerprint so a failed event can be redelivered."""
        with self._lock:
            self._entries.pop(fingerprint, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def describe(self) -> DeduplicatorStats:
        with self._lock:
            return DeduplicatorStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                ttl_seconds=self.ttl_seconds,
                max_entries=self.max_entries,
            )

    def _purge_expired(self, now: float) -> None:
        # Insertion order == expiry order because the TTL is fixed
        while self._entries:
            fingerprint, expires_at = next(iter(self._entries.items()))
            if expires_at > now:
                break
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default: Optional[InMemoryEventDeduplicator] = None
_default_lock = threading.Lock()


def get_event_deduplicator() -> InMemoryEventDeduplicator:
    """Process-wide deduplicator used by the ingestion path."""
    global _default
    with _default_lock:
        if _default is None:
            _default = InMemoryEventDeduplicator()
        return _default
