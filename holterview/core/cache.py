from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, TypeVar

import logging
import threading
import time

LOG = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_S = 5 * 60.0


@dataclass
class CacheEntry(Generic[T]):
    data: T
    created: float
    ttl: float

    def is_live(self, now: float) -> bool:
        return (now - self.created) < self.ttl


@dataclass(frozen=True)
class CachePolicy:
    ttl_s: float = DEFAULT_TTL_S
    max_entries: int = 64


class SampleCache(Generic[T]):
    """Time-to-live cache owned by a loader (or explicitly shared between loaders)."""

    def __init__(
        self,
        policy: CachePolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy = policy or CachePolicy()
        self._clock = clock
        self._entries: OrderedDict[Hashable, CacheEntry[T]] = OrderedDict()
        self._lock = threading.RLock()
        self._hits: int = 0
        self._misses: int = 0

    def get(self, key: Hashable) -> T | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if not entry.is_live(now):
                del self._entries[key]
                self._misses += 1
                LOG.debug("Cache entry expired for %s", key)
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.data

    def put(self, key: Hashable, data: T, *, ttl: float | None = None) -> None:
        entry = CacheEntry(
            data=data,
            created=self._clock(),
            ttl=self.policy.ttl_s if ttl is None else float(ttl),
        )
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            self._evict_if_needed()

    def invalidate(self, key: Hashable | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if not entry.is_live(now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def configure(self, policy: CachePolicy) -> None:
        with self._lock:
            self.policy = policy
            self._evict_if_needed()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.is_live(now)

    @property
    def stats(self) -> tuple[int, int]:
        with self._lock:
            return self._hits, self._misses

    def _evict_if_needed(self) -> None:
        limit = max(1, int(self.policy.max_entries))
        while len(self._entries) > limit:
            self._entries.popitem(last=False)
