"""
Per-user permission cache store.

The store is the only shared mutable state in the engine. Its lock is held
only for dictionary operations, never while a cache is being loaded, so a
read for one user never waits on another user's rebuild.

Each user ID also carries a generation counter. ``invalidate`` bumps it, and
``set_if_generation`` refuses to store a snapshot whose load began before the
bump.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Protocol

from .context import PermissionCache

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


class CacheStoreError(Exception):
    """Raised by a store backend that cannot serve a request. Callers treat it as a miss."""


class PermissionCacheStore(Protocol):
    def get(self, user_id: str) -> PermissionCache | None: ...

    def generation(self, user_id: str) -> int: ...

    def set_if_generation(self, user_id: str, cache: PermissionCache, generation: int) -> bool: ...

    def invalidate(self, user_id: str) -> None: ...

    def clear(self) -> None: ...


class InMemoryPermissionCacheStore:
    """
    Mutex-guarded dict of user ID to ``PermissionCache`` with TTL expiry on read.

    Generations come from one counter that only increases. ``clear`` records
    the counter for every user at once and forgets the per-user marks, and the
    per-user marks are folded the same way once more than ``max_tracked``
    users have been invalidated since the last clear.
    """

    def __init__(self, clock: Callable[[], float] = time.time, max_tracked: int = 10_000) -> None:
        self._clock = clock
        self._max_tracked = max_tracked
        self._lock = threading.Lock()
        self._entries: dict[str, PermissionCache] = {}
        self._generations: dict[str, int] = {}
        self._counter = 0
        self._cleared_at = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, user_id: str) -> PermissionCache | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[user_id]
                return None
            return entry

    def _generation(self, user_id: str) -> int:
        return self._generations.get(user_id, self._cleared_at)

    def generation(self, user_id: str) -> int:
        with self._lock:
            return self._generation(user_id)

    def set(self, user_id: str, cache: PermissionCache) -> None:
        with self._lock:
            self._entries[user_id] = cache

    def set_if_generation(self, user_id: str, cache: PermissionCache, generation: int) -> bool:
        with self._lock:
            if self._generation(user_id) != generation:
                return False
            self._entries[user_id] = cache
            return True

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)
            self._counter += 1
            if len(self._generations) >= self._max_tracked and user_id not in self._generations:
                self._cleared_at = self._counter
                self._generations.clear()
            else:
                self._generations[user_id] = self._counter

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._counter += 1
            self._cleared_at = self._counter
            self._generations.clear()

    def tracked_generations(self) -> int:
        with self._lock:
            return len(self._generations)

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [uid for uid, entry in self._entries.items() if entry.is_expired(now)]
            for uid in expired:
                del self._entries[uid]
        if expired:
            logger.debug("purged expired permission caches count=%s", len(expired))
        return len(expired)
