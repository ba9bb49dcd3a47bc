"""
Permission cache manager.

Owns the store and the loader. ``get_or_load`` returns a fresh snapshot from
the store when present and otherwise rebuilds it, with at most one rebuild in
flight per user. Readers of other users are never blocked by a rebuild.
"""

from __future__ import annotations

import logging
import threading
import weakref
from typing import Iterable

from .context import PermissionCache, PermissionCheckContext, PermissionCheckResult
from .loader import PermissionCacheLoader
from .resolver import can_all, can_any, check_permission
from .store import CacheStoreError, InMemoryPermissionCacheStore, PermissionCacheStore

logger = logging.getLogger(__name__)


class PermissionCacheManager:
    def __init__(self, loader: PermissionCacheLoader, store: PermissionCacheStore | None = None) -> None:
        self._loader = loader
        self._store = store if store is not None else InMemoryPermissionCacheStore()
        self._locks_guard = threading.Lock()
        self._user_locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()

    @property
    def store(self) -> PermissionCacheStore:
        return self._store

    @property
    def loader(self) -> PermissionCacheLoader:
        return self._loader

    def _user_lock(self, user_id: str) -> threading.Lock:
        # entries disappear once no caller holds the lock
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._user_locks[user_id] = lock
            return lock

    def _cached(self, user_id: str) -> PermissionCache | None:
        try:
            entry = self._store.get(user_id)
        except CacheStoreError:
            logger.warning("permission cache store read failed, rebuilding user=%s", user_id, exc_info=True)
            return None
        if entry is not None and not isinstance(entry, PermissionCache):
            logger.warning("permission cache store returned %s, rebuilding user=%s", type(entry).__name__, user_id)
            return None
        return entry

    def get_or_load(self, user_id: str) -> PermissionCache:
        """Return the user's snapshot, loading it at most once across concurrent callers."""
        cached = self._cached(user_id)
        if cached is not None:
            return cached

        with self._user_lock(user_id):
            # another caller may have finished the rebuild while we waited
            cached = self._cached(user_id)
            if cached is not None:
                return cached

            try:
                generation: int | None = self._store.generation(user_id)
            except CacheStoreError:
                logger.warning("permission cache store unavailable, loading without storing user=%s", user_id, exc_info=True)
                generation = None

            cache = self._loader.load(user_id)
            if generation is None:
                return cache

            try:
                stored = self._store.set_if_generation(user_id, cache, generation)
            except CacheStoreError:
                logger.warning("permission cache store write failed user=%s", user_id, exc_info=True)
                stored = False
            if not stored:
                logger.debug("permission cache not stored user=%s", user_id)
            return cache

    def invalidate(self, user_id: str) -> None:
        """Call after any write to the user's roles, tags or org relations."""
        self._store.invalidate(user_id)
        logger.info("permission cache invalidated user=%s", user_id)

    def invalidate_all(self) -> None:
        """Call after role-permission, tag-rule or sensitivity changes."""
        self._store.clear()
        logger.info("permission cache cleared")

    # ---- Convenience checks ----

    def check(
        self,
        user_id: str,
        permission: str,
        context: PermissionCheckContext | None = None,
    ) -> PermissionCheckResult:
        return check_permission(self.get_or_load(user_id), permission, context)

    def can(self, user_id: str, permission: str, context: PermissionCheckContext | None = None) -> bool:
        return self.check(user_id, permission, context).allowed

    def can_all(self, user_id: str, permissions: Iterable[str], context: PermissionCheckContext | None = None) -> bool:
        return can_all(self.get_or_load(user_id), permissions, context)

    def can_any(self, user_id: str, permissions: Iterable[str], context: PermissionCheckContext | None = None) -> bool:
        return can_any(self.get_or_load(user_id), permissions, context)
