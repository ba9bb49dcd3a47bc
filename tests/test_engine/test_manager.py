from __future__ import annotations

import gc
import threading
import time

from authz_engine.engine.context import PermissionCache
from authz_engine.engine.manager import PermissionCacheManager
from authz_engine.engine.store import CacheStoreError, InMemoryPermissionCacheStore


class CountingLoader:
    """Stands in for PermissionCacheLoader; counts loads and can block inside one."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls: list[str] = []
        self.started = threading.Event()
        self.release = threading.Event()
        self.release.set()
        self._lock = threading.Lock()

    def load(self, user_id: str) -> PermissionCache:
        with self._lock:
            self.calls.append(user_id)
            version = len(self.calls)
        self.started.set()
        self.release.wait(timeout=5)
        if self.delay:
            time.sleep(self.delay)
        now = time.time()
        return PermissionCache(
            user_id=user_id,
            loaded_at=now,
            expires_at=now + 300,
            permissions=frozenset({f"report{version}.view"}),
        )


def test_cached_snapshot_is_reused():
    loader = CountingLoader()
    manager = PermissionCacheManager(loader)
    first = manager.get_or_load("u1")
    assert manager.get_or_load("u1") is first
    assert loader.calls == ["u1"]


def test_single_flight_under_concurrency():
    loader = CountingLoader(delay=0.05)
    manager = PermissionCacheManager(loader)
    results: list[PermissionCache] = []
    results_lock = threading.Lock()

    def worker() -> None:
        cache = manager.get_or_load("u1")
        with results_lock:
            results.append(cache)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert loader.calls == ["u1"]
    assert len(results) == 16
    assert all(r is results[0] for r in results)


def test_other_users_not_blocked_by_a_rebuild():
    loader = CountingLoader()
    manager = PermissionCacheManager(loader)
    manager.get_or_load("fast")

    loader.release.clear()
    loader.started.clear()
    slow = threading.Thread(target=manager.get_or_load, args=("slow",))
    slow.start()
    assert loader.started.wait(timeout=5)

    # "fast" is served from the store while "slow" is still loading
    assert manager.get_or_load("fast").user_id == "fast"

    loader.release.set()
    slow.join(timeout=5)
    assert loader.calls == ["fast", "slow"]


def test_invalidate_forces_reload():
    loader = CountingLoader()
    manager = PermissionCacheManager(loader)
    first = manager.get_or_load("u1")
    manager.invalidate("u1")
    second = manager.get_or_load("u1")
    assert second is not first
    assert loader.calls == ["u1", "u1"]


def test_invalidation_during_load_is_not_overwritten():
    loader = CountingLoader()
    store = InMemoryPermissionCacheStore()
    manager = PermissionCacheManager(loader, store)

    loader.release.clear()
    result: list[PermissionCache] = []
    t = threading.Thread(target=lambda: result.append(manager.get_or_load("u1")))
    t.start()
    assert loader.started.wait(timeout=5)

    manager.invalidate("u1")
    loader.release.set()
    t.join(timeout=5)

    # the caller still gets its snapshot, but it was never stored
    assert result and result[0].user_id == "u1"
    assert store.get("u1") is None


def test_invalidate_all():
    loader = CountingLoader()
    manager = PermissionCacheManager(loader)
    manager.get_or_load("a")
    manager.get_or_load("b")
    manager.invalidate_all()
    manager.get_or_load("a")
    assert loader.calls == ["a", "b", "a"]


class BrokenStore(InMemoryPermissionCacheStore):
    def get(self, user_id):
        raise CacheStoreError("backend unavailable")


class DownStore(InMemoryPermissionCacheStore):
    def get(self, user_id):
        raise CacheStoreError("backend unavailable")

    def generation(self, user_id):
        raise CacheStoreError("backend unavailable")

    def set_if_generation(self, user_id, cache, generation):
        raise CacheStoreError("backend unavailable")


class CorruptStore(InMemoryPermissionCacheStore):
    def get(self, user_id):
        return {"user_id": user_id}


def test_store_errors_are_misses():
    loader = CountingLoader()
    manager = PermissionCacheManager(loader, BrokenStore())
    assert manager.get_or_load("u1").user_id == "u1"
    assert manager.get_or_load("u1").user_id == "u1"
    assert loader.calls == ["u1", "u1"]


def test_unavailable_store_still_returns_fresh_snapshots():
    loader = CountingLoader()
    manager = PermissionCacheManager(loader, DownStore())
    assert manager.get_or_load("u1").user_id == "u1"
    assert manager.can("u1", "report2.view")
    assert loader.calls == ["u1", "u1"]


def test_corrupt_entries_are_misses():
    loader = CountingLoader()
    manager = PermissionCacheManager(loader, CorruptStore())
    assert isinstance(manager.get_or_load("u1"), PermissionCache)


def test_convenience_checks():
    loader = CountingLoader()
    manager = PermissionCacheManager(loader)
    assert manager.can("u1", "report1.view")
    assert not manager.can("u1", "users.edit")
    assert manager.can_any("u1", ["users.edit", "report1.view"])
    assert not manager.can_all("u1", ["users.edit", "report1.view"])
    assert manager.check("u1", "users.edit").reason == "No matching permission found"


def test_per_user_state_does_not_grow_with_user_count():
    store = InMemoryPermissionCacheStore()
    manager = PermissionCacheManager(CountingLoader(), store)
    for n in range(1000):
        manager.get_or_load(f"u{n}")
        manager.invalidate(f"u{n}")
    gc.collect()
    assert len(manager._user_locks) == 0
    assert len(store) == 0

    manager.invalidate_all()
    assert store.tracked_generations() == 0
