import threading
from datetime import timedelta

from licensekeeper.client.application.offline_cache import OfflineCacheManager
from licensekeeper.client.application.response_cache import (
    ACTIVATIONS,
    VALIDATIONS,
    ResponseCache,
    cache_key,
)
from licensekeeper.client.infrastructure.state_store import (
    LicenseStorage,
    MemoryStateStore,
)
from licensekeeper.common.models import CachedVerdict

from conftest import VALID_KEY, FakeClock


def licensed_cache(clock: FakeClock, **kwargs) -> OfflineCacheManager:
    cache = OfflineCacheManager(LicenseStorage(MemoryStateStore()), clock=clock, **kwargs)
    cache.cache_valid_verdict(CachedVerdict(is_licensed=True, cached_at=clock()))
    return cache


def test_default_state_is_not_licensed(clock: FakeClock) -> None:
    cache = OfflineCacheManager(LicenseStorage(MemoryStateStore()), clock=clock)
    assert cache.enabled
    assert not cache.cached_verdict.is_licensed
    assert not cache.is_offline_acceptable()
    assert not cache.is_offline_acceptable(clock() + timedelta(minutes=1))
    assert not cache.is_offline_acceptable(clock() + timedelta(hours=71))
    assert cache.remaining_grace_window() == timedelta(0)


def test_grace_window_boundary(clock: FakeClock) -> None:
    cache = licensed_cache(clock)
    start = clock()
    assert cache.is_offline_acceptable(start + timedelta(hours=71, minutes=59))
    assert not cache.is_offline_acceptable(start + timedelta(hours=72))
    assert not cache.is_offline_acceptable(start + timedelta(hours=72, minutes=1))


def test_clock_moving_backwards_fails_closed(clock: FakeClock) -> None:
    cache = licensed_cache(clock)
    assert not cache.is_offline_acceptable(clock() - timedelta(seconds=1))


def test_disabled_offline_mode_never_grants(clock: FakeClock) -> None:
    cache = licensed_cache(clock, enabled=False)
    assert not cache.is_offline_acceptable()
    cache.enable()
    assert cache.is_offline_acceptable()
    cache.disable()
    assert not cache.is_offline_acceptable()


def test_remaining_grace_window(clock: FakeClock) -> None:
    cache = licensed_cache(clock, cache_duration=timedelta(hours=10))
    clock.advance(hours=4)
    assert cache.remaining_grace_window() == timedelta(hours=6)
    assert cache.grace_expires_at() == clock() + timedelta(hours=6)
    clock.advance(hours=7)
    assert cache.remaining_grace_window() == timedelta(0)


def test_clear_verdict_revokes_grace(clock: FakeClock) -> None:
    cache = licensed_cache(clock)
    cache.clear_verdict()
    assert not cache.is_offline_acceptable()
    assert not cache.is_offline_acceptable(clock() + timedelta(minutes=1))
    assert not cache.is_offline_acceptable(clock() + timedelta(hours=71))


def test_state_survives_reload(clock: FakeClock) -> None:
    storage = LicenseStorage(MemoryStateStore())
    cache = OfflineCacheManager(storage, clock=clock)
    cache.cache_valid_verdict(CachedVerdict(is_licensed=True, cached_at=clock()))

    clock.advance(hours=1)
    reloaded = OfflineCacheManager(storage, clock=clock)
    assert reloaded.is_offline_acceptable()
    assert reloaded.state.last_online_check == clock() - timedelta(hours=1)


def test_response_cache_expiry(clock: FakeClock) -> None:
    storage = LicenseStorage(MemoryStateStore())
    cache = ResponseCache(storage, duration=timedelta(minutes=30), clock=clock)
    key = cache_key(VALID_KEY, "i-1")
    cache.put(VALIDATIONS, key, {"valid": True})

    assert cache.get(VALIDATIONS, key) == {"valid": True}
    assert cache.get(ACTIVATIONS, key) is None
    assert ResponseCache(storage, clock=clock).get(VALIDATIONS, key) == {"valid": True}

    clock.advance(minutes=31)
    assert cache.get(VALIDATIONS, key) is None
    assert key not in storage.load_api_cache().validations


def test_response_cache_disabled(clock: FakeClock) -> None:
    cache = ResponseCache(LicenseStorage(MemoryStateStore()), enabled=False, clock=clock)
    cache.put(VALIDATIONS, "k", {"valid": True})
    assert cache.get(VALIDATIONS, "k") is None


def test_cache_key_hides_license_key() -> None:
    assert VALID_KEY not in cache_key(VALID_KEY, "i-1")
    assert cache_key(VALID_KEY) != cache_key(VALID_KEY, "i-1")


class LockCheckingStorage(LicenseStorage):
    """Records whether the cache lock was held on every save."""

    def __init__(self) -> None:
        super().__init__(MemoryStateStore())
        self.cache: ResponseCache | None = None
        self.saved_under_lock: list[bool] = []

    def save_api_cache(self, cache) -> None:
        if self.cache is not None:
            self.saved_under_lock.append(self.cache._lock.locked())
        super().save_api_cache(cache)


def test_response_cache_saves_under_lock(clock: FakeClock) -> None:
    storage = LockCheckingStorage()
    cache = ResponseCache(storage, duration=timedelta(minutes=30), clock=clock)
    storage.cache = cache

    cache.put(VALIDATIONS, "k", {"valid": True})
    clock.advance(minutes=31)
    assert cache.get(VALIDATIONS, "k") is None
    cache.clear()

    assert storage.saved_under_lock == [True, True, True]


def test_response_cache_concurrent_put_and_expire() -> None:
    storage = LicenseStorage(MemoryStateStore())
    cache = ResponseCache(storage, duration=timedelta(0))
    keys = [cache_key(VALID_KEY, f"i-{n}") for n in range(50)]
    errors: list[Exception] = []

    def writer() -> None:
        try:
            for _ in range(20):
                for key in keys:
                    cache.put(VALIDATIONS, key, {"valid": True})
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    def reader() -> None:
        try:
            for _ in range(20):
                for key in keys:
                    cache.get(VALIDATIONS, key)
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=fn) for fn in (writer, reader, writer, reader)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert storage.load_api_cache().validations.keys() <= set(keys)
