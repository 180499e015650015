"""
Application layer: short-lived cache of successful authority responses.
"""

from __future__ import annotations

import hashlib
import threading
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable

from licensekeeper.common.models import ApiCache, CacheEntry

if TYPE_CHECKING:
    from licensekeeper.client.infrastructure.state_store import LicenseStorage

VALIDATIONS = "validations"
ACTIVATIONS = "activations"


def cache_key(license_key: str, instance_id: str | None = None) -> str:
    """Digest used as the cache key so raw license keys are not repeated."""
    raw = license_key if instance_id is None else f"{license_key}:{instance_id}"
    return hashlib.sha256(raw.encode()).hexdigest()


class ResponseCache:
    """Keeps validation and activation responses until they expire.

    Safe to share between the scheduler thread and snapshot readers.
    """

    def __init__(
        self,
        storage: LicenseStorage,
        duration: timedelta = timedelta(minutes=30),
        enabled: bool = True,  # noqa: FBT001, FBT002
        clock: Callable[[], datetime] | None = None,
    ):
        self.storage = storage
        self.duration = duration
        self.enabled = enabled
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._cache: ApiCache = storage.load_api_cache()

    def _section(self, section: str) -> dict[str, CacheEntry]:
        return getattr(self._cache, section)

    def get(self, section: str, key: str) -> dict[str, Any] | None:
        """Return a live entry, dropping it if it has expired."""
        if not self.enabled:
            return None
        with self._lock:
            entries = self._section(section)
            entry = entries.get(key)
            if entry is None:
                return None
            if self.clock() > entry.expiry:
                del entries[key]
                self.storage.save_api_cache(self._cache)
                return None
            return entry.data

    def put(self, section: str, key: str, data: dict[str, Any]) -> None:
        if not self.enabled:
            return
        now = self.clock()
        with self._lock:
            self._section(section)[key] = CacheEntry(
                data=data, timestamp=now, expiry=now + self.duration
            )
            self.storage.save_api_cache(self._cache)

    def clear(self) -> None:
        with self._lock:
            self._cache = ApiCache()
            self.storage.save_api_cache(self._cache)
