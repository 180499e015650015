"""
Application layer: last-known-good verdict and the offline grace window.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from licensekeeper.common.models import CachedVerdict, OfflineState

if TYPE_CHECKING:
    from licensekeeper.client.infrastructure.state_store import LicenseStorage

logger = logging.getLogger(__name__)


class OfflineCacheManager:
    """Decides whether a cached verdict may stand in for a live check.

    A cached verdict grants access only while offline mode is enabled, the
    verdict itself was licensed, and less than ``cache_duration`` has passed
    since the last successful online check. Anything else fails closed.
    """

    def __init__(
        self,
        storage: LicenseStorage,
        cache_duration: timedelta = timedelta(hours=72),
        enabled: bool = True,  # noqa: FBT001, FBT002
        clock: Callable[[], datetime] | None = None,
    ):
        self.storage = storage
        self.cache_duration = cache_duration
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = storage.load_offline_state() or self._default_state()
        if self.state.enabled != enabled:
            self.state.enabled = enabled
            self._save()

    def _default_state(self) -> OfflineState:
        now = self.clock()
        return OfflineState(
            enabled=False,
            last_online_check=now,
            cached_verdict=CachedVerdict(is_licensed=False, cached_at=now),
        )

    def _save(self) -> None:
        self.storage.save_offline_state(self.state)

    @property
    def enabled(self) -> bool:
        return self.state.enabled

    @property
    def cached_verdict(self) -> CachedVerdict:
        return self.state.cached_verdict

    def cache_valid_verdict(self, verdict: CachedVerdict) -> None:
        """Record the outcome of a successful live validation."""
        self.state.cached_verdict = verdict
        self.state.last_online_check = verdict.cached_at
        self._save()

    def clear_verdict(self) -> None:
        """Replace the cached verdict with a not-licensed one."""
        now = self.clock()
        self.state.cached_verdict = CachedVerdict(
            is_licensed=False, cached_at=now, offline_enabled=self.state.enabled
        )
        self._save()

    def is_offline_acceptable(self, now: datetime | None = None) -> bool:
        if not self.state.enabled or not self.state.cached_verdict.is_licensed:
            return False
        elapsed = (now or self.clock()) - self.state.last_online_check
        if elapsed < timedelta(0):
            # Clock moved backwards; do not extend trust
            return False
        return elapsed < self.cache_duration

    def grace_expires_at(self) -> datetime:
        return self.state.last_online_check + self.cache_duration

    def remaining_grace_window(self, now: datetime | None = None) -> timedelta:
        """Time left before cached trust lapses, never negative."""
        if not self.is_offline_acceptable(now):
            return timedelta(0)
        return max(self.grace_expires_at() - (now or self.clock()), timedelta(0))

    def enable(self) -> None:
        self.state.enabled = True
        self._save()

    def disable(self) -> None:
        self.state.enabled = False
        self._save()
