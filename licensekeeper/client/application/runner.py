"""
Application layer: background scheduling of validation, pings and cleanup.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from licensekeeper.client.application.license_manager import LicenseManager
    from licensekeeper.common.interfaces import IConnectivityMonitor

ERROR_CLEANUP_INTERVAL = 24 * 60 * 60  # Seconds
TICK = 1.0


class Runner:
    """Fires periodic jobs from a daemon thread.

    Every validation trigger goes through ``LicenseManager.refresh`` so the
    rate limiter decides whether a network call actually happens.
    """

    def __init__(
        self,
        license_manager: LicenseManager,
        connectivity: IConnectivityMonitor,
        validation_interval: float,
        connectivity_check_interval: float,
        validate_on_startup: bool = True,  # noqa: FBT001, FBT002
        on_error_callback: Callable[[Exception], None] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.license_manager = license_manager
        self.connectivity = connectivity
        self.validation_interval = validation_interval
        self.connectivity_check_interval = connectivity_check_interval
        self.validate_on_startup = validate_on_startup
        self.on_error_callback = on_error_callback
        self.monotonic = monotonic
        self.logger = logging.getLogger(__name__)
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._next_due: dict[str, float] = {}

    def _jobs(self) -> dict[str, tuple[float, Callable[[], object]]]:
        return {
            "connectivity": (self.connectivity_check_interval, self.connectivity.check),
            "validation": (self.validation_interval, self.license_manager.refresh),
            "error_cleanup": (
                ERROR_CLEANUP_INTERVAL,
                self.license_manager.error_history.cleanup,
            ),
        }

    def _schedule(self) -> None:
        now = self.monotonic()
        self._next_due = {
            name: now + interval for name, (interval, _) in self._jobs().items()
        }

    def run_pending(self) -> list[str]:
        """Run every job whose time has come; return the names that ran."""
        now = self.monotonic()
        ran = []
        for name, (interval, job) in self._jobs().items():
            if now < self._next_due.get(name, now):
                continue
            self._next_due[name] = now + interval
            try:
                job()
            except Exception as e:
                self.logger.exception("Scheduled job %s failed", name)
                if self.on_error_callback:
                    self.on_error_callback(e)
            ran.append(name)
        return ran

    def run(self) -> None:
        """Run the scheduling loop until stopped."""
        self._schedule()
        if self.validate_on_startup:
            self.on_foreground()
        while not self._stop.wait(TICK):
            self.run_pending()

    def on_foreground(self) -> bool:
        """Process start or the host regaining focus."""
        try:
            return self.license_manager.refresh()
        except Exception as e:
            self.logger.exception("Validation on foreground failed")
            if self.on_error_callback:
                self.on_error_callback(e)
            return False

    def start_in_thread(self) -> None:
        """Start the scheduler in a separate thread."""
        if self._thread and self._thread.is_alive():
            self.logger.warning("Scheduler is already running in a thread")
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run, name="licensekeeper-runner", daemon=True
        )
        self._thread.start()
        self.logger.info("Scheduler started in background thread")

    def stop_thread(self, timeout: float | None = 5.0) -> None:
        """Stop the background thread."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        self.logger.info("Scheduler thread stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
