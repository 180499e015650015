"""
Application layer: bounded retries and the error history they feed.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, TypeVar

from licensekeeper.common.models import ExtensionError

T = TypeVar("T")

logger = logging.getLogger(__name__)

RETRY_ERROR = "RETRY_ERROR"
VALIDATION_FAILED = "VALIDATION_FAILED"


class ErrorHistory:
    """Bounded, age-evicted log of errors for diagnostics and UI display."""

    def __init__(
        self,
        max_entries: int = 100,
        retention: timedelta = timedelta(days=7),
        retain_failed_attempts: bool = False,  # noqa: FBT001, FBT002
        show_notifications: bool = False,  # noqa: FBT001, FBT002
        clock: Callable[[], datetime] | None = None,
    ):
        self.max_entries = max_entries
        self.retention = retention
        self.retain_failed_attempts = retain_failed_attempts
        self.show_notifications = show_notifications
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: list[ExtensionError] = []
        self._lock = threading.Lock()

    def record(
        self,
        code: str,
        message: str,
        *,
        retryable: bool = False,
        details: str | None = None,
    ) -> ExtensionError:
        """Append an error and enforce the size bound."""
        entry = ExtensionError(
            code=code,
            message=message,
            timestamp=self.clock(),
            retryable=retryable,
            details=details,
        )
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.max_entries:
                self._entries = self._entries[-self.max_entries :]
        if self.show_notifications:
            logger.warning("%s: %s", code, message)
        return entry

    def cleanup(self) -> int:
        """Drop entries older than the retention window; return how many went."""
        now = self.clock()
        with self._lock:
            before = len(self._entries)
            self._entries = [
                e
                for e in self._entries
                if now - e.timestamp < self.retention
                or (self.retain_failed_attempts and e.code == VALIDATION_FAILED)
            ][-self.max_entries :]
            removed = before - len(self._entries)
        if removed:
            logger.debug("Evicted %d stale errors", removed)
        return removed

    def entries(self) -> list[ExtensionError]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RetryExecutor:
    """Runs an operation up to max_retries times with a fixed delay."""

    def __init__(
        self,
        error_history: ErrorHistory,
        max_retries: int = 3,
        retry_delay: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.error_history = error_history
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.retry_count = 0

    def with_retry(self, operation: Callable[[], T], *, retryable: bool = True) -> T:
        """Return the first successful result or re-raise the last error.

        Errors that declare ``retryable = False`` stop the loop at once, as
        does calling with ``retryable=False``.
        """
        self.retry_count = 0
        for attempt in range(1, self.max_retries + 1):
            try:
                return operation()
            except Exception as e:
                can_retry = retryable and getattr(e, "retryable", True)
                self.error_history.record(
                    RETRY_ERROR,
                    f"Operation failed (attempt {attempt}/{self.max_retries}): {e}",
                    retryable=can_retry,
                    details=type(e).__name__,
                )
                if attempt == self.max_retries or not can_retry:
                    raise
                self.retry_count = attempt
                logger.info(
                    "Retrying in %.1fs (attempt %d/%d)",
                    self.retry_delay,
                    attempt + 1,
                    self.max_retries,
                )
                self.sleep(self.retry_delay)
        msg = "Max retries reached"
        raise RuntimeError(msg)
