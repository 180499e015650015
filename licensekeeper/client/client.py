"""
License client: the command surface and its process-wide handle.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

import requests

from licensekeeper.client.application.license_manager import LicenseManager
from licensekeeper.client.application.offline_cache import OfflineCacheManager
from licensekeeper.client.application.response_cache import ResponseCache
from licensekeeper.client.application.retry import ErrorHistory, RetryExecutor
from licensekeeper.client.application.runner import Runner
from licensekeeper.client.infrastructure.authority import AuthorityClient
from licensekeeper.client.infrastructure.connectivity import ConnectivityMonitor
from licensekeeper.client.infrastructure.state_store import (
    JsonFileStateStore,
    LicenseStorage,
)
from licensekeeper.common.config import Config
from licensekeeper.common.exceptions import (
    AlreadyInitializedError,
    LicenseError,
    NotInitializedError,
)
from licensekeeper.common.models import (
    CommandResult,
    LicenseConfig,
    LicenseStateSnapshot,
)

if TYPE_CHECKING:
    from licensekeeper.client.domain.entities import LicenseEvent
    from licensekeeper.common.interfaces import (
        IAuthorityClient,
        IConnectivityMonitor,
        IStateStore,
    )
    from licensekeeper.common.models import ExtensionError

logger = logging.getLogger(__name__)


class LicenseClient:
    """Wires the license components together and exposes the commands."""

    def __init__(  # noqa: PLR0913
        self,
        config: LicenseConfig | None = None,
        store: IStateStore | None = None,
        authority: IAuthorityClient | None = None,
        connectivity: IConnectivityMonitor | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] | None = None,
        session: requests.Session | None = None,
    ):
        self.config = config or LicenseConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        if store is None:
            store = JsonFileStateStore(Config().STATE_FILE_PATH)
        self.storage = LicenseStorage(store)
        self.session = session or requests.Session()

        self.authority = authority or AuthorityClient(
            base_url=self.config.api_base_url,
            store_id=self.config.store_id,
            product_id=self.config.product_id,
            timeout=self.config.request_timeout,
            session=self.session,
        )
        self.connectivity = connectivity or ConnectivityMonitor(
            ping_url=self.config.api_base_url,
            timeout=self.config.ping_timeout,
            session=self.session,
            clock=self.clock,
        )
        self.error_history = ErrorHistory(
            max_entries=self.config.error_tracking.max_errors,
            retention=self.config.error_retention,
            retain_failed_attempts=self.config.error_tracking.retain_failed_attempts,
            show_notifications=self.config.show_notifications,
            clock=self.clock,
        )
        retry_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.retry_executor = RetryExecutor(
            self.error_history,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay_seconds,
            **retry_kwargs,
        )
        self.offline_cache = OfflineCacheManager(
            self.storage,
            cache_duration=self.config.offline_cache_duration,
            enabled=self.config.offline_mode.enabled,
            clock=self.clock,
        )
        self.response_cache = ResponseCache(
            self.storage,
            duration=timedelta(minutes=self.config.api_cache.duration),
            enabled=self.config.api_cache.enabled,
            clock=self.clock,
        )
        self.license_manager = LicenseManager(
            config=self.config,
            storage=self.storage,
            authority=self.authority,
            offline_cache=self.offline_cache,
            retry_executor=self.retry_executor,
            connectivity=self.connectivity,
            response_cache=self.response_cache,
            clock=self.clock,
        )
        self.runner = Runner(
            self.license_manager,
            self.connectivity,
            validation_interval=self.config.validation_interval * 60 * 60,
            connectivity_check_interval=self.config.connectivity_check_interval,
            validate_on_startup=self.config.validate_on_startup,
        )

    def activate_license(self, license_key: str) -> CommandResult:
        """Activate a license key for this installation."""
        try:
            record = self.license_manager.activate(license_key)
        except LicenseError as e:
            logger.info("Activation failed: %s", e)
            return CommandResult(success=False, message=e.message, code=e.code)
        return CommandResult(
            success=True,
            message="License activated successfully!",
            data={"instance_id": record.instance_id},
        )

    def deactivate_license(self) -> CommandResult:
        """Deactivate the current license, locally first."""
        try:
            outcome = self.license_manager.deactivate()
        except LicenseError as e:
            return CommandResult(success=False, message=e.message, code=e.code)
        if outcome.remote_confirmed:
            message = "License deactivated successfully!"
        else:
            message = (
                "License deactivated on this machine, but the licensing server "
                "did not confirm the release of the activation."
            )
        return CommandResult(
            success=True, message=message, remote_confirmed=outcome.remote_confirmed
        )

    def validate_license(self, *, force: bool = False) -> bool:
        """Re-validate the stored license (rate limited unless forced)."""
        return self.license_manager.refresh(force=force)

    def is_feature_available(self) -> bool:
        return self.license_manager.is_feature_available()

    def get_license_state(self) -> LicenseStateSnapshot:
        return self.license_manager.snapshot()

    def get_errors(self) -> list[ExtensionError]:
        return self.error_history.entries()

    def subscribe(self, callback: Callable[[LicenseEvent], None]) -> Callable[[], None]:
        return self.license_manager.subscribe(callback)

    def on_foreground(self) -> bool:
        """Hook for the host regaining focus; rate limited like every refresh."""
        return self.runner.on_foreground()

    def start(self) -> None:
        """Start background validation and connectivity checks."""
        self.runner.start_in_thread()

    def close(self) -> None:
        self.runner.stop_thread()
        self.session.close()


_instance: LicenseClient | None = None
_instance_lock = threading.Lock()


def init(
    config: LicenseConfig | None = None,
    store: IStateStore | None = None,
    **kwargs,
) -> LicenseClient:
    """Create the single license client of this process."""
    global _instance  # noqa: PLW0603
    with _instance_lock:
        if _instance is not None:
            msg = "License client already initialized; dispose it first"
            raise AlreadyInitializedError(msg)
        _instance = LicenseClient(config=config, store=store, **kwargs)
        return _instance


def get_client() -> LicenseClient:
    """Return the handle created by init()."""
    if _instance is None:
        msg = "License client not initialized; call licensekeeper.init() first"
        raise NotInitializedError(msg)
    return _instance


def dispose(handle: LicenseClient) -> None:
    """Stop the handle's background work and free the process slot."""
    global _instance  # noqa: PLW0603
    with _instance_lock:
        handle.close()
        if _instance is handle:
            _instance = None
