from pathlib import Path

import pytest

import licensekeeper
from licensekeeper.client.client import LicenseClient
from licensekeeper.client.infrastructure.authority import AuthorityClient
from licensekeeper.client.infrastructure.connectivity import ConnectivityMonitor
from licensekeeper.client.infrastructure.state_store import (
    JsonFileStateStore,
    MemoryStateStore,
)
from licensekeeper.common.exceptions import AlreadyInitializedError, NotInitializedError
from licensekeeper.common.models import LicenseConfig

from conftest import VALID_KEY


def test_client_default_wiring(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LICENSEKEEPER_STATE_FILE", str(tmp_path / "state.json"))
    client = LicenseClient(config=LicenseConfig(api_base_url="http://localhost:9"))
    try:
        assert isinstance(client.authority, AuthorityClient)
        assert client.authority.base_url == "http://localhost:9"
        assert isinstance(client.connectivity, ConnectivityMonitor)
        assert isinstance(client.storage.store, JsonFileStateStore)
        assert client.storage.store.file_path == tmp_path / "state.json"
        assert client.retry_executor.retry_delay == 5.0  # noqa: PLR2004
        assert client.runner.validation_interval == 24 * 60 * 60
        assert not client.is_feature_available()
    finally:
        client.close()


def test_init_creates_single_handle(authority) -> None:
    handle = licensekeeper.init(store=MemoryStateStore(), authority=authority)
    assert licensekeeper.get_client() is handle

    with pytest.raises(AlreadyInitializedError):
        licensekeeper.init(store=MemoryStateStore(), authority=authority)

    licensekeeper.dispose(handle)
    with pytest.raises(NotInitializedError):
        licensekeeper.get_client()

    again = licensekeeper.init(store=MemoryStateStore(), authority=authority)
    assert again is not handle
    licensekeeper.dispose(again)


def test_handle_commands(authority) -> None:
    handle = licensekeeper.init(
        store=MemoryStateStore(), authority=authority, sleep=lambda _: None
    )
    try:
        assert handle.activate_license(VALID_KEY).success
        assert licensekeeper.get_client().is_feature_available()
        assert handle.on_foreground()
    finally:
        licensekeeper.dispose(handle)


def test_start_runs_background_thread(make_client) -> None:
    client = make_client(validate_on_startup=False)
    client.start()
    assert client.runner.is_running
    client.close()
    assert not client.runner.is_running
