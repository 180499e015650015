from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

import licensekeeper.client.client as client_module
from licensekeeper.client.client import LicenseClient
from licensekeeper.client.domain.results import AuthorityValid
from licensekeeper.client.infrastructure.state_store import MemoryStateStore
from licensekeeper.common.models import AuthorityResponse, LicenseConfig

VALID_KEY = "38b1460a-5104-4067-a91d-77b872934d51"
STORE_ID = 157343
PRODUCT_ID = 463516


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def valid_body(instance_id: str = "i-1", **extra: Any) -> dict[str, Any]:
    body = {
        "valid": True,
        "activated": True,
        "meta": {"store_id": STORE_ID, "product_id": PRODUCT_ID},
        "instance": {"id": instance_id, "name": "licensekeeper-test"},
        "license_key": {"status": "active", "key": VALID_KEY},
    }
    body.update(extra)
    return body


def valid_result(instance_id: str = "i-1", **extra: Any) -> AuthorityValid:
    return AuthorityValid(AuthorityResponse.model_validate(valid_body(instance_id, **extra)))


class FakeAuthority:
    """Authority double that replays queued results and records calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self.validate_results: list[Any] = []
        self.activate_results: list[Any] = []
        self.deactivate_results: list[Any] = []
        self.default_instance = "i-1"

    def _next(self, queue: list[Any]) -> Any:
        if queue:
            return queue.pop(0) if len(queue) > 1 else queue[0]
        return valid_result(self.default_instance)

    def validate(self, license_key: str, instance_id: str | None = None) -> Any:
        self.calls.append(("validate", (license_key, instance_id)))
        return self._next(self.validate_results)

    def activate(self, license_key: str, instance_name: str) -> Any:
        self.calls.append(("activate", (license_key, instance_name)))
        return self._next(self.activate_results)

    def deactivate(self, license_key: str, instance_id: str) -> Any:
        self.calls.append(("deactivate", (license_key, instance_id)))
        return self._next(self.deactivate_results)

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


class FakeConnectivity:
    def __init__(self) -> None:
        self.is_online = True
        self.checks = 0

    def check(self) -> bool:
        self.checks += 1
        return self.is_online

    def mark_online(self) -> None:
        self.is_online = True

    def mark_offline(self) -> None:
        self.is_online = False

    @property
    def tooltip_text(self) -> str:
        return "online" if self.is_online else "offline"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def authority() -> FakeAuthority:
    return FakeAuthority()


@pytest.fixture
def connectivity() -> FakeConnectivity:
    return FakeConnectivity()


@pytest.fixture
def store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def make_client(store, authority, connectivity, clock):
    """Factory for clients sharing the same store, authority and clock."""
    created: list[LicenseClient] = []

    def factory(**config: Any) -> LicenseClient:
        client = LicenseClient(
            config=LicenseConfig(**config),
            store=store,
            authority=authority,
            connectivity=connectivity,
            clock=clock,
            sleep=lambda _: None,
        )
        created.append(client)
        return client

    yield factory
    for client in created:
        client.close()


@pytest.fixture(autouse=True)
def reset_process_handle():
    yield
    client_module._instance = None


