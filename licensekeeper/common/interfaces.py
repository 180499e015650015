"""
Interfaces and protocols for dependency injection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from licensekeeper.client.domain.results import AuthorityResult


class IStateStore(Protocol):
    """Protocol for durable key-value storage."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class IAuthorityClient(Protocol):
    """Protocol for the remote licensing authority."""

    def validate(
        self, license_key: str, instance_id: str | None = None
    ) -> AuthorityResult: ...

    def activate(self, license_key: str, instance_name: str) -> AuthorityResult: ...

    def deactivate(self, license_key: str, instance_id: str) -> AuthorityResult: ...


class IConnectivityMonitor(Protocol):
    """Protocol for connectivity tracking."""

    is_online: bool

    def check(self) -> bool: ...

    def mark_online(self) -> None: ...

    def mark_offline(self) -> None: ...

    @property
    def tooltip_text(self) -> str: ...


class IFeatureGate(Protocol):
    """Anything that can answer whether premium features are available."""

    def is_feature_available(self) -> bool: ...
