"""License decorators for gating premium functions.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    from licensekeeper.common.interfaces import IFeatureGate

from licensekeeper.common.exceptions import FeatureUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Premium feature requires a license. Please activate your license."


def requires_license(
    gate: IFeatureGate | str,
    error_message: str = DEFAULT_MESSAGE,
    *,
    raise_exception: bool = True,
) -> Callable:
    """Decorator that runs the function only while premium features are available.

    Args:
        gate: LicenseClient/LicenseManager instance, or the name of an
            attribute holding one on the decorated method's ``self``
        error_message: Message to show when no license is active
        raise_exception: Whether to raise exception or return None

    Returns:
        Decorated function that only executes when a license is active
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if isinstance(gate, str):
                if not args:
                    msg = f"Cannot get gate attribute '{gate}' without self"
                    raise ValueError(msg)
                resolved = getattr(args[0], gate)
            else:
                resolved = gate
            return _call_if_available(
                resolved, func, error_message, raise_exception, args, kwargs
            )

        return wrapper

    return decorator


def license_protected(
    get_gate: Callable[[], IFeatureGate],
    error_message: str = DEFAULT_MESSAGE,
    *,
    raise_exception: bool = True,
) -> Callable:
    """Decorator that looks the gate up on every call.

    Useful with ``licensekeeper.get_client`` when the client is created after
    the decorated function is defined.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return _call_if_available(
                get_gate(), func, error_message, raise_exception, args, kwargs
            )

        return wrapper

    return decorator


def _call_if_available(
    gate: IFeatureGate,
    func: Callable,
    error_message: str,
    raise_exception: bool,  # noqa: FBT001
    args: tuple,
    kwargs: dict,
) -> Any:
    if not gate.is_feature_available():
        if raise_exception:
            raise FeatureUnavailableError(error_message)
        logger.warning("License check failed: %s", error_message)
        return None
    return func(*args, **kwargs)
