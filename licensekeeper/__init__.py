# licensekeeper: client-side license lifecycle manager

from licensekeeper.client.client import LicenseClient, dispose, get_client, init
from licensekeeper.common.decorators import license_protected, requires_license
from licensekeeper.common.models import LicenseConfig, LicenseStatus

__all__ = [
    "LicenseClient",
    "LicenseConfig",
    "LicenseStatus",
    "dispose",
    "get_client",
    "init",
    "license_protected",
    "requires_license",
]
