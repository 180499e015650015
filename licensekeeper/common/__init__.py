# Common utilities
from licensekeeper.common.logging_utils import setup_logger as setup_logger

__all__ = ["setup_logger"]
