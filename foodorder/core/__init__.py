"""
Core module initialization.
Exports configuration, the result envelope, error classification and retry.
"""

from foodorder.core.config import get_settings, Settings, EnvironmentMode
from foodorder.core.errors import ErrorCode, ClassifiedError, ServiceError, classify
from foodorder.core.result import Result
from foodorder.core.retry import retry_operation, with_retry

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "ErrorCode",
    "ClassifiedError",
    "ServiceError",
    "classify",
    "Result",
    "retry_operation",
    "with_retry",
]
