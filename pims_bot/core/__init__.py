"""
Core Package - configuration, logging and error handling
"""

from .config import Settings, get_settings
from .logging import setup_logging, get_logger, LoggerMixin
from .error_handling import (
    ErrorCode,
    PimsException,
    ValidationError,
    PreconditionError,
    StorageUnavailable,
    NotificationDeliveryFailure,
    error_tracker,
    handle_errors,
)

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "LoggerMixin",
    "ErrorCode",
    "PimsException",
    "ValidationError",
    "PreconditionError",
    "StorageUnavailable",
    "NotificationDeliveryFailure",
    "error_tracker",
    "handle_errors",
]
