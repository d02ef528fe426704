"""
Error taxonomy and tracking for PIMS bot.

ValidationError       - пустой/неверный ввод, лечится повторным вопросом
PreconditionError     - нет профиля/атрибута/встреч, лечится перенаправлением в диалог
StorageUnavailable    - хранилище недоступно, пользователь получает общее сообщение
NotificationDeliveryFailure - партнёру не доставлено уведомление, матч не откатывается
"""

import functools
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from aiogram import types

from ..messages import get_message_service
from .logging import LoggerMixin, get_logger


class ErrorCode(Enum):
    """Standardized error codes for tracking and debugging"""

    # Bot errors
    BOT_INIT_ERROR = "BOT_001"
    BOT_UPDATE_ERROR = "BOT_002"

    # User interaction errors
    USER_PERMISSION_ERROR = "USER_003"
    USER_INPUT_INVALID = "USER_004"
    USER_PRECONDITION = "USER_005"

    # Database errors
    DB_UNAVAILABLE = "DB_001"
    DB_TIMEOUT = "DB_004"

    # Delivery errors
    NOTIFY_FAILED = "EXT_001"

    UNKNOWN_ERROR = "SYS_999"


class PimsException(Exception):
    """Base exception class for PIMS bot"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        user_id: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.user_id = user_id
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging"""
        return {
            'error_code': self.error_code.value,
            'message': self.message,
            'user_id': self.user_id,
            'context': self.context,
            'timestamp': self.timestamp.isoformat(),
            'type': self.__class__.__name__
        }


class ValidationError(PimsException):
    """Empty or out-of-set user input"""

    def __init__(self, message: str, user_id: Optional[int] = None, **context):
        super().__init__(message, ErrorCode.USER_INPUT_INVALID, user_id, context)


class PreconditionError(PimsException):
    """Operation requested without the required profile state"""

    def __init__(self, message: str, user_id: Optional[int] = None, **context):
        super().__init__(message, ErrorCode.USER_PRECONDITION, user_id, context)


class StorageUnavailable(PimsException):
    """Backing store unreachable or timed out"""

    def __init__(
        self,
        message: str = "Storage unavailable",
        error_code: ErrorCode = ErrorCode.DB_UNAVAILABLE,
        user_id: Optional[int] = None,
        **context
    ):
        super().__init__(message, error_code, user_id, context)


class NotificationDeliveryFailure(PimsException):
    """Best-effort message to a second user was not delivered"""

    def __init__(self, message: str, user_id: Optional[int] = None, **context):
        super().__init__(message, ErrorCode.NOTIFY_FAILED, user_id, context)


class ErrorTracker(LoggerMixin):
    """
    Central error tracking.
    Counts errors by code and keeps a bounded history for diagnostics.
    """

    HISTORY_LIMIT = 1000

    def __init__(self):
        self.error_counts: Dict[str, int] = {}
        self.error_history = []
        self.error_logger = get_logger('pims.errors')

    def track_error(
        self,
        error: Exception,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        user_id: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        severity: str = "ERROR"
    ) -> Dict[str, Any]:
        """Track error with full context and metrics"""

        error_data = {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'error_code': error_code.value,
            'user_id': user_id,
            'context': context or {},
            'traceback': traceback.format_exc(),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'severity': severity
        }

        extra = {
            'error_code': error_code.value,
            'user_id': user_id,
            'context': context or {}
        }

        if severity == "CRITICAL":
            self.error_logger.critical(f"Critical error: {error}", extra=extra, exc_info=True)
        elif severity == "ERROR":
            self.error_logger.error(f"Error: {error}", extra=extra, exc_info=True)
        else:
            self.error_logger.warning(f"Warning: {error}", extra=extra)

        self.error_counts[error_code.value] = self.error_counts.get(error_code.value, 0) + 1
        self.error_history.append(error_data)

        if len(self.error_history) > self.HISTORY_LIMIT:
            self.error_history = self.error_history[-self.HISTORY_LIMIT:]

        return error_data

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics for monitoring"""
        return {
            'total_errors': sum(self.error_counts.values()),
            'error_counts_by_code': self.error_counts.copy(),
            'history_size': len(self.error_history)
        }

    def reset(self):
        self.error_counts.clear()
        self.error_history.clear()


# Global error tracker instance
error_tracker = ErrorTracker()


def handle_errors(
    error_code: ErrorCode = ErrorCode.BOT_UPDATE_ERROR,
    user_message: Optional[str] = None,
    severity: str = "ERROR"
):
    """
    Decorator for aiogram handlers.

    Args:
        error_code: Code used for unexpected exceptions
        user_message: Message sent to the user on failure
            (default: general.internal_error из шаблонов)
        severity: Error severity level
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except PimsException as e:
                error_tracker.track_error(e, e.error_code, e.user_id, e.context, severity)
                await handle_user_error(args, user_message or internal_error_text(kwargs), e.user_id)
                return None
            except Exception as e:
                user_id = extract_user_id_from_args(args)
                context = {'function': func.__name__, 'args': str(args)[:200]}

                error_tracker.track_error(e, error_code, user_id, context, severity)
                await handle_user_error(args, user_message or internal_error_text(kwargs), user_id)
                return None

        return wrapper

    return decorator


def internal_error_text(kwargs) -> str:
    """Текст ошибки: MessageService из DI handler-а или общий синглтон"""
    messages = kwargs.get('messages') or get_message_service()
    return messages.get_message('internal_error', 'general')


def extract_user_id_from_args(args) -> Optional[int]:
    """Extract user ID from handler arguments"""
    for arg in args:
        if isinstance(arg, (types.Message, types.CallbackQuery)) and arg.from_user:
            return arg.from_user.id
        elif hasattr(arg, 'from_user') and hasattr(arg.from_user, 'id'):
            return arg.from_user.id
    return None


async def handle_user_error(args, message: str, user_id: Optional[int] = None):
    """Send error message to user if possible"""
    try:
        for arg in args:
            if isinstance(arg, types.Message):
                await arg.answer(f"❌ {message}")
                return
    except Exception as e:
        logger = get_logger('pims.errors')
        logger.warning(f"Failed to send error message to user {user_id}: {e}")
