"""
Unit Tests: Error handling

- иерархия PimsException и коды
- ErrorTracker статистика
- handle_errors: пользователь получает сообщение, исключение не пробрасывается
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram import types

from pims_bot.core.error_handling import (
    ErrorCode,
    NotificationDeliveryFailure,
    PreconditionError,
    StorageUnavailable,
    ValidationError,
    error_tracker,
    handle_errors,
)


def _message(user_id=7):
    message = MagicMock(spec=types.Message)
    message.from_user = MagicMock(id=user_id)
    message.answer = AsyncMock()
    return message


# ============================================================================
# EXCEPTIONS
# ============================================================================

def test_exception_codes():
    assert ValidationError("x").error_code is ErrorCode.USER_INPUT_INVALID
    assert PreconditionError("x").error_code is ErrorCode.USER_PRECONDITION
    assert StorageUnavailable("x").error_code is ErrorCode.DB_UNAVAILABLE
    assert NotificationDeliveryFailure("x").error_code is ErrorCode.NOTIFY_FAILED


def test_to_dict_carries_context():
    error = ValidationError("Invalid gender", user_id=3, field="gender", value="другой")

    data = error.to_dict()

    assert data["error_code"] == ErrorCode.USER_INPUT_INVALID.value
    assert data["user_id"] == 3
    assert data["context"] == {"field": "gender", "value": "другой"}


def test_tracker_counts_by_code():
    error_tracker.track_error(StorageUnavailable("down"), ErrorCode.DB_UNAVAILABLE, 1, severity="WARNING")
    error_tracker.track_error(StorageUnavailable("down"), ErrorCode.DB_UNAVAILABLE, 2, severity="WARNING")

    stats = error_tracker.get_error_stats()

    assert stats["total_errors"] == 2
    assert stats["error_counts_by_code"] == {ErrorCode.DB_UNAVAILABLE.value: 2}


# ============================================================================
# DECORATOR
# ============================================================================

@pytest.mark.asyncio
async def test_handle_errors_answers_user_on_unexpected_error():
    message = _message()

    @handle_errors(user_message="Ой")
    async def handler(msg, **kwargs):
        raise RuntimeError("boom")

    assert await handler(message, bot=object()) is None

    message.answer.assert_awaited_once_with("❌ Ой")
    stats = error_tracker.get_error_stats()
    assert stats["error_counts_by_code"] == {ErrorCode.BOT_UPDATE_ERROR.value: 1}


@pytest.mark.asyncio
async def test_handle_errors_uses_pims_error_code():
    message = _message()

    @handle_errors()
    async def handler(msg):
        raise PreconditionError("No active dialogue", user_id=7)

    await handler(message)

    assert error_tracker.get_error_stats()["error_counts_by_code"] == {
        ErrorCode.USER_PRECONDITION.value: 1
    }
    message.answer.assert_awaited_once()


@pytest.mark.asyncio
async def test_handle_errors_passes_result_through():
    @handle_errors()
    async def handler(msg):
        return "ok"

    assert await handler(_message()) == "ok"
    assert error_tracker.get_error_stats()["total_errors"] == 0


@pytest.mark.asyncio
async def test_handle_errors_default_text_comes_from_templates(messages):
    message = _message()

    @handle_errors()
    async def handler(msg, **kwargs):
        raise RuntimeError("boom")

    await handler(message, messages=messages)

    message.answer.assert_awaited_once_with(
        f"❌ {messages.get_message('internal_error', 'general')}"
    )
    assert message.answer.call_args.args[0] == "❌ Произошла техническая ошибка. Попробуйте позже."
