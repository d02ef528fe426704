"""
Unit Tests: Telegram adapter

- MeetHandlers переводят Message в события и отправляют ответы
- TelegramNotifier мапит ошибки Bot API в NotificationDeliveryFailure
- HandlerRegistry регистрирует всё на Dispatcher
- GET health отражает доступность хранилища
"""

import re
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram import Dispatcher
from aiogram.exceptions import TelegramForbiddenError
from aiogram.filters import CommandObject
from aiogram.types import Message, ReplyKeyboardMarkup

from pims_bot.bot.handler_registry import GRANT_TEXT_PATTERN, HandlerRegistry
from pims_bot.bot.handlers import MeetHandlers, contact_of
from pims_bot.bot.lifecycle import BotLifecycle
from pims_bot.bot.keyboards import button_choices
from pims_bot.bot.notifier import TelegramNotifier
from pims_bot.core.config import Settings
from pims_bot.core.error_handling import NotificationDeliveryFailure
from pims_bot.database import MemoryProfileStore
from pims_bot.models import Category


def _message(text, user_id=1, username="anya"):
    message = MagicMock(spec=Message)
    message.text = text
    message.from_user = MagicMock(id=user_id, username=username)
    message.answer = AsyncMock()
    return message


def _answers(message):
    return [c.args[0] for c in message.answer.call_args_list]


# ============================================================================
# HANDLERS
# ============================================================================

def test_contact_of():
    assert contact_of(_message("hi", username="anya")) == "@anya"
    assert contact_of(_message("hi", username=None)) is None


@pytest.mark.asyncio
async def test_cmd_start_begins_registration(controller, messages, machine):
    message = _message("/start")

    await MeetHandlers.cmd_start(
        message,
        command=CommandObject(prefix="/", command="start"),
        controller=controller,
        messages=messages
    )

    assert _answers(message)[-1] == "📋 Введите своё имя:"
    assert machine.is_active(1)


@pytest.mark.asyncio
async def test_cmd_start_with_payload_redeems_grant(controller, messages, store, profile_factory):
    await store.upsert(profile_factory(1, credits=0))
    message = _message("/start meet-1")

    await MeetHandlers.cmd_start(
        message,
        command=CommandObject(prefix="/", command="start", args="meet-1"),
        controller=controller,
        messages=messages,
        event_from_user=message.from_user
    )

    assert _answers(message) == ["➕ Встреча зачислена"]
    assert isinstance(message.answer.call_args.kwargs["reply_markup"], ReplyKeyboardMarkup)
    assert (await store.get(1)).credits == 1


@pytest.mark.asyncio
async def test_registration_picks_up_username_as_contact(controller, messages, store):
    await MeetHandlers.cmd_start(
        _message("/start"),
        command=CommandObject(prefix="/", command="start"),
        controller=controller,
        messages=messages
    )
    for text in ("Аня", "люблю горы"):
        await MeetHandlers.free_text(_message(text), controller=controller, messages=messages)

    await MeetHandlers.menu_choice(
        _message("🤝 Дружба", username="anya_k"),
        controller=controller,
        messages=messages,
        choices=button_choices(messages)
    )

    profile = await store.get(1)
    assert profile.category is Category.FRIENDSHIP
    assert profile.contact == "@anya_k"


@pytest.mark.asyncio
async def test_text_grant(controller, messages, store, profile_factory):
    await store.upsert(profile_factory(1, credits=1))
    message = _message("Встречи5")
    match = re.match(GRANT_TEXT_PATTERN, message.text)

    await MeetHandlers.text_grant(message, match=match, controller=controller, messages=messages)

    assert _answers(message) == ["🛠 Добавлено 5 встреч. Всего: 6"]


@pytest.mark.asyncio
async def test_unknown_command_gets_hint(controller, messages):
    message = _message("/weather@pims_bot")

    await MeetHandlers.unknown_command(message, controller=controller, messages=messages)

    assert "Устроить встречу" in _answers(message)[0]


@pytest.mark.asyncio
async def test_handler_failure_answers_with_error_text(messages):
    controller = MagicMock()
    controller.handle = AsyncMock(side_effect=RuntimeError("boom"))
    message = _message("/count")

    await MeetHandlers.cmd_count(message, controller=controller, messages=messages)

    assert _answers(message)[0].startswith("❌")


@pytest.mark.asyncio
async def test_menu_button_on_bio_step_keeps_button_text(controller, messages, store):
    choices = button_choices(messages)
    await MeetHandlers.cmd_start(
        _message("/start"),
        command=CommandObject(prefix="/", command="start"),
        controller=controller,
        messages=messages
    )
    await MeetHandlers.free_text(_message("Аня"), controller=controller, messages=messages)

    for text in ("Женский", "🤝 Дружба"):
        await MeetHandlers.menu_choice(_message(text), controller=controller, messages=messages, choices=choices)

    assert (await store.get(1)).bio == "Женский"


# ============================================================================
# NOTIFIER
# ============================================================================

@pytest.mark.asyncio
async def test_notifier_sends_with_meet_keyboard(messages):
    bot = MagicMock()
    bot.send_message = AsyncMock()

    await TelegramNotifier(bot, messages).notify(2, "🎉 У вас новый матч!")

    kwargs = bot.send_message.call_args.kwargs
    assert kwargs["chat_id"] == 2
    assert kwargs["reply_markup"].keyboard[0][0].text == "🚀 Устроить встречу"


@pytest.mark.asyncio
async def test_notifier_maps_api_errors(messages):
    bot = MagicMock()
    bot.send_message = AsyncMock(
        side_effect=TelegramForbiddenError(method=MagicMock(), message="bot was blocked by the user")
    )

    with pytest.raises(NotificationDeliveryFailure) as exc_info:
        await TelegramNotifier(bot, messages).notify(2, "text")

    assert exc_info.value.user_id == 2


# ============================================================================
# REGISTRY
# ============================================================================

def test_registry_registers_handlers_and_middleware(controller, messages):
    dp = Dispatcher()

    HandlerRegistry(dp, controller, messages).register_all()

    # 5 команд + «встречиN» + кнопки + прочие команды + свободный текст
    assert len(dp.message.handlers) == 9
    assert len(dp.message.middleware) == 1


def test_grant_text_pattern():
    assert re.match(GRANT_TEXT_PATTERN, "встречи12").group(1) == "12"
    assert re.match(GRANT_TEXT_PATTERN, "ВСТРЕЧИ3")
    assert re.match(GRANT_TEXT_PATTERN, "встречи 3") is None


# ============================================================================
# HEALTH
# ============================================================================

@pytest.fixture
def lifecycle(messages):
    settings = Settings(bot_token="123:abc", storage_backend="memory", _env_file=None)
    return BotLifecycle(bot=MagicMock(), dispatcher=Dispatcher(), settings=settings, messages=messages)


@pytest.mark.asyncio
async def test_health_reports_memory_store_availability(lifecycle):
    lifecycle.store = MemoryProfileStore()

    response = await lifecycle.health(MagicMock())
    assert response.status == 200
    assert response.text == "OK"

    lifecycle.store.set_available(False)
    response = await lifecycle.health(MagicMock())
    assert response.status == 503


@pytest.mark.asyncio
async def test_health_uses_database_health_check(lifecycle):
    lifecycle.db_service = MagicMock()
    lifecycle.db_service.health_check = AsyncMock(return_value=False)

    response = await lifecycle.health(MagicMock())

    assert response.status == 503
    lifecycle.db_service.health_check.assert_awaited_once()
