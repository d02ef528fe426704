"""
Meet Handlers - перевод Telegram update в события диалога

Обработчики для:
- /start [token] - регистрация, меню или погашение гранта
- /meet, /count, /reset, /grant N и «встречиN»
- кнопки меню и свободный текст
"""

import logging
import re
from typing import Dict, List, Optional

from aiogram.filters import CommandObject
from aiogram.types import Message

from ..core.error_handling import handle_errors
from ..messages import MessageService
from ..services.dialogue import (
    COMMAND_COUNT,
    COMMAND_GRANT,
    COMMAND_MEET,
    COMMAND_RESET,
    Command,
    DialogueController,
    Event,
    FreeText,
    MenuChoice,
    Reply,
    Start,
)
from .keyboards import build_keyboard

logger = logging.getLogger(__name__)


def contact_of(message: Message) -> Optional[str]:
    """@username отправителя или None"""
    username = message.from_user.username if message.from_user else None
    return f"@{username}" if username else None


async def send_replies(message: Message, replies: List[Reply], messages: MessageService):
    for reply in replies:
        await message.answer(
            reply.text,
            reply_markup=build_keyboard(reply.keyboard, messages)
        )


async def dispatch(message: Message, event: Event, controller: DialogueController, messages: MessageService):
    replies = await controller.handle(event)
    await send_replies(message, replies, messages)


class MeetHandlers:
    """
    Обработчики сообщений бота

    Все методы статические - не требуют состояния.
    Получают зависимости через параметры (functools.partial).
    """

    @staticmethod
    @handle_errors()
    async def cmd_start(
        message: Message,
        command: CommandObject,
        controller: DialogueController,
        messages: MessageService,
        **kwargs
    ):
        """
        Команда /start - точка входа

        Payload deep-link (t.me/bot?start=<token>) - одноразовый грант встречи.
        """
        token = (command.args or "").strip() or None
        logger.info(f"👤 User started: {message.from_user.id} (token: {token or '-'})")

        event = Start(message.from_user.id, grant_token=token, contact=contact_of(message))
        await dispatch(message, event, controller, messages)

    @staticmethod
    @handle_errors()
    async def cmd_meet(message: Message, controller: DialogueController, messages: MessageService, **kwargs):
        event = Command(message.from_user.id, COMMAND_MEET, contact=contact_of(message))
        await dispatch(message, event, controller, messages)

    @staticmethod
    @handle_errors()
    async def cmd_count(message: Message, controller: DialogueController, messages: MessageService, **kwargs):
        event = Command(message.from_user.id, COMMAND_COUNT, contact=contact_of(message))
        await dispatch(message, event, controller, messages)

    @staticmethod
    @handle_errors()
    async def cmd_reset(message: Message, controller: DialogueController, messages: MessageService, **kwargs):
        """Команда /reset - удалить все данные пользователя"""
        logger.info(f"🧹 Reset requested by user {message.from_user.id}")
        event = Command(message.from_user.id, COMMAND_RESET, contact=contact_of(message))
        await dispatch(message, event, controller, messages)

    @staticmethod
    @handle_errors()
    async def cmd_grant(
        message: Message,
        command: CommandObject,
        controller: DialogueController,
        messages: MessageService,
        **kwargs
    ):
        """Команда /grant N"""
        args = tuple((command.args or "").split())
        event = Command(message.from_user.id, COMMAND_GRANT, args, contact=contact_of(message))
        await dispatch(message, event, controller, messages)

    @staticmethod
    @handle_errors()
    async def text_grant(
        message: Message,
        match: re.Match,
        controller: DialogueController,
        messages: MessageService,
        **kwargs
    ):
        """Текстовая команда «встречиN»"""
        event = Command(message.from_user.id, COMMAND_GRANT, (match.group(1),), contact=contact_of(message))
        await dispatch(message, event, controller, messages)

    @staticmethod
    @handle_errors()
    async def unknown_command(message: Message, controller: DialogueController, messages: MessageService, **kwargs):
        name = message.text.split()[0].lstrip("/").split("@")[0]
        event = Command(message.from_user.id, name, contact=contact_of(message))
        await dispatch(message, event, controller, messages)

    @staticmethod
    @handle_errors()
    async def menu_choice(
        message: Message,
        controller: DialogueController,
        messages: MessageService,
        choices: Dict[str, str],
        **kwargs
    ):
        """Нажатие кнопки reply клавиатуры"""
        choice = choices[message.text.strip().lower()]
        event = MenuChoice(message.from_user.id, choice, contact=contact_of(message), text=message.text)
        await dispatch(message, event, controller, messages)

    @staticmethod
    @handle_errors()
    async def free_text(message: Message, controller: DialogueController, messages: MessageService, **kwargs):
        event = FreeText(message.from_user.id, message.text, contact=contact_of(message))
        await dispatch(message, event, controller, messages)
