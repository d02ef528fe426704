"""
Handler Registry - регистрация всех обработчиков бота

Отвечает за:
- Регистрацию handlers с dependency injection (functools.partial)
- Порядок фильтров: команды → «встречиN» → кнопки → свободный текст
- Middleware регистрацию
"""

import logging
from functools import partial

from aiogram import Dispatcher, F
from aiogram.filters import Command, CommandStart

from ..messages import MessageService
from ..services.dialogue import DialogueController
from .handlers import MeetHandlers
from .keyboards import button_choices
from .middleware import ConversationLoggerMiddleware

logger = logging.getLogger(__name__)

GRANT_TEXT_PATTERN = r"(?i)^встречи(\d+)$"


class HandlerRegistry:
    """
    Регистратор всех обработчиков бота

    Использует dependency injection для передачи зависимостей в handlers.
    """

    def __init__(self, dp: Dispatcher, controller: DialogueController, messages: MessageService):
        """
        Args:
            dp: Aiogram Dispatcher
            controller: DialogueController
            messages: MessageService
        """
        self.dp = dp
        self.controller = controller
        self.messages = messages

    def register_all(self):
        """Регистрация всех handlers и middleware"""
        logger.info("🔧 Registering all handlers...")

        self._register_middleware()
        self._register_command_handlers()
        self._register_text_handlers()

        logger.info("✅ All handlers registered successfully")

    def _inject(self, handler, **extra):
        return partial(handler, controller=self.controller, messages=self.messages, **extra)

    def _register_middleware(self):
        self.dp.message.middleware(ConversationLoggerMiddleware(self.controller.machine))
        logger.info("🔄 Middleware registered: ConversationLoggerMiddleware")

    def _register_command_handlers(self):
        """Регистрация команд"""
        self.dp.message.register(self._inject(MeetHandlers.cmd_start), CommandStart())
        self.dp.message.register(self._inject(MeetHandlers.cmd_meet), Command("meet"))
        self.dp.message.register(self._inject(MeetHandlers.cmd_count), Command("count"))
        self.dp.message.register(self._inject(MeetHandlers.cmd_reset), Command("reset"))
        self.dp.message.register(self._inject(MeetHandlers.cmd_grant), Command("grant"))

        logger.info("📝 Command handlers registered: /start, /meet, /count, /reset, /grant")

    def _register_text_handlers(self):
        """«встречиN», кнопки меню, прочие команды и свободный текст"""
        choices = button_choices(self.messages)

        self.dp.message.register(
            self._inject(MeetHandlers.text_grant),
            F.text.regexp(GRANT_TEXT_PATTERN).as_("match")
        )

        self.dp.message.register(
            self._inject(MeetHandlers.menu_choice, choices=choices),
            F.text.func(lambda text: text.strip().lower() in choices)
        )

        self.dp.message.register(
            self._inject(MeetHandlers.unknown_command),
            F.text.startswith("/")
        )

        self.dp.message.register(self._inject(MeetHandlers.free_text), F.text)

        logger.info(f"💬 Text handlers registered: {len(choices)} menu buttons + free text")
