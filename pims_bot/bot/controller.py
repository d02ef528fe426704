"""
PIMS Bot Controller - координатор

Только композиция: Bot, Dispatcher, MessageService, BotLifecycle, HandlerRegistry.
Бизнес-логика живёт в pims_bot.services.
"""

import logging
from typing import Optional

from aiogram import Bot, Dispatcher

from ..core.config import Settings
from ..messages import get_message_service
from .handler_registry import HandlerRegistry
from .lifecycle import BotLifecycle

logger = logging.getLogger(__name__)


class PimsBotController:
    """
    Контроллер PIMS бота

    Ответственность:
    - Инициализация Bot и Dispatcher
    - Регистрация handlers через HandlerRegistry после старта сервисов
    - Запуск через BotLifecycle
    """

    def __init__(self, settings: Settings):
        logger.info("🤖 Initializing PIMS Controller...")

        if not settings.bot_token:
            raise ValueError("BOT_TOKEN is not configured")

        self.settings = settings
        self.bot = Bot(token=settings.bot_token)
        self.dp = Dispatcher()
        self.messages = get_message_service(settings.locale)

        self.lifecycle = BotLifecycle(
            bot=self.bot,
            dispatcher=self.dp,
            settings=settings,
            messages=self.messages
        )
        self.handler_registry: Optional[HandlerRegistry] = None

        logger.info("🎉 PIMS Controller initialized successfully")

    async def start(self):
        """Сервисы → handlers → webhook/polling"""
        logger.info(f"🚀 Starting PIMS Bot ({self.settings.run_mode})...")

        controller = await self.lifecycle.initialize_services()

        self.handler_registry = HandlerRegistry(
            dp=self.dp,
            controller=controller,
            messages=self.messages
        )
        self.handler_registry.register_all()

        await self.lifecycle.run()

    async def stop(self):
        logger.info("🛑 Stopping PIMS Bot...")
        self.lifecycle.request_shutdown()
