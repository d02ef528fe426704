"""
Bot Lifecycle Manager - управление жизненным циклом бота

Отвечает за:
- Инициализацию хранилища (degraded mode если БД недоступна), таблиц и placeholder профилей
- Сборку DialogueController
- Запуск webhook (aiohttp) или polling
- Обработку сигналов (SIGINT, SIGTERM) и освобождение ресурсов
"""

import asyncio
import logging
import signal
from typing import Optional

from aiogram import Bot, Dispatcher
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web

from ..core.config import Settings
from ..core.error_handling import ErrorCode, StorageUnavailable, error_tracker
from ..database import (
    PLACEHOLDER_PROFILES,
    DatabaseService,
    MemoryProfileStore,
    PostgresProfileStore,
    ProfileStore,
)
from ..messages import MessageService
from ..services import ConversationStateMachine, DialogueController, MatchEngine
from .notifier import TelegramNotifier

logger = logging.getLogger(__name__)


class BotLifecycle:
    """
    Управление жизненным циклом Telegram бота

    Координирует инициализацию, запуск и остановку всех компонентов.
    """

    def __init__(self, bot: Bot, dispatcher: Dispatcher, settings: Settings, messages: MessageService):
        self.bot = bot
        self.dp = dispatcher
        self.settings = settings
        self.messages = messages

        # Инициализируются при старте
        self.db_service: Optional[DatabaseService] = None
        self.store: Optional[ProfileStore] = None
        self.controller: Optional[DialogueController] = None
        self._runner: Optional[web.AppRunner] = None

        self._shutdown_event = asyncio.Event()

    def setup_signal_handlers(self):
        """Настроить обработчики сигналов для graceful shutdown"""
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"🛑 Received signal {sig}, initiating graceful shutdown...")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

        logger.info("📡 Signal handlers configured (SIGINT, SIGTERM)")

    def request_shutdown(self):
        self._shutdown_event.set()

    async def initialize_storage(self) -> ProfileStore:
        """
        Поднять хранилище. Недоступная БД не роняет процесс:
        store.available = False и каждый запрос получает StorageUnavailable.
        """
        if self.settings.storage_backend == "memory":
            store = MemoryProfileStore()
            logger.info("🧠 Using in-memory profile store")
        else:
            self.db_service = DatabaseService(self.settings.database_url, self.settings.storage_timeout)
            connected = await self.db_service.initialize(
                min_size=self.settings.db_min_size,
                max_size=self.settings.db_max_size
            )
            store = PostgresProfileStore(self.db_service)

            if connected:
                try:
                    await store.create_tables()
                except StorageUnavailable as e:
                    error_tracker.track_error(e, e.error_code, context={'component': 'create_tables'})
            else:
                logger.warning("⚠️ Database unavailable - running in degraded mode")

        if self.settings.seed_placeholders and store.available:
            try:
                await store.seed(PLACEHOLDER_PROFILES)
            except StorageUnavailable as e:
                error_tracker.track_error(e, e.error_code, context={'component': 'seed'})

        return store

    async def initialize_services(self) -> DialogueController:
        """Собрать store → engine → controller"""
        self.store = await self.initialize_storage()

        machine = ConversationStateMachine()
        self.controller = DialogueController(
            store=self.store,
            engine=MatchEngine(self.store),
            machine=machine,
            messages=self.messages,
            notifier=TelegramNotifier(self.bot, self.messages),
            admin_ids=self.settings.admin_ids
        )
        logger.info("✅ DialogueController initialized")
        return self.controller

    async def run(self):
        """Запуск в режиме RUN_MODE с graceful shutdown"""
        try:
            self.setup_signal_handlers()

            if self.settings.run_mode == "polling":
                await self.start_polling()
            else:
                await self.start_webhook()

        except Exception as e:
            error_tracker.track_error(e, ErrorCode.BOT_INIT_ERROR, severity="CRITICAL")
            raise
        finally:
            await self.stop()

    async def start_polling(self):
        logger.info("Starting PIMS bot polling...")
        await self.bot.delete_webhook(drop_pending_updates=False)

        polling_task = asyncio.create_task(
            self.dp.start_polling(self.bot, handle_signals=False, close_bot_session=False)
        )

        await self._shutdown_event.wait()

        logger.info("🛑 Initiating graceful shutdown...")
        polling_task.cancel()
        try:
            await polling_task
        except asyncio.CancelledError:
            logger.info("✅ Polling task cancelled")

    def build_webhook_app(self) -> web.Application:
        """aiohttp приложение: POST - updates, GET - health"""
        path = self.settings.webhook_path

        app = web.Application()
        SimpleRequestHandler(
            dispatcher=self.dp,
            bot=self.bot,
            secret_token=self.settings.webhook_secret or None
        ).register(app, path=path)
        app.router.add_get(path, self.health)
        setup_application(app, self.dp, bot=self.bot)
        return app

    async def health(self, request: web.Request) -> web.Response:
        """GET health: 200 OK или 503 если хранилище недоступно"""
        if self.db_service is not None:
            healthy = await self.db_service.health_check()
        else:
            healthy = self.store is not None and self.store.available

        if healthy:
            return web.Response(text="OK")

        logger.warning("⚠️ Health check: storage unavailable")
        return web.Response(status=503, text="STORAGE UNAVAILABLE")

    async def start_webhook(self):
        webhook_url = self.settings.webhook_url
        if not webhook_url:
            raise RuntimeError("BASE_URL must be set for webhook mode")

        self._runner = web.AppRunner(self.build_webhook_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.settings.host, self.settings.port)
        await site.start()
        logger.info(f"🌐 Webhook server listening on {self.settings.host}:{self.settings.port}")

        await self.bot.set_webhook(
            webhook_url,
            secret_token=self.settings.webhook_secret or None
        )
        logger.info(f"🔗 Webhook registered: {webhook_url}")

        await self._shutdown_event.wait()
        logger.info("🛑 Initiating graceful shutdown...")

    async def stop(self):
        """Graceful остановка с освобождением всех ресурсов"""
        logger.info("🛑 Stopping bot gracefully...")

        try:
            if self._runner:
                await self._runner.cleanup()
                self._runner = None
                logger.info("✅ Webhook server stopped")

            await self.bot.session.close()
            logger.info("✅ Bot session closed")

            if self.db_service:
                await self.db_service.close()
                logger.info("✅ Database connection closed")

            logger.info("🎉 Bot stopped successfully")

        except Exception as e:
            logger.error(f"❌ Error during shutdown: {e}", exc_info=True)
