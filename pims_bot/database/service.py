"""
Database Service - подключение к PostgreSQL

Отвечает ТОЛЬКО за:
- Connection pooling
- Статус доступности хранилища (degraded mode если БД не поднялась)
- Ограничение времени ожидания на каждую операцию
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

from ..core.error_handling import ErrorCode, StorageUnavailable, error_tracker

logger = logging.getLogger(__name__)

# Ошибки, после которых хранилище считается недоступным
UNAVAILABLE_ERRORS = (
    asyncio.TimeoutError,
    OSError,
    asyncpg.exceptions.InterfaceError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
)


class DatabaseService:
    """Сервис для работы с базой данных"""

    def __init__(self, dsn: str, timeout: float = 5.0):
        self.dsn = dsn
        self.timeout = timeout
        self.pool: Optional[asyncpg.Pool] = None

    @property
    def available(self) -> bool:
        return self.pool is not None

    async def initialize(self, min_size: int = 1, max_size: int = 10) -> bool:
        """Инициализация connection pool. False = degraded mode."""

        try:
            self.pool = await asyncio.wait_for(
                asyncpg.create_pool(
                    dsn=self.dsn,
                    min_size=min_size,
                    max_size=max_size,
                    max_inactive_connection_lifetime=300,
                    command_timeout=self.timeout
                ),
                timeout=self.timeout * 2
            )

            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")

            logger.info("✅ Connected to database")
            return True

        except Exception as e:
            logger.error(f"❌ Failed to initialize database pool: {e}")
            error_tracker.track_error(e, ErrorCode.DB_UNAVAILABLE, context={'component': 'initialize'})
            self.pool = None
            return False

    @asynccontextmanager
    async def get_connection(self):
        """Получить соединение из пула"""

        if not self.pool:
            raise StorageUnavailable("Database pool not initialized")

        try:
            async with self.pool.acquire(timeout=self.timeout) as connection:
                yield connection
        except asyncio.TimeoutError as e:
            logger.error(f"⏱ Database operation timed out after {self.timeout}s")
            raise StorageUnavailable("Database operation timed out", ErrorCode.DB_TIMEOUT) from e
        except UNAVAILABLE_ERRORS as e:
            logger.error(f"Database connection error: {e}")
            raise StorageUnavailable(f"Database unavailable: {e}") from e

    @asynccontextmanager
    async def transaction(self):
        """Соединение внутри одной транзакции (all-or-nothing)"""

        async with self.get_connection() as connection:
            async with connection.transaction():
                yield connection

    async def fetch_value(self, query: str, *args):
        async with self.get_connection() as conn:
            return await conn.fetchval(query, *args)

    async def fetch_one(self, query: str, *args):
        """Получить одну запись"""

        async with self.get_connection() as conn:
            return await conn.fetchrow(query, *args)

    async def fetch_all(self, query: str, *args):
        """Получить все записи"""

        async with self.get_connection() as conn:
            return await conn.fetch(query, *args)

    async def execute(self, query: str, *args):
        """Выполнить команду (INSERT/UPDATE/DELETE)"""

        async with self.get_connection() as conn:
            return await conn.execute(query, *args)

    async def close(self):
        """Закрытие пула соединений"""

        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database pool closed")

    async def health_check(self) -> bool:
        """Проверка работоспособности БД"""

        try:
            return await self.fetch_value("SELECT 1") == 1
        except StorageUnavailable as e:
            logger.error(f"Database health check failed: {e}")
            return False
