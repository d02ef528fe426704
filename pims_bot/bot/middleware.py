"""
Conversation Logger Middleware - логирование переходов диалога

Для каждого update пишет шаг диалога пользователя до и после handler.
"""

import logging
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import Message

from ..services.conversation import ConversationStateMachine

logger = logging.getLogger(__name__)


class ConversationLoggerMiddleware(BaseMiddleware):
    """
    Middleware для логирования dialogue step transitions

    Логирует:
    - Текущий шаг до выполнения handler
    - Изменение шага после выполнения handler
    """

    def __init__(self, machine: ConversationStateMachine):
        self.machine = machine

    async def __call__(
        self,
        handler: Callable[[Message, Dict[str, Any]], Awaitable[Any]],
        event: Message,
        data: Dict[str, Any]
    ) -> Any:
        user_id = None
        if getattr(event, 'from_user', None):
            user_id = event.from_user.id

        if user_id is None:
            return await handler(event, data)

        before = self.machine.get(user_id).step
        logger.debug(
            f"🔄 Dialogue step [BEFORE]: user={user_id}, step={before.value}",
            extra={'user_id': user_id, 'step': before.value}
        )

        result = await handler(event, data)

        after = self.machine.get(user_id).step
        if after != before:
            logger.info(
                f"✨ Dialogue step [CHANGED]: user={user_id}, {before.value} → {after.value}",
                extra={'user_id': user_id, 'step': after.value}
            )

        return result
