"""Partner notifications through the Telegram Bot API."""

import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from ..core.error_handling import NotificationDeliveryFailure
from ..messages import MessageService
from ..services.dialogue import Keyboard
from .keyboards import build_keyboard

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Доставка сообщения второму пользователю (матч-партнёру)"""

    def __init__(self, bot: Bot, messages: MessageService):
        self.bot = bot
        self.messages = messages

    async def notify(self, user_id: int, text: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=user_id,
                text=text,
                reply_markup=build_keyboard(Keyboard.MEET, self.messages)
            )
        except TelegramAPIError as e:
            logger.warning(f"📭 Notification to {user_id} not delivered: {e}")
            raise NotificationDeliveryFailure(
                f"Notification not delivered: {e}",
                user_id=user_id
            ) from e

        logger.info(f"📨 Match notification delivered to {user_id}")
