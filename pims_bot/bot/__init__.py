"""
Telegram interface: aiogram handlers, keyboards, middleware, lifecycle
"""

from .controller import PimsBotController
from .handler_registry import HandlerRegistry
from .lifecycle import BotLifecycle
from .notifier import TelegramNotifier

__all__ = [
    "PimsBotController",
    "HandlerRegistry",
    "BotLifecycle",
    "TelegramNotifier",
]
