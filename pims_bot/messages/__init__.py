"""
PIMS Messages

Все пользовательские тексты бота в JSON шаблонах (ru)
"""

from typing import Optional

from .service import MessageService

_message_service: Optional[MessageService] = None


def get_message_service(locale: str = 'ru') -> MessageService:
    """Получить синглтон MessageService"""
    global _message_service
    if _message_service is None:
        _message_service = MessageService(locale=locale)
    return _message_service


__all__ = [
    'MessageService',
    'get_message_service',
]
