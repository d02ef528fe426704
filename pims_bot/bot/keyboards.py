"""
Keyboards - reply клавиатуры бота

Тексты кнопок берутся из buttons.json, значения кнопок - канонические
метки MenuChoice (friendship, collab, love, male, female, request-meeting).
"""

import logging
from typing import Dict, List, Optional, Union

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove

from ..messages import MessageService
from ..services.dialogue import MENU_REQUEST_MEETING, Keyboard

logger = logging.getLogger(__name__)

ReplyMarkup = Union[ReplyKeyboardMarkup, ReplyKeyboardRemove]

# Раскладка: одна кнопка в ряд, как в исходном меню
_LAYOUTS = {
    Keyboard.MEET: [["meet"]],
    Keyboard.CATEGORIES: [["friendship"], ["collab"], ["love"]],
    Keyboard.GENDERS: [["male"], ["female"]],
}

_ONE_TIME = {Keyboard.CATEGORIES, Keyboard.GENDERS}

# button key → MenuChoice.choice
BUTTON_CHOICES = {
    "meet": MENU_REQUEST_MEETING,
    "friendship": "friendship",
    "collab": "collab",
    "love": "love",
    "male": "male",
    "female": "female",
}


def build_keyboard(kind: Keyboard, messages: MessageService) -> Optional[ReplyMarkup]:
    """
    Построить reply клавиатуру

    Returns:
        None для Keyboard.NONE (клавиатура не меняется)
    """
    if kind is Keyboard.NONE:
        return None
    if kind is Keyboard.REMOVE:
        return ReplyKeyboardRemove()

    rows: List[List[KeyboardButton]] = [
        [KeyboardButton(text=messages.get_button_text(key)) for key in row]
        for row in _LAYOUTS[kind]
    ]
    return ReplyKeyboardMarkup(
        keyboard=rows,
        resize_keyboard=True,
        one_time_keyboard=kind in _ONE_TIME
    )


def button_choices(messages: MessageService) -> Dict[str, str]:
    """Текст кнопки (lower-case) → каноническая метка выбора"""
    choices = {
        messages.get_button_text(key).strip().lower(): choice
        for key, choice in BUTTON_CHOICES.items()
    }
    logger.debug(f"📋 Menu buttons: {list(choices)}")
    return choices
