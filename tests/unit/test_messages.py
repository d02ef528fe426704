"""
Unit Tests: MessageService + keyboards
"""

import json

import pytest
from aiogram.types import ReplyKeyboardMarkup, ReplyKeyboardRemove

from pims_bot.bot.keyboards import build_keyboard, button_choices
from pims_bot.messages import MessageService
from pims_bot.services import Keyboard


@pytest.fixture
def custom_templates(tmp_path):
    ru = tmp_path / "ru"
    ru.mkdir()
    (ru / "general.json").write_text(json.dumps({
        "hello": {"template": "Привет, {{ name }}!"},
        "broken": {"template": "{% if %}"},
        "long": {"template": "{{ body }}"},
    }), encoding="utf-8")
    en = tmp_path / "en"
    en.mkdir()
    (en / "general.json").write_text(json.dumps({
        "hello": {"template": "Hi, {{ name }}!"},
    }), encoding="utf-8")
    return MessageService(templates_dir=str(tmp_path), locale="ru")


# ============================================================================
# RENDERING
# ============================================================================

def test_render_with_variables(custom_templates):
    assert custom_templates.get_message("hello", name="Аня") == "Привет, Аня!"
    assert custom_templates.get_message("hello", locale="en", name="Ann") == "Hi, Ann!"


def test_missing_key_is_visible(custom_templates):
    assert custom_templates.get_message("nope", "general") == "[MISSING: ru.general.nope]"


def test_locale_falls_back_to_ru(custom_templates):
    custom_templates.reload_templates()
    assert custom_templates.get_message("long", locale="en", body="x") == "x"
    assert sorted(custom_templates.get_available_locales()) == ["en", "ru"]


def test_template_syntax_error(custom_templates):
    assert custom_templates.get_message("broken") == "[TEMPLATE_ERROR: ru.general.broken]"


def test_long_message_truncated(custom_templates):
    text = custom_templates.get_message("long", body="я" * 5000)

    assert len(text) == 4096
    assert text.endswith("...")


# ============================================================================
# BUNDLED TEMPLATES
# ============================================================================

def test_partner_card_optional_lines(messages):
    """
    Тест: строки «Творчество»/«Пол» появляются только при наличии значения
    """
    plain = messages.get_message(
        "partner_card", "meeting",
        name="Аня", bio="горы", contact="", creativity=None, gender_label=None
    )
    assert plain.splitlines() == [
        "🎉 Ваша встреча:",
        "",
        "Имя: Аня",
        "О себе: горы",
        "Контакт: (не указан)",
    ]

    love = messages.get_message(
        "partner_card", "meeting",
        name="Вера", bio="кино", contact="@vera", creativity=None, gender_label="Женский"
    )
    assert love.splitlines()[-2:] == ["Контакт: @vera", "Пол: Женский"]


def test_completed_summary(messages):
    text = messages.get_message(
        "completed", "registration",
        category_label="Сотворчество", name="Аня", bio="горы",
        contact="@anya", creativity="рисую комиксы", gender_label=None
    )

    assert text.splitlines() == [
        "✅ Регистрация завершена!",
        "Вы ищете: Сотворчество",
        "Имя: Аня",
        "О себе: горы",
        "Контакт: @anya",
        "➕ Творчество: рисую комиксы",
        "➕ Зачислена 1 встреча.",
    ]


def test_all_bundled_keys_render(messages):
    for category in ("general", "registration", "meeting", "buttons", "labels"):
        keys = messages.get_message_keys(category)
        assert keys, category
        for key in keys:
            text = messages.get_message(key, category, credits=1, amount=1)
            assert not text.startswith("[")


# ============================================================================
# KEYBOARDS
# ============================================================================

def test_build_keyboard_kinds(messages):
    assert build_keyboard(Keyboard.NONE, messages) is None
    assert isinstance(build_keyboard(Keyboard.REMOVE, messages), ReplyKeyboardRemove)

    meet = build_keyboard(Keyboard.MEET, messages)
    assert isinstance(meet, ReplyKeyboardMarkup)
    assert meet.keyboard[0][0].text == "🚀 Устроить встречу"
    assert not meet.one_time_keyboard

    categories = build_keyboard(Keyboard.CATEGORIES, messages)
    assert [row[0].text for row in categories.keyboard] == [
        "🤝 Дружба", "💡 Сотворчество", "❤️ Отношения"
    ]
    assert categories.one_time_keyboard


def test_button_choices_map_texts_to_canonical_labels(messages):
    choices = button_choices(messages)

    assert choices["🚀 устроить встречу"] == "request-meeting"
    assert choices["❤️ отношения"] == "love"
    assert choices["женский"] == "female"
