"""
Message Service

Все тексты бота: JSON шаблоны по локалям + Jinja2 подстановка
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, Template, TemplateSyntaxError

logger = logging.getLogger(__name__)

# Telegram ограничивает длину сообщения
MAX_MESSAGE_LENGTH = 4096


class MessageService:
    """Централизованный сервис сообщений"""

    def __init__(self, templates_dir: Optional[str] = None, locale: str = 'ru'):
        if templates_dir is None:
            templates_dir = Path(__file__).parent / "templates"

        self.templates_dir = Path(templates_dir)
        self.locale = locale

        self.jinja_env = Environment(
            autoescape=False,  # parse_mode не используется, текст уходит как есть
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False
        )

        self._templates_cache: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._compiled: Dict[str, Template] = {}

        self._load_all_templates()

        logger.info(f"MessageService initialized with templates from {self.templates_dir}")

    def _load_all_templates(self):
        if not self.templates_dir.exists():
            logger.warning(f"Templates directory not found: {self.templates_dir}")
            return

        for locale_dir in self.templates_dir.iterdir():
            if locale_dir.is_dir():
                self._load_locale_templates(locale_dir.name)

    def _load_locale_templates(self, locale: str):
        """Загрузка шаблонов для конкретной локали"""
        locale_path = self.templates_dir / locale
        self._templates_cache[locale] = {}

        for json_file in sorted(locale_path.glob("*.json")):
            try:
                with json_file.open('r', encoding='utf-8') as f:
                    self._templates_cache[locale][json_file.stem] = json.load(f)
                logger.debug(f"Loaded templates for {locale}/{json_file.stem}")
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Failed to load {json_file}: {e}")

    def get_message(self, key: str, category: str = 'general',
                    locale: Optional[str] = None, **kwargs) -> str:
        """Получить сообщение с подстановкой переменных"""
        locale = locale or self.locale

        template_data = self._get_template_data(key, locale, category)
        if not template_data:
            logger.warning(f"Missing template: {locale}.{category}.{key}")
            return f"[MISSING: {locale}.{category}.{key}]"

        cache_key = f"{locale}.{category}.{key}"
        try:
            template = self._compiled.get(cache_key)
            if template is None:
                template = self.jinja_env.from_string(template_data.get('template', ''))
                self._compiled[cache_key] = template

            rendered = template.render(**kwargs).strip()

        except TemplateSyntaxError as e:
            logger.error(f"Template syntax error in {cache_key}: {e}")
            return f"[TEMPLATE_ERROR: {cache_key}]"

        if len(rendered) > MAX_MESSAGE_LENGTH:
            logger.warning(f"Message truncated: {cache_key}")
            rendered = rendered[:MAX_MESSAGE_LENGTH - 3] + "..."

        return rendered

    def get_button_text(self, key: str, locale: Optional[str] = None) -> str:
        """Получить текст кнопки"""
        return self.get_message(key, 'buttons', locale)

    def reload_templates(self):
        self._templates_cache.clear()
        self._compiled.clear()
        self._load_all_templates()
        logger.info("Templates reloaded")

    def get_available_locales(self) -> List[str]:
        return list(self._templates_cache.keys())

    def get_message_keys(self, category: str = 'general', locale: Optional[str] = None) -> List[str]:
        """Получить список ключей сообщений для категории"""
        category_data = self._templates_cache.get(locale or self.locale, {}).get(category, {})
        return list(category_data.keys())

    def _get_template_data(self, key: str, locale: str, category: str) -> Optional[Dict[str, Any]]:
        """Получить данные шаблона с fallback на ru"""
        template_data = self._templates_cache.get(locale, {}).get(category, {}).get(key)
        if template_data:
            return template_data

        if locale != 'ru':
            template_data = self._templates_cache.get('ru', {}).get(category, {}).get(key)
            if template_data:
                logger.debug(f"Using fallback ru for {locale}.{category}.{key}")
                return template_data

        return None
