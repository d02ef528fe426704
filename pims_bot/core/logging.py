"""
Logging system for PIMS bot.
Structured JSON logging for the dialogue, matching and storage layers.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .config import Settings

# Поля из extra=..., которые попадают в JSON запись
EXTRA_FIELDS = (
    'user_id',
    'partner_id',
    'category',
    'step',
    'error_code',
    'context',
)


class JsonFormatter(logging.Formatter):
    """Formatter for structured JSON logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_entry, ensure_ascii=False, separators=(',', ':'), default=str)


def setup_logging(settings: Settings) -> None:
    """
    Настройка логирования для всего процесса.

    Console handler всегда, файловые handlers только при LOG_TO_FILE.
    """
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    if settings.debug:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    else:
        console_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(console_handler)

    if not settings.log_to_file:
        return

    log_dir = Path(settings.log_dir)
    (log_dir / "errors").mkdir(parents=True, exist_ok=True)

    app_handler = RotatingFileHandler(
        log_dir / "pims.log",
        maxBytes=20 * 1024 * 1024,  # 20MB
        backupCount=10,
        encoding='utf-8'
    )
    app_handler.setLevel(level)
    app_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(app_handler)

    error_handler = TimedRotatingFileHandler(
        log_dir / "errors" / "errors.log",
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(error_handler)


class LoggerMixin:
    """Mixin to add logging capabilities to any class"""

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, '_logger'):
            self._logger = logging.getLogger(f'pims.{self.__class__.__name__}')
        return self._logger

    def log_user_action(self, action: str, user_id: int, **kwargs):
        """Log user action with structured data"""
        extra = {
            'user_id': user_id,
            'context': kwargs
        }
        user_logger.info(f"User action: {action}", extra=extra)

    def log_bot_event(self, event: str, **kwargs):
        bot_logger.info(f"Bot event: {event}", extra={'context': kwargs})

    def log_error(self, error_code: str, message: str, user_id: Optional[int] = None, **kwargs):
        """Log error with structured information"""
        extra = {
            'error_code': error_code,
            'user_id': user_id,
            'context': kwargs
        }
        self.logger.error(f"Error {error_code}: {message}", extra=extra)

    def log_metric(self, metric_name: str, value: Any, **kwargs):
        extra = {'context': {'metric': metric_name, 'value': value, **kwargs}}
        match_logger.info(f"Metric: {metric_name}={value}", extra=extra)


bot_logger = logging.getLogger('pims.bot')
user_logger = logging.getLogger('pims.users')
match_logger = logging.getLogger('pims.match')
error_logger = logging.getLogger('pims.errors')


def get_logger(name: str = 'pims') -> logging.Logger:
    """Get logger instance by name"""
    return logging.getLogger(name)
