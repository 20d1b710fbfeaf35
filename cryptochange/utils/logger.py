"""
Централизованная система логирования
Обеспечивает единообразное логирование во всем проекте
"""

import asyncio
import logging
import sys
import time
from decimal import Decimal
from enum import Enum
from functools import wraps
from typing import Callable, Any

from cryptochange.errors import ConverterError


# ============================================================================
# Конфигурация логирования
# ============================================================================

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Цветные логи для консоли
COLORS = {
    'DEBUG': '\033[36m',      # Cyan
    'INFO': '\033[32m',       # Green
    'WARNING': '\033[33m',    # Yellow
    'ERROR': '\033[31m',      # Red
    'CRITICAL': '\033[35m',   # Magenta
    'RESET': '\033[0m'        # Reset
}


class ColoredFormatter(logging.Formatter):
    """Форматтер с цветным выводом"""

    def format(self, record):
        # Цвет только в копии записи, чтобы не испортить другие handlers
        record = logging.makeLogRecord(record.__dict__)
        levelname = record.levelname
        if levelname in COLORS:
            record.levelname = f"{COLORS[levelname]}{levelname}{COLORS['RESET']}"
        return super().format(record)


def setup_logging(level: str = "INFO", colored: bool = True):
    """
    Настраивает логирование для всего приложения

    Args:
        level: Уровень логирования (DEBUG, INFO, WARNING, ERROR)
        colored: Использовать цветной вывод
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if colored:
        formatter = ColoredFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    else:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []  # Очищаем предыдущие handlers
    root_logger.addHandler(console_handler)

    # Настройка для внешних библиотек (уменьшаем verbose)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('apscheduler').setLevel(logging.WARNING)

    logging.info(f"Logging configured: level={level}, colored={colored}")


# ============================================================================
# Декоратор для автоматического логирования
# ============================================================================

def log_function(func: Callable) -> Callable:
    """
    Логирует вызов функции или корутины: аргументы, длительность, ошибки.

    Ошибки конвертера (ConverterError) ожидаемы, их пишем предупреждением
    без traceback; все остальное пишем как error с traceback.
    """
    logger = logging.getLogger(func.__module__)
    name = func.__qualname__
    # У методов первый позиционный аргумент self
    parts = name.split(".")
    skip = 1 if len(parts) > 1 and parts[-2] != "<locals>" else 0

    def enter(args, kwargs) -> float:
        logger.debug(f"→ {name}({_format_args(args[skip:], kwargs)})")
        return time.perf_counter()

    def leave(started: float):
        logger.debug(f"← {name} completed in {_elapsed_ms(started):.0f}ms")

    def fail(started: float, error: Exception):
        message = f"✗ {name} failed after {_elapsed_ms(started):.0f}ms: {error}"
        if isinstance(error, ConverterError):
            logger.warning(message)
        else:
            logger.error(message, exc_info=True)

    if asyncio.iscoroutinefunction(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            started = enter(args, kwargs)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                fail(started, e)
                raise
            leave(started)
            return result

        return async_wrapper

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        started = enter(args, kwargs)
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            fail(started, e)
            raise
        leave(started)
        return result

    return sync_wrapper


# ============================================================================
# Вспомогательные функции
# ============================================================================

def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _format_args(args: tuple, kwargs: dict) -> str:
    """Форматирует аргументы функции для логирования"""
    args_strs = [_format_value(arg) for arg in args[:3]]
    kwargs_strs = [f"{key}={_format_value(value)}" for key, value in kwargs.items()]
    return ", ".join(args_strs + kwargs_strs)


def _format_value(value: Any) -> str:
    """Форматирует значение для вывода"""
    if isinstance(value, str):
        return f'"{value[:50]}…"' if len(value) > 50 else f'"{value}"'
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float, bool, Decimal)) or value is None:
        return str(value)
    if isinstance(value, type):
        return value.__name__
    return type(value).__name__


def log_error_with_context(logger, message: str, error: Exception, **context):
    """
    Логирует ошибку с дополнительным контекстом

    ConverterError (хранилище, API) пишется предупреждением без traceback:
    работа продолжается на значениях по умолчанию или из кэша.

    Args:
        logger: Logger instance
        message: Сообщение об ошибке
        error: Exception объект
        **context: Дополнительный контекст (операция, ключ хранилища и т.д.)
    """
    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
    full_message = f"{message} [{context_str}]: {error}"

    if isinstance(error, ConverterError):
        logger.warning(full_message)
    else:
        logger.error(full_message, exc_info=True)


# ============================================================================
# Мониторинг производительности
# ============================================================================

class PerformanceLogger:
    """Замеряет длительность блока; медленные и упавшие блоки видны в логе"""

    def __init__(self, logger: logging.Logger, operation: str, slow_ms: float = 1000):
        self.logger = logger
        self.operation = operation
        self.slow_ms = slow_ms
        self.start_time = None
        self.duration_ms = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug(f"⏱️ {self.operation} started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = _elapsed_ms(self.start_time)

        if exc_type is asyncio.CancelledError:
            self.logger.info(f"⏱️ {self.operation} cancelled after {self.duration_ms:.0f}ms")
        elif exc_type:
            self.logger.warning(
                f"⏱️ {self.operation} failed after {self.duration_ms:.0f}ms: {exc_val}"
            )
        elif self.duration_ms > self.slow_ms:
            self.logger.warning(
                f"⏱️ {self.operation} completed in {self.duration_ms:.0f}ms (SLOW!)"
            )
        else:
            self.logger.debug(
                f"⏱️ {self.operation} completed in {self.duration_ms:.0f}ms"
            )

        return False  # Не подавляем исключение


def log_api_call(logger, service: str, endpoint: str, duration_ms: float, error: str = None):
    """Логирует HTTP-запрос к внешнему API; ошибка API не фатальна"""
    if error is None:
        logger.info(f"🌐 API {service}/{endpoint}: {duration_ms:.0f}ms ✅")
    else:
        logger.warning(f"🌐 API {service}/{endpoint}: {duration_ms:.0f}ms ❌ {error}")
