import os
from pathlib import Path
from typing import Dict, Any

from dotenv import load_dotenv

load_dotenv()


class ConverterConfig:
    """Конфигурация конвертера"""

    # CoinGecko API
    API_BASE_URL = os.getenv("COINGECKO_API_BASE", "https://api.coingecko.com/api/v3")
    SIMPLE_PRICE_URL = f"{API_BASE_URL}/simple/price"
    REQUEST_TIMEOUT = float(os.getenv("COINGECKO_TIMEOUT", 8))  # секунды
    USER_AGENT = os.getenv("COINGECKO_USER_AGENT", "CurrencyConverter/1.0")

    # Настройки планировщика
    REFRESH_INTERVAL = int(os.getenv("REFRESH_INTERVAL", 180))  # секунды
    TICK_INTERVAL = int(os.getenv("TICK_INTERVAL", 1))  # секунды

    # Хранилище настроек и кэша цен
    STORE_BACKEND = os.getenv("STORE_BACKEND", "json").lower()  # json | redis | memory
    STORE_PATH = os.getenv("STORE_PATH", str(Path.home() / ".cryptochange" / "prefs.json"))
    REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB = int(os.getenv("REDIS_DB", 0))
    REDIS_KEY = os.getenv("REDIS_KEY", "cryptochange:prefs")

    # Курсы по умолчанию (первый запуск)
    DEFAULT_BYN_PER_USD = os.getenv("DEFAULT_BYN_PER_USD", "3.0")
    DEFAULT_RUB_PER_USD = os.getenv("DEFAULT_RUB_PER_USD", "90.0")
    DEFAULT_MARKUP = os.getenv("DEFAULT_MARKUP", "1.10")

    # Настройки логирования
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_COLORED = os.getenv("LOG_COLORED", "true").lower() == "true"

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Возвращает сводку конфигурации"""
        return {
            "simple_price_url": cls.SIMPLE_PRICE_URL,
            "request_timeout": cls.REQUEST_TIMEOUT,
            "user_agent": cls.USER_AGENT,
            "refresh_interval": cls.REFRESH_INTERVAL,
            "tick_interval": cls.TICK_INTERVAL,
            "store_backend": cls.STORE_BACKEND,
            "store_path": cls.STORE_PATH,
            "redis": f"{cls.REDIS_HOST}:{cls.REDIS_PORT}/{cls.REDIS_DB} {cls.REDIS_KEY}",
            "default_rates": {
                "byn_per_usd": cls.DEFAULT_BYN_PER_USD,
                "rub_per_usd": cls.DEFAULT_RUB_PER_USD,
                "markup": cls.DEFAULT_MARKUP,
            },
            "log_level": cls.LOG_LEVEL,
        }


# Глобальный экземпляр конфигурации
config = ConverterConfig()
