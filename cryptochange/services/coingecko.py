"""
Клиент CoinGecko API
Получает цены BTC, LTC и XMR в USD через публичное API
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple
import time

import httpx

from cryptochange.config.settings import ConverterConfig
from cryptochange.errors import FetchError
from cryptochange.models import CRYPTO_CURRENCIES, Currency, PriceSnapshot
from cryptochange.utils.logger import log_api_call, log_function

logger = logging.getLogger(__name__)


@dataclass
class ApiHealth:
    """Статус здоровья API"""
    latency_ms: float
    http_code: int
    is_available: bool
    last_update: datetime
    error_count: int = 0
    last_error: Optional[str] = None


class CoinGeckoClient:
    """Клиент для эндпоинта /simple/price"""

    def __init__(
        self,
        url: str = None,
        timeout: float = None,
        user_agent: str = None,
        transport: httpx.AsyncBaseTransport = None,
        clock=time.time
    ):
        self.url = url or ConverterConfig.SIMPLE_PRICE_URL
        self.timeout = httpx.Timeout(timeout if timeout is not None else ConverterConfig.REQUEST_TIMEOUT)
        self.headers = {
            "Accept": "application/json",
            "User-Agent": user_agent or ConverterConfig.USER_AGENT,
        }
        self._transport = transport
        self._clock = clock
        self.health = ApiHealth(
            latency_ms=0.0,
            http_code=0,
            is_available=True,
            last_update=datetime.now()
        )

    @staticmethod
    def request_params() -> Dict[str, str]:
        return {
            "ids": ",".join(c.coin_id for c in CRYPTO_CURRENCIES),
            "vs_currencies": "usd",
        }

    async def _make_request(self) -> Tuple[Dict, float]:
        """Выполняет один HTTP-запрос без повторов, возвращает тело и latency"""
        start_time = asyncio.get_running_loop().time()

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport
            ) as client:
                response = await client.get(self.url, params=self.request_params())
                latency_ms = (asyncio.get_running_loop().time() - start_time) * 1000

                self.health.http_code = response.status_code
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            self._record_error(start_time, f"HTTP {e.response.status_code}")
            raise FetchError(f"HTTP {e.response.status_code}", status_code=e.response.status_code) from e
        except httpx.TimeoutException as e:
            self._record_error(start_time, f"timeout: {e}")
            raise FetchError(f"timeout after {self.timeout.read}s") from e
        except httpx.HTTPError as e:
            self._record_error(start_time, f"transport: {e}")
            raise FetchError(f"transport error: {e}") from e
        except ValueError as e:
            self._record_error(start_time, f"invalid JSON: {e}")
            raise FetchError("invalid JSON body") from e

        self.health.latency_ms = latency_ms
        self.health.is_available = True
        self.health.last_update = datetime.now()
        self.health.error_count = 0
        self.health.last_error = None
        log_api_call(logger, "coingecko", "simple/price", latency_ms)

        return data, latency_ms

    def _record_error(self, start_time: float, error_msg: str):
        latency_ms = (asyncio.get_running_loop().time() - start_time) * 1000

        self.health.error_count += 1
        self.health.last_error = error_msg
        self.health.last_update = datetime.now()
        self.health.is_available = False
        log_api_call(logger, "coingecko", "simple/price", latency_ms, error=error_msg)

    @log_function
    async def fetch_prices(self) -> PriceSnapshot:
        """
        Получает полный снимок цен

        Raises:
            FetchError: статус не 2xx, ошибка сети, таймаут или неполное тело ответа
        """
        data, _ = await self._make_request()

        try:
            prices = self._parse_prices(data)
        except FetchError as e:
            self.health.error_count += 1
            self.health.last_error = e.reason
            self.health.is_available = False
            logger.error(f"CoinGecko returned malformed body: {e.reason}")
            raise

        return PriceSnapshot(prices=prices, fetched_at=self._clock())

    def _parse_prices(self, data) -> Dict[Currency, Decimal]:
        """Разбирает {bitcoin: {usd: N}, ...}; лишние поля игнорируются"""
        if not isinstance(data, dict):
            raise FetchError(f"unexpected body type {type(data).__name__}")

        prices = {}
        for currency in CRYPTO_CURRENCIES:
            entry = data.get(currency.coin_id)
            if not isinstance(entry, dict) or "usd" not in entry:
                raise FetchError(f"missing price for {currency.coin_id}")
            prices[currency] = self._to_price(currency, entry["usd"])

        return prices

    def _to_price(self, currency: Currency, value) -> Decimal:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise FetchError(f"{currency.coin_id}.usd is not a number: {value!r}")
        price = Decimal(str(value))
        if not price.is_finite() or price < 0:
            raise FetchError(f"{currency.coin_id}.usd is out of range: {value!r}")
        return price

    def get_health(self) -> ApiHealth:
        """Возвращает статус здоровья API"""
        return self.health
