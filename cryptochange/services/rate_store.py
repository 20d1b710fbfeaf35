"""
Хранилище настроек курсов и последних известных цен

Ключи:
    rate_byn_per_usd, rate_rub_per_usd, markup_multiplier: RateConfig
    last_success_epoch: время последнего успешного обновления (epoch, сек.)
    price_btc_usd, price_ltc_usd, price_xmr_usd: кэш цен

Числа хранятся строками (str(Decimal)), чтобы не терять точность.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, Optional

import redis

from cryptochange.config.settings import ConverterConfig
from cryptochange.errors import PersistenceError
from cryptochange.models import CRYPTO_CURRENCIES, Currency, PriceSnapshot, RateConfig
from cryptochange.utils.logger import log_function

logger = logging.getLogger(__name__)

KEY_BYN = "rate_byn_per_usd"
KEY_RUB = "rate_rub_per_usd"
KEY_MARKUP = "markup_multiplier"
KEY_LAST_SUCCESS = "last_success_epoch"

PRICE_KEYS = {
    Currency.BTC: "price_btc_usd",
    Currency.LTC: "price_ltc_usd",
    Currency.XMR: "price_xmr_usd",
}


def _positive_decimal(raw) -> Optional[Decimal]:
    """Значение из хранилища -> Decimal > 0 или None"""
    if raw is None:
        return None
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


class RateStore(ABC):
    """
    Key-value хранилище, переживающее перезапуск процесса.

    Наследники реализуют только чтение/запись набора ключей; вся логика
    значений по умолчанию, валидации и деградации при сбоях живет здесь.
    Ошибки чтения не пробрасываются (возвращаются значения по умолчанию),
    ошибки записи пробрасываются как PersistenceError.
    """

    @abstractmethod
    def _read_values(self, keys: Iterable[str]) -> Dict[str, str]:
        """Читает ключи; отсутствующие ключи просто не попадают в результат"""

    @abstractmethod
    def _write_values(self, values: Dict[str, str]):
        """Записывает все ключи одной атомарной операцией"""

    def _safe_read(self, keys: Iterable[str], operation: str) -> Dict[str, str]:
        try:
            return self._read_values(keys)
        except PersistenceError as e:
            logger.warning(f"{operation}: storage unavailable, using defaults: {e}")
            return {}

    # ---------- RateConfig ----------

    def load_rates(self) -> RateConfig:
        """Сохраненные курсы или значения по умолчанию для отсутствующих полей"""
        defaults = RateConfig.default()
        values = self._safe_read((KEY_BYN, KEY_RUB, KEY_MARKUP), "load_rates")

        return RateConfig(
            byn_per_usd=_positive_decimal(values.get(KEY_BYN)) or defaults.byn_per_usd,
            rub_per_usd=_positive_decimal(values.get(KEY_RUB)) or defaults.rub_per_usd,
            markup=_positive_decimal(values.get(KEY_MARKUP)) or defaults.markup,
        )

    def save_rates(self, rates: RateConfig):
        """
        Сохраняет курсы

        Raises:
            ValidationError: одно из значений <= 0, ничего не записано
            PersistenceError: хранилище недоступно
        """
        rates.validate()
        self._write_values({
            KEY_BYN: str(rates.byn_per_usd),
            KEY_RUB: str(rates.rub_per_usd),
            KEY_MARKUP: str(rates.markup),
        })
        logger.info(
            f"Rates saved: byn={rates.byn_per_usd}, rub={rates.rub_per_usd}, markup={rates.markup}"
        )

    # ---------- кэш цен ----------

    def load_cached_prices(self) -> PriceSnapshot:
        """Последние известные цены; может быть пустым или неполным"""
        values = self._safe_read(PRICE_KEYS.values(), "load_cached_prices")

        prices = {}
        for currency in CRYPTO_CURRENCIES:
            price = _positive_decimal(values.get(PRICE_KEYS[currency]))
            if price is not None:
                prices[currency] = price

        return PriceSnapshot(prices=prices)

    def save_cached_prices(self, snapshot: PriceSnapshot):
        values = {
            PRICE_KEYS[currency]: str(price)
            for currency, price in snapshot.prices.items()
            if currency in PRICE_KEYS
        }
        if values:
            self._write_values(values)

    # ---------- время последнего успеха ----------

    def load_last_success(self) -> Optional[float]:
        values = self._safe_read((KEY_LAST_SUCCESS,), "load_last_success")
        raw = values.get(KEY_LAST_SUCCESS)
        if raw is None:
            return None
        try:
            ts = float(raw)
        except (TypeError, ValueError):
            return None
        return ts if ts > 0 else None

    def save_last_success(self, ts: float):
        self._write_values({KEY_LAST_SUCCESS: repr(float(ts))})


class JsonFileRateStore(RateStore):
    """Один JSON-документ; запись через временный файл и os.replace"""

    def __init__(self, path):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _load_document(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            raise PersistenceError(f"read {self.path}", e) from e

        if not isinstance(document, dict):
            raise PersistenceError(f"read {self.path}", "not a JSON object")
        return document

    def _read_values(self, keys: Iterable[str]) -> Dict[str, str]:
        with self._lock:
            document = self._load_document()
        return {key: document[key] for key in keys if key in document}

    def _write_values(self, values: Dict[str, str]):
        with self._lock:
            try:
                document = self._load_document()
            except PersistenceError as e:
                logger.warning(f"Overwriting unreadable prefs file: {e}")
                document = {}
            document.update(values)

            tmp_path = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(
                    dir=self.path.parent, prefix=".prefs-", suffix=".tmp"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, ensure_ascii=False, indent=2, sort_keys=True)
                os.replace(tmp_path, self.path)
            except OSError as e:
                if tmp_path and os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise PersistenceError(f"write {self.path}", e) from e


class RedisRateStore(RateStore):
    """Один Redis hash; несколько полей пишутся одним HSET"""

    def __init__(self, client: redis.Redis, key: str = None):
        self.client = client
        self.key = key or ConverterConfig.REDIS_KEY

    def _read_values(self, keys: Iterable[str]) -> Dict[str, str]:
        keys = list(keys)
        try:
            raw = self.client.hmget(self.key, keys)
        except redis.RedisError as e:
            raise PersistenceError(f"HMGET {self.key}", e) from e

        values = {}
        for key, value in zip(keys, raw):
            if value is None:
                continue
            # Клиент без decode_responses=True возвращает bytes
            if isinstance(value, bytes):
                value = value.decode("utf-8", errors="replace")
            values[key] = value
        return values

    def _write_values(self, values: Dict[str, str]):
        try:
            self.client.hset(self.key, mapping=values)
        except redis.RedisError as e:
            raise PersistenceError(f"HSET {self.key}", e) from e


class InMemoryRateStore(RateStore):
    """Хранилище в памяти процесса (тесты и аварийный режим)"""

    def __init__(self, initial: Dict[str, str] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def _read_values(self, keys: Iterable[str]) -> Dict[str, str]:
        with self._lock:
            return {key: self._data[key] for key in keys if key in self._data}

    def _write_values(self, values: Dict[str, str]):
        with self._lock:
            self._data.update(values)


@log_function
def build_rate_store(cfg=ConverterConfig) -> RateStore:
    """Создает хранилище по STORE_BACKEND (json | redis | memory)"""
    backend = cfg.STORE_BACKEND

    if backend == "json":
        return JsonFileRateStore(cfg.STORE_PATH)

    if backend == "redis":
        client = redis.Redis(
            host=cfg.REDIS_HOST,
            port=cfg.REDIS_PORT,
            db=cfg.REDIS_DB,
            decode_responses=True
        )
        try:
            client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis {cfg.REDIS_HOST}:{cfg.REDIS_PORT} unavailable, using in-memory store: {e}")
            return InMemoryRateStore()
        return RedisRateStore(client, cfg.REDIS_KEY)

    if backend == "memory":
        return InMemoryRateStore()

    raise ValueError(f"Unknown STORE_BACKEND: {backend}")
