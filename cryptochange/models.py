import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from cryptochange.config.settings import ConverterConfig
from cryptochange.errors import ValidationError

logger = logging.getLogger(__name__)

PLACEHOLDER = "—"
USD_DIGITS = 2


class Currency(Enum):
    BTC = "BTC"
    LTC = "LTC"
    XMR = "XMR"
    BYN = "BYN"
    RUB = "RUB"

    @property
    def is_crypto(self) -> bool:
        return self in CRYPTO_CURRENCIES

    @property
    def coin_id(self) -> Optional[str]:
        """Идентификатор монеты в CoinGecko"""
        return COINGECKO_IDS.get(self)

    @property
    def digits(self) -> int:
        """Количество знаков после запятой при отображении"""
        return DISPLAY_DIGITS[self]

    @classmethod
    def parse(cls, code: str) -> 'Currency':
        """Нормализует код валюты ('btc', ' BTC ') к Currency"""
        return cls(str(code).strip().upper())


CRYPTO_CURRENCIES = (Currency.BTC, Currency.LTC, Currency.XMR)
FIAT_CURRENCIES = (Currency.BYN, Currency.RUB)

COINGECKO_IDS = {
    Currency.BTC: "bitcoin",
    Currency.LTC: "litecoin",
    Currency.XMR: "monero",
}

DISPLAY_DIGITS = {
    Currency.BTC: 8,
    Currency.LTC: 6,
    Currency.XMR: 6,
    Currency.BYN: 2,
    Currency.RUB: 2,
}


def format_amount(value: Optional[Decimal], digits: int) -> str:
    """Округляет сумму до digits знаков или возвращает заглушку"""
    if value is None or not value.is_finite():
        return PLACEHOLDER

    with localcontext() as ctx:
        # Точности контекста должно хватить на все цифры результата
        ctx.prec = max(ctx.prec, value.adjusted() + digits + 2)
        try:
            quantizer = Decimal(1).scaleb(-digits)
            return str(value.quantize(quantizer, rounding=ROUND_HALF_UP))
        except InvalidOperation:
            return PLACEHOLDER


FALLBACK_BYN_PER_USD = Decimal('3.0')
FALLBACK_RUB_PER_USD = Decimal('90.0')
FALLBACK_MARKUP = Decimal('1.10')


def _config_decimal(name: str, fallback: Decimal) -> Decimal:
    """Значение ConverterConfig.<name> или fallback, если оно не число > 0"""
    raw = getattr(ConverterConfig, name)
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        value = None

    if value is None or not value.is_finite() or value <= 0:
        logger.warning(f"Invalid {name}={raw!r}, using {fallback}")
        return fallback
    return value


@dataclass(frozen=True)
class RateConfig:
    byn_per_usd: Decimal
    rub_per_usd: Decimal
    markup: Decimal

    @classmethod
    def default(cls) -> 'RateConfig':
        return cls(
            byn_per_usd=_config_decimal("DEFAULT_BYN_PER_USD", FALLBACK_BYN_PER_USD),
            rub_per_usd=_config_decimal("DEFAULT_RUB_PER_USD", FALLBACK_RUB_PER_USD),
            markup=_config_decimal("DEFAULT_MARKUP", FALLBACK_MARKUP),
        )

    def validate(self) -> 'RateConfig':
        """Проверяет, что все три значения конечны и больше нуля"""
        for name in ("byn_per_usd", "rub_per_usd", "markup"):
            value = getattr(self, name)
            if not isinstance(value, Decimal) or not value.is_finite() or value <= 0:
                raise ValidationError(name, value)
        return self

    def rate_for(self, currency: Currency) -> Decimal:
        """Курс фиатной валюты за 1 USD (без наценки)"""
        if currency == Currency.BYN:
            return self.byn_per_usd
        if currency == Currency.RUB:
            return self.rub_per_usd
        raise ValueError(f"{currency.value} is not a fiat currency")


@dataclass(frozen=True)
class PriceSnapshot:
    """Цены монет в USD. Отсутствующая цена означает "неизвестно", а не ноль"""
    prices: Mapping[Currency, Decimal] = field(default_factory=dict)
    fetched_at: Optional[float] = None

    def __post_init__(self):
        # Снимок публикуется целиком, поэтому содержимое делаем неизменяемым
        object.__setattr__(self, "prices", MappingProxyType(dict(self.prices)))

    def get(self, currency: Currency) -> Optional[Decimal]:
        return self.prices.get(currency)

    @property
    def is_complete(self) -> bool:
        return all(c in self.prices for c in CRYPTO_CURRENCIES)

    @property
    def is_empty(self) -> bool:
        return not self.prices

    def as_dict(self) -> Dict[str, str]:
        return {c.value: str(p) for c, p in self.prices.items()}


@dataclass(frozen=True)
class ConversionResult:
    active: Optional[Currency] = None
    amount: Optional[Decimal] = None
    btc: Optional[Decimal] = None
    ltc: Optional[Decimal] = None
    xmr: Optional[Decimal] = None
    byn: Optional[Decimal] = None
    rub: Optional[Decimal] = None
    usd: Optional[Decimal] = None

    def get(self, currency: Currency) -> Optional[Decimal]:
        return getattr(self, currency.value.lower())

    @property
    def is_crypto_mode(self) -> bool:
        return self.active is not None and self.active.is_crypto

    def formatted(self) -> Dict[str, str]:
        """Все шесть сумм в виде строк для отображения"""
        out = {c.value: format_amount(self.get(c), c.digits) for c in Currency}
        out["USD"] = format_amount(self.usd, USD_DIGITS)
        return out


@dataclass(frozen=True)
class RefreshOutcome:
    success: bool
    snapshot: PriceSnapshot
    finished_at: float
    error: Optional[str] = None
    notice: Optional[str] = None
