"""
Конвертация между BTC/LTC/XMR и BYN/RUB через USD
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from cryptochange.errors import ParseError
from cryptochange.models import (
    CRYPTO_CURRENCIES,
    FIAT_CURRENCIES,
    ConversionResult,
    Currency,
    PriceSnapshot,
    RateConfig,
)

logger = logging.getLogger(__name__)

Amount = Union[str, Decimal, int, float, None]


def parse_decimal(text) -> Decimal:
    """
    Разбирает число из произвольного ввода ("0,5", " 12.30 ")

    Raises:
        ParseError: пустая строка, мусор, NaN или бесконечность
    """
    if isinstance(text, bool):
        raise ParseError(text)
    if isinstance(text, Decimal):
        value = text
    else:
        normalized = str(text).strip().replace(',', '.')
        if not normalized:
            raise ParseError(text)
        try:
            value = Decimal(normalized)
        except (InvalidOperation, ValueError):
            raise ParseError(text)

    if not value.is_finite():
        raise ParseError(text)
    return value


def parse_amount(text: Amount) -> Optional[Decimal]:
    """Как parse_decimal, но нечитаемый ввод означает "суммы нет" (None)"""
    if text is None:
        return None
    try:
        return parse_decimal(text)
    except ParseError:
        return None


def _divide(numerator: Optional[Decimal], denominator: Optional[Decimal]) -> Optional[Decimal]:
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator


def convert(
    active: Optional[Currency],
    amount: Amount,
    prices: PriceSnapshot,
    rates: RateConfig
) -> ConversionResult:
    """
    Пересчитывает введенную сумму во все пять валют (и USD).

    Чистая функция: не меняет аргументы, не делает I/O и не бросает
    исключений. Все, что нельзя посчитать (нет суммы, нет нужной цены),
    возвращается как None и отображается заглушкой.
    """
    value = parse_amount(amount)
    if active is None or value is None:
        return ConversionResult(active=active)

    try:
        if active.is_crypto:
            return _convert_from_crypto(active, value, prices, rates)
        return _convert_from_fiat(active, value, prices, rates)
    except ArithmeticError as e:
        logger.warning(f"Conversion {active.value} {value} failed: {e}")
        return ConversionResult(active=active, amount=value)


def _convert_from_crypto(
    active: Currency,
    amount: Decimal,
    prices: PriceSnapshot,
    rates: RateConfig
) -> ConversionResult:
    price = prices.get(active)
    if price is None:
        # Без цены активной монеты не считается ни одна сумма
        return ConversionResult(active=active, amount=amount)

    usd = price * amount
    outputs = {
        Currency.BYN: usd * rates.byn_per_usd * rates.markup,
        Currency.RUB: usd * rates.rub_per_usd * rates.markup,
    }
    for coin in CRYPTO_CURRENCIES:
        outputs[coin] = amount if coin == active else _divide(usd, prices.get(coin))

    return _result(active, amount, usd, outputs)


def _convert_from_fiat(
    active: Currency,
    amount: Decimal,
    prices: PriceSnapshot,
    rates: RateConfig
) -> ConversionResult:
    usd = _divide(amount, rates.rate_for(active) * rates.markup)
    if usd is None:
        return ConversionResult(active=active, amount=amount)

    outputs = {}
    for coin in CRYPTO_CURRENCIES:
        outputs[coin] = _divide(usd, prices.get(coin))
    for fiat in FIAT_CURRENCIES:
        outputs[fiat] = amount if fiat == active else usd * rates.rate_for(fiat) * rates.markup

    return _result(active, amount, usd, outputs)


def _result(active, amount, usd, outputs) -> ConversionResult:
    return ConversionResult(
        active=active,
        amount=amount,
        btc=outputs[Currency.BTC],
        ltc=outputs[Currency.LTC],
        xmr=outputs[Currency.XMR],
        byn=outputs[Currency.BYN],
        rub=outputs[Currency.RUB],
        usd=usd,
    )
