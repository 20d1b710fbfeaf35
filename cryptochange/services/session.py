"""
Состояние экрана конвертера: пять полей ввода, активно не больше одного
"""

import logging
from typing import Dict, Optional

from cryptochange.errors import PersistenceError
from cryptochange.models import ConversionResult, Currency, PriceSnapshot, RateConfig, RefreshOutcome
from cryptochange.services.converter import convert, parse_decimal
from cryptochange.services.rate_store import RateStore

logger = logging.getLogger(__name__)


class ConverterSession:
    """
    Держит тексты полей, текущие цены и курсы; после каждого изменения
    любой из трех частей заново считает ConversionResult.
    """

    def __init__(self, store: RateStore, prices: PriceSnapshot = None):
        self.store = store
        self._fields: Dict[Currency, str] = {currency: "" for currency in Currency}
        self._rates: RateConfig = store.load_rates()
        self._prices: PriceSnapshot = prices if prices is not None else store.load_cached_prices()
        self._result = ConversionResult()

    @property
    def fields(self) -> Dict[Currency, str]:
        return dict(self._fields)

    @property
    def active(self) -> Optional[Currency]:
        for currency, text in self._fields.items():
            if text:
                return currency
        return None

    @property
    def rates(self) -> RateConfig:
        return self._rates

    @property
    def prices(self) -> PriceSnapshot:
        return self._prices

    @property
    def result(self) -> ConversionResult:
        return self._result

    def _recompute(self) -> ConversionResult:
        active = self.active
        amount = self._fields[active] if active else None
        self._result = convert(active, amount, self._prices, self._rates)
        return self._result

    def edit(self, currency: Currency, text: str) -> ConversionResult:
        """Ввод в поле currency; остальные четыре поля очищаются"""
        text = text or ""
        if not currency.is_crypto:
            text = text.replace(',', '.')

        for other in Currency:
            self._fields[other] = ""
        self._fields[currency] = text

        return self._recompute()

    def clear(self) -> ConversionResult:
        for currency in Currency:
            self._fields[currency] = ""
        return self._recompute()

    def apply_snapshot(self, snapshot: PriceSnapshot) -> ConversionResult:
        self._prices = snapshot
        return self._recompute()

    def apply_outcome(self, outcome: RefreshOutcome) -> ConversionResult:
        """Обработчик для RefreshScheduler.subscribe"""
        if outcome.notice:
            logger.warning(outcome.notice)
        return self.apply_snapshot(outcome.snapshot)

    def save_rates(self, byn_per_usd, rub_per_usd, markup) -> ConversionResult:
        """
        Сохраняет курсы из диалога настроек

        Raises:
            ParseError: одно из значений не число
            ValidationError: одно из значений <= 0; прежние курсы остаются
        """
        rates = RateConfig(
            byn_per_usd=parse_decimal(byn_per_usd),
            rub_per_usd=parse_decimal(rub_per_usd),
            markup=parse_decimal(markup),
        ).validate()

        try:
            self.store.save_rates(rates)
        except PersistenceError as e:
            logger.warning(f"Rates applied but not persisted: {e}")

        self._rates = rates
        return self._recompute()
