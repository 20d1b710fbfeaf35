"""
Тесты состояния экрана: одно активное поле, пересчет после каждого изменения
"""

import itertools
import pytest
from decimal import Decimal
from unittest.mock import Mock

from cryptochange.errors import ParseError, PersistenceError, ValidationError
from cryptochange.models import Currency, PriceSnapshot, RateConfig, RefreshOutcome
from cryptochange.services.rate_store import InMemoryRateStore
from cryptochange.services.session import ConverterSession
from cryptochange.utils.humanize import format_elapsed


PRICES = PriceSnapshot(prices={
    Currency.BTC: Decimal('60000'),
    Currency.LTC: Decimal('80'),
    Currency.XMR: Decimal('150'),
})


@pytest.fixture
def session():
    return ConverterSession(InMemoryRateStore(), prices=PRICES)


class TestActiveField:
    """Тесты "последнее редактирование побеждает" """

    def test_edit_clears_other_fields(self, session):
        session.edit(Currency.BTC, "0.5")
        session.edit(Currency.RUB, "1000")

        assert session.fields[Currency.BTC] == ""
        assert session.fields[Currency.RUB] == "1000"
        assert session.active == Currency.RUB

    @pytest.mark.parametrize("order", list(itertools.permutations(Currency)))
    def test_exactly_one_active_for_every_edit_order(self, session, order):
        for currency in order:
            session.edit(currency, "1")

            non_empty = [c for c, text in session.fields.items() if text]
            assert non_empty == [currency]
            assert session.active == currency
            assert session.result.active == currency

    def test_empty_edit_leaves_nothing_active(self, session):
        session.edit(Currency.LTC, "3")
        result = session.edit(Currency.LTC, "")

        assert session.active is None
        assert all(value == "—" for value in result.formatted().values())

    def test_clear(self, session):
        session.edit(Currency.XMR, "2")
        session.clear()

        assert session.active is None
        assert all(text == "" for text in session.fields.values())

    def test_fiat_comma_is_normalized(self, session):
        session.edit(Currency.BYN, "1000,5")

        assert session.fields[Currency.BYN] == "1000.5"
        assert session.result.amount == Decimal('1000.5')


class TestRecompute:
    """Тесты пересчета при смене цен и курсов"""

    def test_initial_state_from_store(self):
        store = InMemoryRateStore()
        store.save_cached_prices(PRICES)
        store.save_rates(RateConfig(Decimal('3.2'), Decimal('95'), Decimal('1.0')))

        session = ConverterSession(store)

        assert session.prices.prices == PRICES.prices
        assert session.rates.byn_per_usd == Decimal('3.2')

    def test_new_snapshot_recomputes(self, session):
        session.edit(Currency.BTC, "1")
        before = session.result.usd

        session.apply_snapshot(PriceSnapshot(prices={Currency.BTC: Decimal('61000')}))

        assert before == Decimal('60000')
        assert session.result.usd == Decimal('61000')

    def test_failed_outcome_applies_cached_snapshot(self, session):
        session.edit(Currency.BTC, "1")
        cached = PriceSnapshot(prices={Currency.BTC: Decimal('58000')})

        session.apply_outcome(RefreshOutcome(
            success=False, snapshot=cached, finished_at=0.0,
            error="HTTP 503", notice="Не удалось обновить курсы"
        ))

        assert session.result.usd == Decimal('58000')

    def test_save_rates_recomputes_and_persists(self, session):
        session.edit(Currency.BTC, "0.5")

        result = session.save_rates("3,0", "90", "1.2")

        assert result.byn == Decimal('108000')
        assert session.store.load_rates().markup == Decimal('1.2')

    @pytest.mark.parametrize("values", [("3.0", "90", "0"), ("-1", "90", "1.1")])
    def test_save_rates_rejects_non_positive(self, session, values):
        before = session.rates

        with pytest.raises(ValidationError):
            session.save_rates(*values)

        assert session.rates == before
        assert session.store.load_rates() == before

    def test_save_rates_rejects_garbage(self, session):
        with pytest.raises(ParseError):
            session.save_rates("abc", "90", "1.1")

    def test_save_rates_survives_storage_failure(self):
        store = Mock(wraps=InMemoryRateStore())
        store.save_rates.side_effect = PersistenceError("write", "read-only")
        session = ConverterSession(store, prices=PRICES)

        session.save_rates("3.5", "100", "1.0")

        assert session.rates.byn_per_usd == Decimal('3.5')


class TestElapsedLabel:
    """Тесты подписи "сколько прошло" """

    @pytest.mark.parametrize("seconds, expected", [
        (None, "Курсы ещё не обновлялись"),
        (0, "Попытка обновления: 0 сек. назад"),
        (59, "Попытка обновления: 59 сек. назад"),
        (60, "Попытка обновления: 1 мин. назад"),
        (3599, "Попытка обновления: 59 мин. назад"),
        (3600, "Попытка обновления: 1 ч. назад"),
        (86_399, "Попытка обновления: 23 ч. назад"),
        (86_400, "Попытка обновления: 1 дн. назад"),
        (3 * 86_400 + 5, "Попытка обновления: 3 дн. назад"),
    ])
    def test_format_elapsed(self, seconds, expected):
        assert format_elapsed(seconds) == expected


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
