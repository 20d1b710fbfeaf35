import pytest
from decimal import Decimal

from cryptochange.app import build_parser, convert_once, set_rates, show_rates
from cryptochange.config.settings import ConverterConfig
from cryptochange.models import Currency, PriceSnapshot
from cryptochange.services.rate_store import JsonFileRateStore


@pytest.fixture
def cfg(tmp_path):
    class TestConfig(ConverterConfig):
        STORE_BACKEND = "json"
        STORE_PATH = str(tmp_path / "prefs.json")

    return TestConfig


class TestCommands:
    """Тесты команд командной строки"""

    def test_set_rates_then_show(self, cfg, capsys):
        assert set_rates("3,2", "95", "1.05", cfg=cfg) == 0
        assert show_rates(cfg=cfg) == 0

        out = capsys.readouterr().out
        assert "BYN за 1 USD: 3.2" in out
        assert "Надбавка: 1.05" in out
        assert "Курсы ещё не обновлялись" in out

    def test_set_rates_rejects_zero_markup(self, cfg, capsys):
        assert set_rates("3.0", "90", "0", cfg=cfg) == 1

        assert "markup" in capsys.readouterr().err
        assert JsonFileRateStore(cfg.STORE_PATH).load_rates().markup == Decimal('1.10')

    @pytest.mark.asyncio
    async def test_convert_offline_uses_cached_prices(self, cfg, capsys):
        JsonFileRateStore(cfg.STORE_PATH).save_cached_prices(
            PriceSnapshot(prices={Currency.BTC: Decimal('60000')})
        )

        assert await convert_once(Currency.BTC, "0.5", offline=True, cfg=cfg) == 0

        out = capsys.readouterr().out
        assert " BYN: 99000.00" in out
        assert " RUB: 2970000.00" in out
        assert " LTC: —" in out


class TestParser:
    def test_convert_arguments(self):
        args = build_parser().parse_args(["convert", "btc", "0,5", "--offline"])

        assert args.currency == Currency.BTC
        assert args.amount == "0,5"
        assert args.offline is True

    def test_unknown_currency(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["convert", "eth", "1"])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
