import pytest
from decimal import Decimal

import httpx

from cryptochange.errors import FetchError
from cryptochange.models import Currency
from cryptochange.services.coingecko import CoinGeckoClient


GOOD_BODY = {
    "bitcoin": {"usd": 60000.5},
    "litecoin": {"usd": 80},
    "monero": {"usd": 150.25, "eur": 140.0},
    "ethereum": {"usd": 3000},
}


def make_client(handler) -> CoinGeckoClient:
    return CoinGeckoClient(
        url="https://api.test/api/v3/simple/price",
        timeout=2,
        transport=httpx.MockTransport(handler),
        clock=lambda: 1700000000.0
    )


class TestCoinGeckoClient:
    """Тесты для CoinGeckoClient"""

    @pytest.mark.asyncio
    async def test_fetch_prices_success(self):
        """Тест успешного получения цен; лишние поля игнорируются"""
        client = make_client(lambda request: httpx.Response(200, json=GOOD_BODY))

        snapshot = await client.fetch_prices()

        assert snapshot.get(Currency.BTC) == Decimal('60000.5')
        assert snapshot.get(Currency.LTC) == Decimal('80')
        assert snapshot.get(Currency.XMR) == Decimal('150.25')
        assert snapshot.is_complete
        assert snapshot.fetched_at == 1700000000.0
        assert client.get_health().is_available
        assert client.get_health().http_code == 200

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Тест параметров и заголовков запроса"""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=GOOD_BODY)

        client = make_client(handler)
        await client.fetch_prices()

        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/api/v3/simple/price"
        assert request.url.params["ids"] == "bitcoin,litecoin,monero"
        assert request.url.params["vs_currencies"] == "usd"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["User-Agent"] == "CurrencyConverter/1.0"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 429, 500, 503])
    async def test_http_error_status(self, status):
        client = make_client(lambda request: httpx.Response(status, json={"error": "nope"}))

        with pytest.raises(FetchError) as exc_info:
            await client.fetch_prices()

        assert exc_info.value.status_code == status
        assert client.get_health().error_count == 1
        assert not client.get_health().is_available

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)

        with pytest.raises(FetchError) as exc_info:
            await client.fetch_prices()

        assert isinstance(exc_info.value.__cause__, httpx.TimeoutException)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(FetchError):
            await client.fetch_prices()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>busy</html>"))

        with pytest.raises(FetchError):
            await client.fetch_prices()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"bitcoin": {"usd": 60000}, "litecoin": {"usd": 80}},
        {"bitcoin": {"usd": 60000}, "litecoin": {"usd": 80}, "monero": {}},
        {"bitcoin": {"usd": "60000"}, "litecoin": {"usd": 80}, "monero": {"usd": 150}},
        {"bitcoin": {"usd": True}, "litecoin": {"usd": 80}, "monero": {"usd": 150}},
        {"bitcoin": {"usd": -1}, "litecoin": {"usd": 80}, "monero": {"usd": 150}},
        {"bitcoin": None, "litecoin": {"usd": 80}, "monero": {"usd": 150}},
        [1, 2, 3],
    ])
    async def test_incomplete_or_malformed_body(self, body):
        client = make_client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(FetchError):
            await client.fetch_prices()

        assert client.get_health().error_count == 1

    @pytest.mark.asyncio
    async def test_health_recovers_after_success(self):
        responses = [httpx.Response(500), httpx.Response(200, json=GOOD_BODY)]
        client = make_client(lambda request: responses.pop(0))

        with pytest.raises(FetchError):
            await client.fetch_prices()
        await client.fetch_prices()

        health = client.get_health()
        assert health.error_count == 0
        assert health.last_error is None
        assert health.is_available

    def test_timeout_is_bounded(self):
        client = CoinGeckoClient()

        assert client.timeout.connect == 8
        assert client.timeout.read == 8


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
