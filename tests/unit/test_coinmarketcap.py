"""Tests for crypto_rates.prices.coinmarketcap (CoinMarketCapProvider)."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import httpx
import pytest
import respx

from crypto_rates.core.config import CoinMarketCapConfig
from crypto_rates.core.exceptions import ConfigError, ProviderError
from crypto_rates.prices.coinmarketcap import CoinMarketCapProvider
from crypto_rates.prices.provider import PriceProvider

QUOTES_URL = "https://pro-api.coinmarketcap.com/v1/cryptocurrency/quotes/latest"


def _quote(symbol: str, price: float, last_updated: str) -> dict:
    return {
        "id": 1,
        "name": symbol.title(),
        "symbol": symbol,
        "quote": {"USD": {"price": price, "last_updated": last_updated}},
    }


@pytest.fixture
def provider() -> CoinMarketCapProvider:
    return CoinMarketCapProvider(CoinMarketCapConfig(api_key="test-key"))


@pytest.fixture
def quotes_json() -> dict:
    return {
        "status": {"error_code": 0, "error_message": None},
        "data": {
            "BTC": _quote("BTC", 50000.12, "2023-01-01T00:00:00.000Z"),
            "ETH": _quote("ETH", 2500.5, "2023-01-01T00:00:30.000Z"),
        },
    }


class TestConstruction:
    def test_missing_api_key_fails_fast(self):
        with pytest.raises(ConfigError, match="API key is required"):
            CoinMarketCapProvider(CoinMarketCapConfig(api_key=None))

    def test_empty_api_key_fails_fast(self):
        with pytest.raises(ConfigError):
            CoinMarketCapProvider(CoinMarketCapConfig(api_key=""))

    def test_is_price_provider(self, provider):
        assert isinstance(provider, PriceProvider)
        assert provider.name == "CoinMarketCap"


class TestFetchPrices:
    @respx.mock
    async def test_single_batched_request(self, provider, quotes_json):
        route = respx.get(QUOTES_URL).mock(
            return_value=httpx.Response(200, json=quotes_json)
        )

        await provider.fetch_prices(["eth", "BTC"])

        assert route.call_count == 1
        request = route.calls[0].request
        assert request.url.params["symbol"] == "BTC,ETH"
        assert request.url.params["convert"] == "USD"
        assert request.headers["X-CMC_PRO_API_KEY"] == "test-key"

    @respx.mock
    async def test_uses_provider_timestamps(self, provider, quotes_json):
        respx.get(QUOTES_URL).mock(return_value=httpx.Response(200, json=quotes_json))

        observations = await provider.fetch_prices(["BTC", "ETH"])

        by_symbol = {o.symbol: o for o in observations}
        assert by_symbol["BTC"].timestamp == datetime(2023, 1, 1, tzinfo=UTC)
        assert by_symbol["ETH"].timestamp == datetime(2023, 1, 1, 0, 0, 30, tzinfo=UTC)
        assert by_symbol["BTC"].price_usd == Decimal("50000.12")
        assert all(o.source == "CoinMarketCap" for o in observations)

    @respx.mock
    async def test_missing_symbols_silently_omitted(self, provider, quotes_json):
        respx.get(QUOTES_URL).mock(return_value=httpx.Response(200, json=quotes_json))

        observations = await provider.fetch_prices(["BTC", "ETH", "DOGE"])

        assert sorted(o.symbol for o in observations) == ["BTC", "ETH"]

    @respx.mock
    async def test_list_valued_data_entries(self, provider):
        payload = {
            "status": {"error_code": 0},
            "data": {"SOL": [_quote("SOL", 20.0, "2023-01-01T00:00:00Z")]},
        }
        respx.get(QUOTES_URL).mock(return_value=httpx.Response(200, json=payload))

        observations = await provider.fetch_prices(["SOL"])

        assert [o.symbol for o in observations] == ["SOL"]

    @respx.mock
    async def test_malformed_entry_skipped(self, provider, quotes_json):
        quotes_json["data"]["ETH"]["quote"]["USD"]["last_updated"] = "not-a-date"
        respx.get(QUOTES_URL).mock(return_value=httpx.Response(200, json=quotes_json))

        observations = await provider.fetch_prices(["BTC", "ETH"])

        assert [o.symbol for o in observations] == ["BTC"]

    async def test_empty_symbols_makes_no_request(self, provider):
        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(QUOTES_URL)
            assert await provider.fetch_prices([]) == []
            assert not route.called


class TestFetchErrors:
    @respx.mock
    async def test_http_error_status(self, provider):
        respx.get(QUOTES_URL).mock(
            return_value=httpx.Response(
                401, json={"status": {"error_code": 1001, "error_message": "Invalid key"}}
            )
        )
        with pytest.raises(ProviderError, match="401 Invalid key") as exc_info:
            await provider.fetch_prices(["BTC"])
        assert exc_info.value.context["status_code"] == 401

    @respx.mock
    async def test_embedded_error_code(self, provider):
        respx.get(QUOTES_URL).mock(
            return_value=httpx.Response(
                200,
                json={"status": {"error_code": 400, "error_message": "Invalid symbol"}, "data": {}},
            )
        )
        with pytest.raises(ProviderError, match="Invalid symbol"):
            await provider.fetch_prices(["BTC"])

    @respx.mock
    async def test_network_failure(self, provider):
        respx.get(QUOTES_URL).mock(side_effect=httpx.ConnectError("boom"))
        with pytest.raises(ProviderError, match="request failed"):
            await provider.fetch_prices(["BTC"])

    @respx.mock
    async def test_non_json_body(self, provider):
        respx.get(QUOTES_URL).mock(return_value=httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError, match="non-JSON"):
            await provider.fetch_prices(["BTC"])

    @respx.mock
    async def test_missing_data_object(self, provider):
        respx.get(QUOTES_URL).mock(
            return_value=httpx.Response(200, json={"status": {"error_code": 0}})
        )
        with pytest.raises(ProviderError, match="no data object"):
            await provider.fetch_prices(["BTC"])
