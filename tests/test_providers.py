"""
HTTP Provider Tests

Responses are served by httpx.MockTransport; nothing leaves the process.
"""

import asyncio
from datetime import date

import httpx
import pytest

from sosx.providers.base import RateProviderError
from sosx.providers.currencyapi import CurrencyAPIClient
from sosx.providers.exchangeratehost import ExchangerateHostClient
from sosx.providers.fixer import FixerClient

USD_QUOTES = {
    "SOS": 570.0,
    "USD": 1.0,
    "EUR": 0.85,
    "GBP": 0.75,
    "KES": 128.0,
    "ETB": 58.0,
    "AED": 3.67,
    "SAR": 3.75,
    "TRY": 32.0,
    "CNY": 7.2,
}


def _transport(payload, status_code: int = 200, seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)
    return httpx.MockTransport(handler)


class TestExchangerateHost:
    """Tests for ExchangerateHostClient."""

    def test_rebases_usd_quotes_onto_sos(self):
        seen: list[httpx.Request] = []
        client = ExchangerateHostClient(
            transport=_transport({"base": "USD", "rates": USD_QUOTES}, seen=seen)
        )

        table = asyncio.run(client.fetch_current())

        assert table["SOS"] == 1.0
        assert table["USD"] == pytest.approx(1 / 570, rel=1e-9)
        assert table["EUR"] == pytest.approx(0.85 / 570, rel=1e-9)
        request = seen[0]
        assert request.url.path == "/latest"
        assert request.url.params["base"] == "USD"
        for code in USD_QUOTES:
            assert code in request.url.params["symbols"]

    def test_missing_pivot_is_rejected(self):
        quotes = {k: v for k, v in USD_QUOTES.items() if k != "SOS"}
        client = ExchangerateHostClient(transport=_transport({"rates": quotes}))

        with pytest.raises(RateProviderError) as exc_info:
            asyncio.run(client.fetch_current())

        assert exc_info.value.error_type == "MISSING_PIVOT"

    def test_http_error(self):
        client = ExchangerateHostClient(transport=_transport({}, status_code=404))

        with pytest.raises(RateProviderError) as exc_info:
            asyncio.run(client.fetch_current())

        assert exc_info.value.error_type == "HTTP_404"
        assert exc_info.value.provider == "exchangerate.host"

    def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = ExchangerateHostClient(transport=httpx.MockTransport(handler))

        with pytest.raises(RateProviderError) as exc_info:
            asyncio.run(client.fetch_current())

        assert exc_info.value.error_type == "REQUEST_ERROR"

    def test_missing_rates_field(self):
        client = ExchangerateHostClient(transport=_transport({"success": True}))

        with pytest.raises(RateProviderError) as exc_info:
            asyncio.run(client.fetch_current())

        assert exc_info.value.error_type == "PARSE_ERROR"

    def test_non_positive_rate_rejected(self):
        quotes = dict(USD_QUOTES, KES=0)
        client = ExchangerateHostClient(transport=_transport({"rates": quotes}))

        with pytest.raises(RateProviderError):
            asyncio.run(client.fetch_current())

    def test_unknown_currencies_dropped(self):
        quotes = dict(USD_QUOTES, JPY=150.0)
        client = ExchangerateHostClient(transport=_transport({"rates": quotes}))

        table = asyncio.run(client.fetch_current())

        assert "JPY" not in table

    def test_no_historical_support(self):
        client = ExchangerateHostClient(transport=_transport({}))

        assert client.describe().supports_historical is False
        with pytest.raises(RateProviderError):
            asyncio.run(client.fetch_historical(date(2026, 1, 1)))


class TestFixer:
    """Tests for FixerClient."""

    def test_historical_uses_date_path(self):
        seen: list[httpx.Request] = []
        client = FixerClient(
            api_key="k",
            transport=_transport({"success": True, "rates": USD_QUOTES}, seen=seen),
        )

        table = asyncio.run(client.fetch_historical(date(2026, 2, 1)))

        assert table["KES"] == pytest.approx(128 / 570)
        assert seen[0].url.path.endswith("/2026-02-01")
        assert seen[0].url.params["access_key"] == "k"

    def test_api_error_payload(self):
        client = FixerClient(
            api_key="k",
            transport=_transport({"success": False, "error": {"code": 101, "info": "bad key"}}),
        )

        with pytest.raises(RateProviderError) as exc_info:
            asyncio.run(client.fetch_current())

        assert exc_info.value.error_type == "API_ERROR"
        assert "bad key" in str(exc_info.value)

    def test_missing_key_fails_without_request(self):
        seen: list[httpx.Request] = []
        client = FixerClient(api_key="", transport=_transport({}, seen=seen))

        with pytest.raises(RateProviderError) as exc_info:
            asyncio.run(client.fetch_current())

        assert exc_info.value.error_type == "CONFIG_ERROR"
        assert seen == []

    def test_health_check_without_key_makes_no_request(self):
        seen: list[httpx.Request] = []
        client = FixerClient(api_key="", transport=_transport({}, seen=seen))

        assert asyncio.run(client.health_check()) is False
        assert seen == []

    def test_health_check_is_one_request(self):
        seen: list[httpx.Request] = []
        payload = {"success": True, "base": "USD", "rates": USD_QUOTES}
        client = FixerClient(api_key="k", transport=_transport(payload, seen=seen))

        assert asyncio.run(client.health_check()) is True
        assert len(seen) == 1

    def test_descriptor(self):
        descriptor = FixerClient(api_key="k").describe()

        assert descriptor.priority == 2
        assert descriptor.timeout == 5.0
        assert descriptor.supports_historical is True


class TestCurrencyAPI:
    """Tests for CurrencyAPIClient."""

    def test_parses_nested_values(self):
        payload = {"data": {code: {"code": code, "value": v} for code, v in USD_QUOTES.items()}}
        client = CurrencyAPIClient(api_key="k", transport=_transport(payload))

        table = asyncio.run(client.fetch_current())

        assert table["SOS"] == 1.0
        assert table["CNY"] == pytest.approx(7.2 / 570)

    def test_historical_passes_date_param(self):
        seen: list[httpx.Request] = []
        payload = {"data": {code: {"value": v} for code, v in USD_QUOTES.items()}}
        client = CurrencyAPIClient(api_key="k", transport=_transport(payload, seen=seen))

        asyncio.run(client.fetch_historical(date(2026, 2, 1)))

        assert seen[0].url.path.endswith("/historical")
        assert seen[0].url.params["date"] == "2026-02-01"

    def test_errors_field(self):
        client = CurrencyAPIClient(
            api_key="k",
            transport=_transport({"errors": {"base_currency": ["invalid"]}}),
        )

        with pytest.raises(RateProviderError) as exc_info:
            asyncio.run(client.fetch_current())

        assert exc_info.value.error_type == "API_ERROR"
