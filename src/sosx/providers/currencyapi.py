"""
currencyapi.com Client (Fallback Provider)

API Documentation: https://currencyapi.com/docs
Response format: {"data": {"SOS": {"code": "SOS", "value": 571.0}, ...}}
"""

import logging
from datetime import date
from typing import Any

import httpx

from sosx.models import RateTable
from sosx.providers.base import RateProviderError
from sosx.providers.http import HttpRateProvider

logger = logging.getLogger(__name__)


class CurrencyAPIClient(HttpRateProvider):
    """Client for currencyapi.com v3. Requires an API key."""

    PROVIDER_NAME = "currencyapi.com"
    PRIORITY = 3
    TIMEOUT = 5.0
    SUPPORTS_HISTORICAL = True

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.currencyapi.com/v3",
        transport: httpx.AsyncBaseTransport | None = None
    ):
        super().__init__(base_url=base_url, api_key=api_key, transport=transport)

    async def fetch_current(self) -> RateTable:
        self._require_key()
        data = await self._get_json("latest", params=self._params())
        return self._parse(data)

    async def fetch_historical(self, day: date) -> RateTable:
        self._require_key()
        params = self._params()
        params["date"] = day.isoformat()
        data = await self._get_json("historical", params=params)
        return self._parse(data)

    def _params(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "base_currency": "USD",
            "currencies": self.SYMBOLS,
        }

    def _parse(self, data: dict[str, Any]) -> RateTable:
        if data.get("errors"):
            raise RateProviderError(
                message=f"API error: {data['errors']}",
                provider=self.name,
                error_type="API_ERROR",
                details={"errors": data["errors"]}
            )

        entries = data.get("data")
        if not isinstance(entries, dict):
            raise RateProviderError(
                message="Invalid response: missing 'data' field",
                provider=self.name,
                error_type="PARSE_ERROR",
            )

        quotes: dict[str, Any] = {}
        for code, info in entries.items():
            if isinstance(info, dict) and "value" in info:
                quotes[code] = info["value"]

        table = self._rebase(quotes)
        logger.info(f"currencyapi.com fetched {len(table)} rates")
        return table
