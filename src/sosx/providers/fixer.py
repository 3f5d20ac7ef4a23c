"""
Fixer API Client (Fallback Provider)

API Documentation: https://fixer.io/documentation
Response format: {"success": true, "base": "USD", "rates": {"SOS": 571.0, ...}}
Errors come back with HTTP 200 and {"success": false, "error": {"info": ...}}.
"""

import logging
from datetime import date
from typing import Any

import httpx

from sosx.models import RateTable
from sosx.providers.base import RateProviderError
from sosx.providers.http import HttpRateProvider

logger = logging.getLogger(__name__)


class FixerClient(HttpRateProvider):
    """Client for fixer.io. Requires an API key; supports historical dates."""

    PROVIDER_NAME = "fixer.io"
    PRIORITY = 2
    TIMEOUT = 5.0
    SUPPORTS_HISTORICAL = True

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.fixer.io/v1",
        transport: httpx.AsyncBaseTransport | None = None
    ):
        super().__init__(base_url=base_url, api_key=api_key, transport=transport)

    async def fetch_current(self) -> RateTable:
        self._require_key()
        data = await self._get_json("latest", params=self._params())
        return self._parse(data, "latest")

    async def fetch_historical(self, day: date) -> RateTable:
        self._require_key()
        data = await self._get_json(day.isoformat(), params=self._params())
        return self._parse(data, day.isoformat())

    def _params(self) -> dict[str, str]:
        return {"access_key": self.api_key, "base": "USD", "symbols": self.SYMBOLS}

    def _parse(self, data: dict[str, Any], label: str) -> RateTable:
        if not data.get("success", False):
            error = data.get("error") or {}
            raise RateProviderError(
                message=f"API error: {error.get('info', 'Unknown error')}",
                provider=self.name,
                error_type="API_ERROR",
                details=error if isinstance(error, dict) else {}
            )

        if not isinstance(data.get("rates"), dict):
            raise RateProviderError(
                message="Invalid response: missing 'rates' field",
                provider=self.name,
                error_type="PARSE_ERROR",
            )

        table = self._rebase(data["rates"])
        logger.info(f"Fixer fetched {len(table)} rates ({label})")
        return table
