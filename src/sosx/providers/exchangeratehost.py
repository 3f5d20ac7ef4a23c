"""
exchangerate.host API Client (Primary Provider)

Free, keyless. Only the latest rates are used.
Response format: {"base": "USD", "rates": {"SOS": 571.0, "EUR": 0.92, ...}}
"""

import logging

import httpx

from sosx.models import RateTable
from sosx.providers.base import RateProviderError
from sosx.providers.http import HttpRateProvider

logger = logging.getLogger(__name__)


class ExchangerateHostClient(HttpRateProvider):
    """Client for exchangerate.host USD-based rates."""

    PROVIDER_NAME = "exchangerate.host"

    def __init__(
        self,
        base_url: str = "https://api.exchangerate.host",
        transport: httpx.AsyncBaseTransport | None = None
    ):
        super().__init__(base_url=base_url, transport=transport)

    async def fetch_current(self) -> RateTable:
        data = await self._get_json(
            "latest",
            params={"base": "USD", "symbols": self.SYMBOLS}
        )

        if not isinstance(data.get("rates"), dict):
            raise RateProviderError(
                message="Invalid response: missing 'rates' field",
                provider=self.name,
                error_type="PARSE_ERROR",
                details={"keys": sorted(data)}
            )

        table = self._rebase(data["rates"])
        logger.info(f"exchangerate.host fetched {len(table)} rates")
        return table
