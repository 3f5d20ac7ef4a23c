"""
Shared HTTP plumbing for the JSON rate providers.

Normalizes every httpx failure into RateProviderError so the manager only ever
sees one error family from the network edge.
"""

import logging
from typing import Any

import httpx

from sosx.models import SUPPORTED_CURRENCIES
from sosx.providers.base import BaseRateProvider, RateProviderError

logger = logging.getLogger(__name__)


class HttpRateProvider(BaseRateProvider):
    """Base for providers that speak JSON over HTTP."""

    SYMBOLS = ",".join(SUPPORTED_CURRENCIES)

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        transport: httpx.AsyncBaseTransport | None = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._transport = transport

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout or 10.0,
            transport=self._transport,
        )

    async def _get_json(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with self._client() as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            raise RateProviderError(
                message=f"HTTP error: {e.response.status_code}",
                provider=self.name,
                error_type=f"HTTP_{e.response.status_code}",
                details={"url": url}
            ) from e

        except httpx.TimeoutException as e:
            raise RateProviderError(
                message="Request timeout",
                provider=self.name,
                error_type="REQUEST_TIMEOUT",
                details={"url": url}
            ) from e

        except httpx.RequestError as e:
            raise RateProviderError(
                message=f"Request failed: {e}",
                provider=self.name,
                error_type="REQUEST_ERROR",
                details={"url": url}
            ) from e

        except ValueError as e:
            raise RateProviderError(
                message="Response body is not valid JSON",
                provider=self.name,
                error_type="PARSE_ERROR",
                details={"url": url}
            ) from e

        if not isinstance(data, dict):
            raise RateProviderError(
                message="Invalid response: expected a JSON object",
                provider=self.name,
                error_type="PARSE_ERROR",
                details={"url": url}
            )
        return data

    def _require_key(self) -> None:
        if not self.api_key:
            raise RateProviderError(
                message=f"{self.name} API key not configured",
                provider=self.name,
                error_type="CONFIG_ERROR",
            )

    async def health_check(self) -> bool:
        """
        One live fetch_current() request. A keyed provider without a key
        reports False before any request is made.
        """
        try:
            await self.fetch_current()
            return True
        except RateProviderError as e:
            logger.warning(f"{self.name} health check failed: {e}")
            return False
