"""
Base Rate Provider Interface

Every provider returns a RateTable pivoted on SOS (see sosx.models). Payloads
are validated here, at the provider boundary, so nothing downstream has to
trust the shape of a remote response.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date
from typing import Any

from sosx.models import (
    PIVOT_CURRENCY,
    SUPPORTED_CURRENCIES,
    ProviderDescriptor,
    RateTable,
    validate_rate_table,
)


class RateProviderError(Exception):
    """Base exception for rate provider errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        error_type: str = "UNKNOWN",
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.provider = provider
        self.error_type = error_type
        self.details = details or {}


class ProviderTimeout(RateProviderError):
    """A single provider attempt exceeded its time bound."""

    def __init__(self, provider: str, timeout: float):
        super().__init__(
            message=f"Provider {provider} timed out after {timeout}s",
            provider=provider,
            error_type="TIMEOUT",
            details={"timeout_seconds": timeout}
        )
        self.timeout = timeout


class AllProvidersExhausted(RuntimeError):
    """Every provider in the chain failed. Carries the last observed error."""

    def __init__(
        self,
        message: str,
        last_error: BaseException | None = None,
        errors: list[BaseException] | None = None
    ):
        super().__init__(message)
        self.last_error = last_error
        self.errors = errors or []


class UnknownProviderError(ValueError):
    """Raised for a provider identifier the factory does not know."""


class ProviderConfigError(ValueError):
    """Raised when a provider is selected without the configuration it needs."""


class BaseRateProvider(ABC):
    """
    Abstract base class for exchange rate providers.

    Subclasses implement fetch_current() and, when the upstream API offers
    historical data, override fetch_historical() and set
    SUPPORTS_HISTORICAL = True.
    """

    PROVIDER_NAME: str = "base"
    PRIORITY: int | None = None
    TIMEOUT: float | None = None
    SUPPORTS_HISTORICAL: bool = False

    @property
    def name(self) -> str:
        return self.PROVIDER_NAME

    @property
    def priority(self) -> int | None:
        return self.PRIORITY

    @property
    def timeout(self) -> float | None:
        return self.TIMEOUT

    @property
    def supports_historical(self) -> bool:
        return self.SUPPORTS_HISTORICAL

    def describe(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            name=self.name,
            priority=self.priority,
            timeout=self.timeout,
            supports_current=True,
            supports_historical=self.supports_historical,
        )

    @abstractmethod
    async def fetch_current(self) -> RateTable:
        """
        Fetch the latest SOS-pivoted rate table.

        Raises:
            RateProviderError: on transport, HTTP or parse failure
        """

    async def fetch_historical(self, day: date) -> RateTable:
        """
        Fetch the SOS-pivoted rate table for a past date.

        Raises:
            RateProviderError: if unsupported or the fetch fails
        """
        raise RateProviderError(
            message=f"{self.name} does not provide historical rates",
            provider=self.name,
            error_type="UNSUPPORTED",
        )

    async def health_check(self) -> bool:
        """Check if provider is reachable and responding."""
        return True

    def _rebase(self, quotes: Mapping[str, Any]) -> RateTable:
        """
        Turn "1 BASE = X currency" quotes into a SOS-pivoted RateTable.

        The upstream base is irrelevant: dividing every quote by the SOS quote
        gives "1 SOS = X currency".
        """
        try:
            sos_per_base = float(quotes[PIVOT_CURRENCY])
        except (KeyError, TypeError, ValueError) as e:
            raise RateProviderError(
                message=f"{self.name} returned no {PIVOT_CURRENCY} rate",
                provider=self.name,
                error_type="MISSING_PIVOT",
                details={"available": sorted(quotes)}
            ) from e

        if sos_per_base <= 0:
            raise RateProviderError(
                message=f"{self.name} returned a non-positive {PIVOT_CURRENCY} rate",
                provider=self.name,
                error_type="PARSE_ERROR",
                details={"value": quotes[PIVOT_CURRENCY]}
            )

        rebased: dict[str, Any] = {}
        for code, value in quotes.items():
            if code not in SUPPORTED_CURRENCIES:
                continue
            try:
                rebased[code] = float(value) / sos_per_base
            except (TypeError, ValueError) as e:
                raise RateProviderError(
                    message=f"{self.name} returned a non-numeric rate for {code}",
                    provider=self.name,
                    error_type="PARSE_ERROR",
                    details={"currency": code, "value": value}
                ) from e

        try:
            return validate_rate_table(rebased)
        except ValueError as e:
            raise RateProviderError(
                message=str(e),
                provider=self.name,
                error_type="PARSE_ERROR",
            ) from e
