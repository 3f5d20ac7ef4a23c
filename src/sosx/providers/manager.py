"""
Provider Manager with Fallback Hierarchy

Providers are tried strictly one after another: primary first, then fallbacks
in priority order. Each provider gets up to max_retries attempts with
exponential backoff (1s, 2s, 4s, ...) between attempts; every attempt is
bounded by a timeout and the in-flight call is cancelled when it expires.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date
from typing import TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from sosx.config import Settings
from sosx.models import ProviderStatus, RateTable
from sosx.providers.base import (
    AllProvidersExhausted,
    BaseRateProvider,
    ProviderConfigError,
    ProviderTimeout,
    UnknownProviderError,
)
from sosx.providers.currencyapi import CurrencyAPIClient
from sosx.providers.exchangeratehost import ExchangerateHostClient
from sosx.providers.fixer import FixerClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 3


def _priority_key(provider: BaseRateProvider) -> tuple[bool, int]:
    # None sorts after every explicit priority
    return (provider.priority is None, provider.priority or 0)


class ProviderManager:
    """
    Owns an ordered provider chain and turns it into one RateTable.

    Args:
        primary: provider tried first
        fallbacks: providers tried after the primary, in the given order
        timeout: per-attempt bound for providers that do not declare one
        max_retries: attempts per provider for current rates
        sleep: coroutine used for backoff delays (injectable for tests)
    """

    def __init__(
        self,
        primary: BaseRateProvider,
        fallbacks: list[BaseRateProvider] | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: SleepFn = asyncio.sleep
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.primary = primary
        self.fallbacks: list[BaseRateProvider] = list(fallbacks or [])
        self.timeout = timeout
        self.max_retries = max_retries
        self._sleep = sleep

    @property
    def providers(self) -> list[BaseRateProvider]:
        return [self.primary, *self.fallbacks]

    async def fetch_current(self) -> RateTable:
        """
        Fetch current rates, walking the chain until a provider succeeds.

        Raises:
            AllProvidersExhausted: if every provider used up its retries
        """
        errors: list[BaseException] = []

        for idx, provider in enumerate(self.providers, start=1):
            try:
                rates = await self._retrying(provider)(
                    self._with_timeout, provider, provider.fetch_current
                )
            except Exception as e:
                errors.append(e)
                logger.warning(
                    f"❌ {provider.name} exhausted {self.max_retries} attempt(s) "
                    f"({idx}/{len(self.providers)}): {e}"
                )
                continue

            logger.info(f"✅ {provider.name} success")
            return rates

        last_error = errors[-1] if errors else None
        raise AllProvidersExhausted(
            f"All providers failed. Last error: {last_error}",
            last_error=last_error,
            errors=errors,
        )

    async def fetch_historical(self, day: date) -> RateTable:
        """
        Fetch rates for a past date from the first historical-capable provider
        that answers. No retry loop is layered on top of the providers.

        Raises:
            AllProvidersExhausted: if no capable provider succeeded
        """
        capable = [p for p in self.providers if p.supports_historical]
        errors: list[BaseException] = []

        for provider in capable:
            try:
                logger.info(f"Fetching historical rates from {provider.name} for {day}")
                rates = await self._with_timeout(
                    provider, lambda: provider.fetch_historical(day)
                )
            except Exception as e:
                errors.append(e)
                logger.warning(f"Failed to fetch historical rates from {provider.name}: {e}")
                continue

            logger.info(f"✅ {provider.name} historical success for {day}")
            return rates

        last_error = errors[-1] if errors else None
        if not capable:
            message = "No provider supports historical rates"
        else:
            message = f"All providers failed for historical data. Last error: {last_error}"
        raise AllProvidersExhausted(message, last_error=last_error, errors=errors)

    def add_fallback_provider(self, provider: BaseRateProvider) -> None:
        """Append a fallback and keep fallbacks ordered by priority."""
        self.fallbacks.append(provider)
        self.fallbacks.sort(key=_priority_key)

    def set_primary_provider(self, provider: BaseRateProvider) -> None:
        self.primary = provider

    def with_primary(self, provider: BaseRateProvider) -> "ProviderManager":
        """A single-provider manager sharing this manager's retry policy."""
        return ProviderManager(
            primary=provider,
            timeout=self.timeout,
            max_retries=self.max_retries,
            sleep=self._sleep,
        )

    def get_provider_status(self) -> list[ProviderStatus]:
        return [
            ProviderStatus(
                name=provider.name,
                position=position,
                priority=provider.priority,
                supports_historical=provider.supports_historical,
            )
            for position, provider in enumerate(self.providers)
        ]

    async def health_check_all(self) -> dict[str, bool]:
        """
        Check health status of all providers.

        HTTP providers answer with a live fetch_current(), so this spends one
        upstream request per keyed and configured provider (against their
        quota). Checks run concurrently, without retries, each bounded by the
        per-attempt timeout; a timed-out check reports False.
        """
        results = await asyncio.gather(
            *(self._check_health(provider) for provider in self.providers)
        )
        return {provider.name: ok for provider, ok in zip(self.providers, results)}

    async def _check_health(self, provider: BaseRateProvider) -> bool:
        try:
            return await self._with_timeout(provider, provider.health_check)
        except ProviderTimeout as e:
            logger.warning(f"{provider.name} health check failed: {e}")
            return False

    def _retrying(self, provider: BaseRateProvider) -> AsyncRetrying:
        max_retries = self.max_retries

        def before(retry_state: RetryCallState) -> None:
            logger.info(
                f"Attempting {provider.name} "
                f"(attempt {retry_state.attempt_number}/{max_retries})"
            )

        def before_sleep(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            error = outcome.exception() if outcome is not None else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"{provider.name} attempt {retry_state.attempt_number} failed: {error}; "
                f"retrying in {delay:g}s"
            )

        return AsyncRetrying(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=1, exp_base=2),
            sleep=self._sleep,
            before=before,
            before_sleep=before_sleep,
            reraise=True,
        )

    async def _with_timeout(
        self,
        provider: BaseRateProvider,
        call: Callable[[], Awaitable[T]]
    ) -> T:
        timeout = provider.timeout or self.timeout
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(provider.name, timeout) from e


# === Factory ===

PROVIDER_IDS = ("exchangerate-host", "fixer", "currencyapi")


def create_provider(
    name: str,
    api_key: str | None = None,
    settings: Settings | None = None
) -> BaseRateProvider:
    """
    Build a provider from its identifier.

    Raises:
        UnknownProviderError: for an identifier outside PROVIDER_IDS
        ProviderConfigError: for a keyed provider without an API key
    """
    kind = name.strip().lower()

    if kind == "exchangerate-host":
        if settings is not None:
            return ExchangerateHostClient(base_url=settings.exchangeratehost_base_url)
        return ExchangerateHostClient()

    if kind == "fixer":
        key = api_key or (settings.fixer_api_key if settings else "")
        if not key:
            raise ProviderConfigError("Fixer provider requires API key")
        if settings is not None:
            return FixerClient(api_key=key, base_url=settings.fixer_base_url)
        return FixerClient(api_key=key)

    if kind == "currencyapi":
        key = api_key or (settings.currencyapi_api_key if settings else "")
        if not key:
            raise ProviderConfigError("CurrencyAPI provider requires API key")
        if settings is not None:
            return CurrencyAPIClient(api_key=key, base_url=settings.currencyapi_base_url)
        return CurrencyAPIClient(api_key=key)

    raise UnknownProviderError(
        f"Unknown provider: {name!r}. Known: {', '.join(PROVIDER_IDS)}"
    )


def build_provider_manager(
    settings: Settings,
    sleep: SleepFn = asyncio.sleep
) -> ProviderManager:
    """
    Build the configured chain. The primary must be constructible; keyed
    fallbacks without a key are skipped so a keyless install still works.
    """
    primary = create_provider(settings.primary_provider, settings=settings)
    manager = ProviderManager(
        primary=primary,
        timeout=settings.provider_timeout_seconds,
        max_retries=settings.max_retries,
        sleep=sleep,
    )

    for name in settings.fallback_providers:
        try:
            manager.add_fallback_provider(create_provider(name, settings=settings))
        except ProviderConfigError as e:
            logger.info(f"Skipping fallback provider {name}: {e}")

    logger.info(
        "Provider chain: " + " → ".join(p.name for p in manager.providers)
    )
    return manager
