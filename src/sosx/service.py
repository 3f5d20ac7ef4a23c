"""
RateService: the single entry point for current rates and conversions.

Resolution order for get_rates():
    1. fresh cache            → cached table, no network
    2. offline                → stale cache, else seed
    3. provider chain         → fresh table, cached
    4. chain exhausted        → stale cache, else seed

A live table missing some supported currencies is completed from the previous
snapshot, then the seed, before it is cached.

Operational failures never escape get_rates(); only configuration errors
(unknown currency, bad provider id) reach the caller.
"""

import logging
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from sosx.cache import CacheStore
from sosx.config import Settings
from sosx.models import (
    PIVOT_CURRENCY,
    SUPPORTED_CURRENCIES,
    CachedSnapshot,
    Currency,
    RateTable,
    normalize_currency,
)
from sosx.providers.base import AllProvidersExhausted, BaseRateProvider
from sosx.providers.manager import ProviderManager, build_provider_manager
from sosx.seed import load_seed_rates

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=6)


class RateOptions(BaseModel):
    """
    Per-query overrides for RateService.

    Any field left as None falls back to the service's configured default.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: BaseRateProvider | None = Field(
        default=None,
        description="Provider used instead of the default chain"
    )
    ttl: timedelta | None = None
    persist_path: Path | None = None
    offline: bool | None = None


class RateService:
    """
    Current-rate orchestration over a CacheStore and a ProviderManager.

    Both collaborators are owned by the caller; build them once at the entry
    point and share the service.
    """

    def __init__(
        self,
        provider_manager: ProviderManager,
        cache: CacheStore | None = None,
        ttl: timedelta = DEFAULT_TTL,
        offline: bool = False,
        seed_loader: Callable[[], RateTable] = load_seed_rates
    ):
        self.provider_manager = provider_manager
        self.cache = cache or CacheStore()
        self.ttl = ttl
        self.offline = offline
        self._seed_loader = seed_loader
        self._stores: dict[Path, CacheStore] = {}
        if self.cache.persist_path is not None:
            self._stores[self.cache.persist_path] = self.cache

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider_manager: ProviderManager | None = None
    ) -> "RateService":
        return cls(
            provider_manager=provider_manager or build_provider_manager(settings),
            cache=CacheStore(settings.cache_path),
            ttl=timedelta(hours=settings.cache_ttl_hours),
            offline=settings.offline,
        )

    async def get_rates(self, options: RateOptions | None = None) -> RateTable:
        """Return the best available SOS-pivoted table. Never raises for outages."""
        options = options or RateOptions()
        store = self._store_for(options.persist_path)
        ttl = options.ttl if options.ttl is not None else self.ttl
        offline = options.offline if options.offline is not None else self.offline

        cached = await store.read()
        if cached is not None and store.is_fresh(cached, ttl):
            logger.debug(f"Using fresh cache captured at {cached.captured_at.isoformat()}")
            return self._complete(cached.rates)

        if offline:
            return self._fallback(cached, reason="offline mode")

        return await self._fetch_and_store(store, options, cached)

    async def refresh(self, options: RateOptions | None = None) -> RateTable:
        """Skip the freshness check and go to the network (cache/seed on failure)."""
        options = options or RateOptions()
        store = self._store_for(options.persist_path)
        cached = await store.read()
        return await self._fetch_and_store(store, options, cached)

    async def get_rate(
        self,
        currency: str | Currency,
        options: RateOptions | None = None
    ) -> float:
        """1 SOS expressed in currency."""
        code = normalize_currency(currency)
        table = await self.get_rates(options)
        return table[code]

    async def convert(
        self,
        amount: float,
        from_currency: str | Currency,
        to_currency: str | Currency,
        options: RateOptions | None = None
    ) -> float:
        """Convert amount between two currencies, routing through SOS."""
        src = normalize_currency(from_currency)
        dst = normalize_currency(to_currency)
        if src == dst:
            return amount

        table = await self.get_rates(options)
        if src == PIVOT_CURRENCY:
            return amount * table[dst]
        if dst == PIVOT_CURRENCY:
            return amount * (1 / table[src])
        return (amount / table[src]) * table[dst]

    async def _fetch_and_store(
        self,
        store: CacheStore,
        options: RateOptions,
        cached: CachedSnapshot | None
    ) -> RateTable:
        manager = self.provider_manager
        if options.provider is not None:
            manager = manager.with_primary(options.provider)

        try:
            rates = await manager.fetch_current()
        except AllProvidersExhausted as e:
            logger.warning(f"Live rates unavailable: {e}")
            return self._fallback(cached, reason="providers exhausted")

        rates = self._complete(rates, cached)
        await store.write(CachedSnapshot(captured_at=store.now(), rates=rates))
        return dict(rates)

    def _fallback(self, cached: CachedSnapshot | None, reason: str) -> RateTable:
        if cached is not None:
            logger.warning(
                f"Serving stale cache from {cached.captured_at.isoformat()} ({reason})"
            )
            return self._complete(cached.rates)

        logger.warning(f"Serving bundled seed rates ({reason})")
        return self._seed_loader()

    def _complete(
        self,
        rates: RateTable,
        previous: CachedSnapshot | None = None
    ) -> RateTable:
        """
        Fill currencies a provider left out, from the previous snapshot first
        and the seed table second, so every supported code resolves.
        """
        missing = [code for code in SUPPORTED_CURRENCIES if code not in rates]
        table = dict(rates)
        if not missing:
            return table

        seed: RateTable | None = None
        for code in missing:
            if previous is not None and code in previous.rates:
                table[code] = previous.rates[code]
                continue
            if seed is None:
                seed = self._seed_loader()
            table[code] = seed[code]

        logger.warning(f"Filled {len(missing)} missing rate(s): {', '.join(missing)}")
        return table

    def _store_for(self, persist_path: Path | None) -> CacheStore:
        if persist_path is None:
            return self.cache

        path = Path(persist_path).expanduser()
        store = self._stores.get(path)
        if store is None:
            store = CacheStore(path, clock=self.cache.now)
            self._stores[path] = store
        return store
