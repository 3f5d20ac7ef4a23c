"""
Historical rates: a date-keyed cache of past rate tables and the time-series
statistics derived from it.

The cache is pruned on every write: any date older than the retention window
(90 days by default) is dropped before the file is persisted, whichever date
triggered the write.
"""

import logging
import math
import re
import statistics
from collections.abc import Sequence
from datetime import date, timedelta
from pathlib import Path
from typing import Any

from sosx.cache import Clock, utc_now
from sosx.config import Settings
from sosx.models import (
    PIVOT_CURRENCY,
    Currency,
    RatePoint,
    RateTable,
    normalize_currency,
    validate_rate_table,
)
from sosx.providers.base import AllProvidersExhausted
from sosx.providers.manager import ProviderManager
from sosx.storage import read_json, write_json

logger = logging.getLogger(__name__)

RETENTION_DAYS = 90
DAYS_PER_YEAR = 365

_PERIOD_RE = re.compile(r"^\s*(\d+)\s*([dwmy]?)\s*$", re.IGNORECASE)
_PERIOD_UNIT_DAYS = {"": 1, "d": 1, "w": 7, "m": 30, "y": 365}


def parse_period(period: str | int) -> int:
    """
    Convert "30d", "2w", "3m" or "1y" into a number of days.

    Raises:
        ValueError: for anything else, or a zero-length period
    """
    if isinstance(period, int):
        days = period
    else:
        match = _PERIOD_RE.match(period)
        if not match:
            raise ValueError(f"Invalid period {period!r}; expected e.g. '30d', '4w', '3m', '1y'")
        days = int(match.group(1)) * _PERIOD_UNIT_DAYS[match.group(2).lower()]
    if days <= 0:
        raise ValueError(f"Period must cover at least one day, got {period!r}")
    return days


def daily_returns(rates: Sequence[float]) -> list[float]:
    """Simple returns r_i = (rate_i - rate_{i-1}) / rate_{i-1}."""
    return [
        (rates[i] - rates[i - 1]) / rates[i - 1]
        for i in range(1, len(rates))
    ]


def annualized_volatility(rates: Sequence[float]) -> float:
    """
    Sample standard deviation of daily returns, annualized with sqrt(365).

    A single return r (two points) gives |r|*sqrt(365); fewer than two points
    gives 0.
    """
    if len(rates) < 2:
        return 0.0
    returns = daily_returns(rates)
    if len(returns) == 1:
        return abs(returns[0]) * math.sqrt(DAYS_PER_YEAR)
    return statistics.stdev(returns) * math.sqrt(DAYS_PER_YEAR)


def _as_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _parse_cache(raw: Any, source: Path | None) -> dict[str, RateTable]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring corrupt historical cache at {source}: not an object")
        return {}

    entries: dict[str, RateTable] = {}
    for key, value in raw.items():
        try:
            day = date.fromisoformat(key)
            table = validate_rate_table(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Dropping corrupt historical cache entry {key!r} at {source}: {e}")
            continue
        entries[day.isoformat()] = table
    return entries


class HistoricalRateService:
    """
    Past rate tables keyed by ISO date, fetched lazily through the shared
    ProviderManager and kept for retention_days.
    """

    def __init__(
        self,
        provider_manager: ProviderManager,
        persist_path: str | Path | None = None,
        retention_days: int = RETENTION_DAYS,
        clock: Clock = utc_now
    ):
        self.provider_manager = provider_manager
        self.persist_path = Path(persist_path).expanduser() if persist_path else None
        self.retention_days = retention_days
        self._clock = clock
        self._cache: dict[str, RateTable] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider_manager: ProviderManager
    ) -> "HistoricalRateService":
        return cls(
            provider_manager=provider_manager,
            persist_path=settings.historical_cache_path,
            retention_days=settings.historical_retention_days,
        )

    def today(self) -> date:
        return self._clock().date()

    async def cached_dates(self) -> list[str]:
        cache = await self._load()
        return sorted(cache)

    async def get_historical_rates(self, day: date | str) -> RateTable:
        """
        Rates for one past date: cache first, then the provider chain.

        Raises:
            AllProvidersExhausted: if the date is not cached and no provider answered
            ValueError: for a date in the future or a malformed date string
        """
        day = _as_date(day)
        if day > self.today():
            raise ValueError(f"No historical rates for a future date: {day}")

        cache = await self._load()
        key = day.isoformat()
        if key in cache:
            logger.debug(f"Using cached historical rates for {key}")
            return dict(cache[key])

        rates = await self.provider_manager.fetch_historical(day)
        await self._store(key, rates)
        return dict(rates)

    async def get_rate_history(
        self,
        currency: str | Currency,
        start: date | str,
        end: date | str,
        base_currency: str | Currency = PIVOT_CURRENCY
    ) -> list[RatePoint]:
        """
        One point per calendar day in [start, end], oldest first. Days that
        cannot be fetched are skipped.
        """
        code = normalize_currency(currency)
        base = normalize_currency(base_currency)
        current = _as_date(start)
        last = _as_date(end)
        history: list[RatePoint] = []

        while current <= last:
            try:
                table = await self.get_historical_rates(current)
                rate = table[code] if base == PIVOT_CURRENCY else 1 / table[code]
            except (AllProvidersExhausted, KeyError, ValueError) as e:
                logger.warning(f"Skipping {current.isoformat()} due to error: {e}")
            else:
                history.append(RatePoint(date=current, rate=rate))
            current += timedelta(days=1)

        return history

    async def get_volatility(
        self,
        currency: str | Currency,
        period: str | int = "30d"
    ) -> float:
        """Annualized volatility of currency over the trailing period."""
        days = parse_period(period)
        end = self.today()
        start = end - timedelta(days=days)
        history = await self.get_rate_history(currency, start, end)
        return annualized_volatility([point.rate for point in history])

    async def _load(self) -> dict[str, RateTable]:
        if self._cache is None:
            raw = await read_json(self.persist_path) if self.persist_path else None
            self._cache = _parse_cache(raw, self.persist_path)
        return self._cache

    async def _store(self, key: str, rates: RateTable) -> None:
        cache = await self._load()
        cache[key] = dict(rates)
        pruned = self._prune(cache)
        if pruned:
            logger.info(f"Pruned {len(pruned)} historical entries older than {self.retention_days} days")

        if self.persist_path is not None:
            await write_json(self.persist_path, cache)

    def _prune(self, cache: dict[str, RateTable]) -> list[str]:
        cutoff = (self.today() - timedelta(days=self.retention_days)).isoformat()
        expired = [key for key in cache if key < cutoff]
        for key in expired:
            del cache[key]
        return expired
