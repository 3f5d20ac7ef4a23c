"""
Shared fakes for the SOSX test suite.

No test touches the network: providers are scripted, backoff sleeps are
recorded instead of awaited, and time is driven by a manual clock.
"""

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

import pytest

from sosx.models import RateTable
from sosx.providers.base import BaseRateProvider, RateProviderError


SAMPLE_RATES: RateTable = {
    "SOS": 1.0,
    "USD": 0.00175,
    "EUR": 0.0016,
    "GBP": 0.00138,
    "KES": 0.226,
    "ETB": 0.099,
    "AED": 0.00643,
    "SAR": 0.00656,
    "TRY": 0.0568,
    "CNY": 0.0127,
}


def provider_error(name: str = "fake", error_type: str = "HTTP_503") -> RateProviderError:
    return RateProviderError(message=f"{name} is down", provider=name, error_type=error_type)


class ScriptedProvider(BaseRateProvider):
    """
    Provider whose fetch_current() outcomes are scripted in order. Each
    outcome is a RateTable (returned) or an exception (raised); the last
    outcome repeats once the script runs out.
    """

    def __init__(
        self,
        name: str = "fake",
        outcomes: list | None = None,
        historical: dict[str, RateTable] | Callable[[date], RateTable] | None = None,
        priority: int | None = None,
        timeout: float | None = None,
        supports_historical: bool = False
    ):
        self.PROVIDER_NAME = name
        self.PRIORITY = priority
        self.TIMEOUT = timeout
        self.SUPPORTS_HISTORICAL = supports_historical or historical is not None
        self.outcomes = list(outcomes if outcomes is not None else [dict(SAMPLE_RATES)])
        self.historical = historical
        self.calls = 0
        self.historical_calls: list[date] = []

    async def fetch_current(self) -> RateTable:
        self.calls += 1
        outcome = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return dict(outcome)

    async def fetch_historical(self, day: date) -> RateTable:
        self.historical_calls.append(day)
        if callable(self.historical):
            return self.historical(day)
        if self.historical and day.isoformat() in self.historical:
            return dict(self.historical[day.isoformat()])
        raise provider_error(self.name, "NOT_FOUND")


class ManualClock:
    """Aware UTC clock advanced by hand."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class SleepRecorder:
    """Records backoff delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(float(delay))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
