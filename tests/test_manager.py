"""
ProviderManager Unit Tests

Retry/backoff, ordered failover, timeouts and the provider factory.
"""

import asyncio
from datetime import date

import pytest

from conftest import SAMPLE_RATES, ScriptedProvider, SleepRecorder, provider_error
from sosx.config import Settings
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
from sosx.providers.manager import ProviderManager, build_provider_manager, create_provider


class SlowProvider(BaseRateProvider):
    """Never answers within any reasonable timeout; records cancellation."""

    PROVIDER_NAME = "slow"

    def __init__(self, timeout: float | None = None):
        self.TIMEOUT = timeout
        self.cancelled = 0

    async def fetch_current(self):
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return dict(SAMPLE_RATES)


class TestFetchCurrent:
    """Tests for ProviderManager.fetch_current()."""

    def setup_method(self):
        self.sleeper = SleepRecorder()

    def _manager(self, primary, fallbacks=None, max_retries=3, timeout=10.0):
        return ProviderManager(
            primary=primary,
            fallbacks=fallbacks,
            timeout=timeout,
            max_retries=max_retries,
            sleep=self.sleeper.sleep,
        )

    def test_first_attempt_success_makes_no_backoff(self):
        primary = ScriptedProvider("p1")
        manager = self._manager(primary)

        rates = asyncio.run(manager.fetch_current())

        assert rates == SAMPLE_RATES
        assert primary.calls == 1
        assert self.sleeper.delays == []

    @pytest.mark.parametrize("succeed_on", [2, 3])
    def test_success_after_failures_uses_exponential_backoff(self, succeed_on):
        """N-1 failures then success: exactly N-1 delays of 2^(attempt-1) seconds."""
        failures = [provider_error("p1")] * (succeed_on - 1)
        primary = ScriptedProvider("p1", outcomes=failures + [dict(SAMPLE_RATES)])
        fallback = ScriptedProvider("p2")
        manager = self._manager(primary, [fallback], max_retries=3)

        rates = asyncio.run(manager.fetch_current())

        assert rates == SAMPLE_RATES
        assert primary.calls == succeed_on
        assert fallback.calls == 0
        assert self.sleeper.delays == [2 ** (i - 1) for i in range(1, succeed_on)]

    def test_two_provider_scenario(self):
        """P1 always fails, P2 answers: 2 attempts on P1, one on P2."""
        p1 = ScriptedProvider("p1", outcomes=[provider_error("p1")])
        p2 = ScriptedProvider("p2", outcomes=[{"SOS": 1, "USD": 0.002}])
        manager = self._manager(p1, [p2], max_retries=2)

        rates = asyncio.run(manager.fetch_current())

        assert rates == {"SOS": 1.0, "USD": 0.002}
        assert p1.calls == 2
        assert p2.calls == 1
        # backoff only between attempts on the same provider
        assert self.sleeper.delays == [1.0]

    def test_all_providers_exhausted_carries_last_error(self):
        last = provider_error("p2", "HTTP_500")
        p1 = ScriptedProvider("p1", outcomes=[provider_error("p1")])
        p2 = ScriptedProvider("p2", outcomes=[last])
        manager = self._manager(p1, [p2], max_retries=3)

        with pytest.raises(AllProvidersExhausted) as exc_info:
            asyncio.run(manager.fetch_current())

        assert exc_info.value.last_error is last
        assert len(exc_info.value.errors) == 2
        assert p1.calls == 3
        assert p2.calls == 3
        assert self.sleeper.delays == [1.0, 2.0, 1.0, 2.0]

    def test_unexpected_exception_counts_as_failed_attempt(self):
        p1 = ScriptedProvider("p1", outcomes=[KeyError("rates"), dict(SAMPLE_RATES)])
        manager = self._manager(p1, max_retries=2)

        assert asyncio.run(manager.fetch_current()) == SAMPLE_RATES
        assert p1.calls == 2

    def test_timeout_cancels_attempt_and_moves_on(self):
        slow = SlowProvider(timeout=0.01)
        fallback = ScriptedProvider("fast")
        manager = self._manager(slow, [fallback], max_retries=2)

        rates = asyncio.run(manager.fetch_current())

        assert rates == SAMPLE_RATES
        assert slow.cancelled == 2
        assert fallback.calls == 1

    def test_timeout_error_type(self):
        manager = self._manager(SlowProvider(timeout=0.01), max_retries=1)

        with pytest.raises(AllProvidersExhausted) as exc_info:
            asyncio.run(manager.fetch_current())

        assert isinstance(exc_info.value.last_error, ProviderTimeout)
        assert exc_info.value.last_error.error_type == "TIMEOUT"

    def test_manager_timeout_applies_when_provider_declares_none(self):
        manager = self._manager(SlowProvider(), max_retries=1, timeout=0.01)

        with pytest.raises(AllProvidersExhausted):
            asyncio.run(manager.fetch_current())

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError):
            ProviderManager(primary=ScriptedProvider(), max_retries=0)
        with pytest.raises(ValueError):
            ProviderManager(primary=ScriptedProvider(), timeout=0)


class TestFetchHistorical:
    """Tests for ProviderManager.fetch_historical()."""

    def test_skips_providers_without_historical_capability(self):
        current_only = ScriptedProvider("current-only")
        hist = ScriptedProvider("hist", historical={"2026-03-01": SAMPLE_RATES})
        manager = ProviderManager(primary=current_only, fallbacks=[hist])

        rates = asyncio.run(manager.fetch_historical(date(2026, 3, 1)))

        assert rates == SAMPLE_RATES
        assert current_only.calls == 0
        assert hist.historical_calls == [date(2026, 3, 1)]

    def test_first_success_wins_without_retries(self):
        failing = ScriptedProvider("h1", historical={}, supports_historical=True)
        working = ScriptedProvider("h2", historical={"2026-03-01": SAMPLE_RATES})
        untouched = ScriptedProvider("h3", historical={"2026-03-01": SAMPLE_RATES})
        manager = ProviderManager(primary=failing, fallbacks=[working, untouched])

        asyncio.run(manager.fetch_historical(date(2026, 3, 1)))

        assert len(failing.historical_calls) == 1
        assert len(working.historical_calls) == 1
        assert untouched.historical_calls == []

    def test_no_capable_provider(self):
        manager = ProviderManager(primary=ScriptedProvider("current-only"))

        with pytest.raises(AllProvidersExhausted) as exc_info:
            asyncio.run(manager.fetch_historical(date(2026, 3, 1)))

        assert exc_info.value.last_error is None


class TestChainManagement:
    """Tests for fallback ordering and status reporting."""

    def test_add_fallback_sorts_by_priority_with_none_last(self):
        manager = ProviderManager(primary=ScriptedProvider("primary"))
        manager.add_fallback_provider(ScriptedProvider("none-a"))
        manager.add_fallback_provider(ScriptedProvider("three", priority=3))
        manager.add_fallback_provider(ScriptedProvider("one", priority=1))
        manager.add_fallback_provider(ScriptedProvider("none-b"))

        names = [p.name for p in manager.providers]

        assert names == ["primary", "one", "three", "none-a", "none-b"]

    def test_provider_status(self):
        manager = ProviderManager(
            primary=ScriptedProvider("primary"),
            fallbacks=[ScriptedProvider("hist", priority=2, supports_historical=True)],
        )

        status = manager.get_provider_status()

        assert [s.name for s in status] == ["primary", "hist"]
        assert status[0].position == 0
        assert status[1].priority == 2
        assert status[1].supports_historical is True

    def test_set_primary_and_health_check_all(self):
        manager = ProviderManager(primary=ScriptedProvider("old"))
        manager.set_primary_provider(ScriptedProvider("new"))
        manager.add_fallback_provider(ScriptedProvider("spare"))

        health = asyncio.run(manager.health_check_all())

        assert health == {"new": True, "spare": True}

    def test_hung_health_check_reports_unhealthy(self):
        class HungHealth(SlowProvider):
            async def health_check(self):
                await self.fetch_current()
                return True

        manager = ProviderManager(primary=HungHealth(timeout=0.01))
        manager.add_fallback_provider(ScriptedProvider("spare"))

        health = asyncio.run(manager.health_check_all())

        assert health == {"slow": False, "spare": True}

    def test_with_primary_shares_policy(self):
        sleeper = SleepRecorder()
        manager = ProviderManager(
            primary=ScriptedProvider("a"), timeout=3.0, max_retries=5, sleep=sleeper.sleep
        )
        override = ScriptedProvider("override")

        single = manager.with_primary(override)

        assert single.providers == [override]
        assert single.timeout == 3.0
        assert single.max_retries == 5


class TestFactory:
    """Tests for create_provider() and build_provider_manager()."""

    def test_known_providers(self):
        assert isinstance(create_provider("exchangerate-host"), ExchangerateHostClient)
        assert isinstance(create_provider("Fixer", api_key="k"), FixerClient)
        assert isinstance(create_provider("currencyapi", api_key="k"), CurrencyAPIClient)

    def test_keyed_provider_without_key(self):
        with pytest.raises(ProviderConfigError):
            create_provider("fixer")

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError):
            create_provider("bloomberg")

    def test_build_skips_unkeyed_fallbacks(self):
        settings = Settings(
            _env_file=None,
            fallback_providers=["fixer", "currencyapi"],
            currencyapi_api_key="secret",
            max_retries=2,
        )

        manager = build_provider_manager(settings)

        assert [p.name for p in manager.providers] == ["exchangerate.host", "currencyapi.com"]
        assert manager.max_retries == 2
