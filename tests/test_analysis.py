"""
MarketAnalyzer Tests
"""

import asyncio
from datetime import date

import pytest

from conftest import SAMPLE_RATES, ManualClock, ScriptedProvider, provider_error
from sosx.analysis import InsufficientDataError, MarketAnalyzer
from sosx.historical import HistoricalRateService
from sosx.models import Trend
from sosx.providers.manager import ProviderManager


def _analyzer(historical, clock=None) -> MarketAnalyzer:
    service = HistoricalRateService(
        ProviderManager(primary=ScriptedProvider(historical=historical)),
        clock=clock or ManualClock(),
    )
    return MarketAnalyzer(service)


class TestIndicators:
    """Tests for the individual indicator functions."""

    def setup_method(self):
        self.analyzer = _analyzer({})

    def test_trend_bullish(self):
        rates = [1.0] * 7 + [1.05] * 7

        assert self.analyzer.compute_trend(rates) == Trend.BULLISH

    def test_trend_bearish(self):
        rates = [1.0] * 7 + [0.95] * 7

        assert self.analyzer.compute_trend(rates) == Trend.BEARISH

    def test_trend_within_threshold_is_neutral(self):
        rates = [1.0] * 7 + [1.01] * 7

        assert self.analyzer.compute_trend(rates) == Trend.NEUTRAL

    def test_trend_without_previous_week_is_neutral(self):
        assert self.analyzer.compute_trend([1.0, 2.0, 3.0]) == Trend.NEUTRAL

    def test_support_and_resistance_use_last_30_days(self):
        rates = [0.1] + [1.0 + i / 100 for i in range(30)]

        assert self.analyzer.compute_support(rates) == 1.0
        assert self.analyzer.compute_resistance(rates) == pytest.approx(1.29)

    def test_rsi_all_gains(self):
        rates = [1.0 + i for i in range(20)]

        assert self.analyzer.compute_rsi(rates) == 100.0

    def test_rsi_all_losses(self):
        rates = [20.0 - i for i in range(20)]

        assert self.analyzer.compute_rsi(rates) == 0.0

    def test_rsi_balanced(self):
        rates = [1.0, 2.0] * 10

        assert self.analyzer.compute_rsi(rates) == pytest.approx(50.0)

    def test_rsi_short_series_is_neutral(self):
        assert self.analyzer.compute_rsi([1.0, 2.0, 3.0]) == 50.0

    def test_sma(self):
        rates = [float(i) for i in range(1, 31)]

        assert self.analyzer.compute_sma(rates) == pytest.approx([27.0, 23.5, 15.5])

    def test_sma_short_series_falls_back_to_last_rate(self):
        rates = [float(i) for i in range(1, 11)]

        sma = self.analyzer.compute_sma(rates)

        assert sma[0] == pytest.approx(7.0)
        assert sma[1:] == [10.0, 10.0]

    def test_ema_of_constant_series(self):
        assert self.analyzer.compute_ema([2.0] * 30) == pytest.approx([2.0, 2.0, 2.0])

    def test_ema_weights_recent_rates(self):
        rates = [1.0] * 20 + [2.0] * 10

        short, medium, long = self.analyzer.compute_ema(rates)

        assert 1.0 < long < medium < short < 2.0


class TestAnalyzeMarket:
    """Tests for MarketAnalyzer.analyze_market()."""

    def setup_method(self):
        self.clock = ManualClock()
        self.today = self.clock().date()

    def test_rising_market(self):
        def rising(day: date) -> dict[str, float]:
            offset = (day - date(2026, 1, 1)).days
            return dict(SAMPLE_RATES, USD=0.00175 * (1 + 0.01 * offset))

        analyzer = _analyzer(rising, self.clock)

        analysis = asyncio.run(analyzer.analyze_market("usd", "30d"))

        assert analysis.currency == "USD"
        assert analysis.base_currency == "SOS"
        assert analysis.period == "30d"
        assert analysis.trend == Trend.BULLISH
        assert analysis.rsi == 100.0
        assert analysis.support < analysis.resistance
        assert len(analysis.sma) == 3
        assert len(analysis.ema) == 3
        assert analysis.volatility > 0

    def test_flat_market(self):
        analyzer = _analyzer(lambda day: dict(SAMPLE_RATES), self.clock)

        analysis = asyncio.run(analyzer.analyze_market("KES"))

        assert analysis.trend == Trend.NEUTRAL
        assert analysis.volatility == 0.0
        assert analysis.support == analysis.resistance == SAMPLE_RATES["KES"]

    def test_insufficient_history(self):
        def sparse(day: date) -> dict[str, float]:
            if day.day % 3:
                raise provider_error("sparse", "NOT_FOUND")
            return dict(SAMPLE_RATES)

        analyzer = _analyzer(sparse, self.clock)

        with pytest.raises(InsufficientDataError):
            asyncio.run(analyzer.analyze_market("EUR", "30d"))

    def test_invalid_period(self):
        analyzer = _analyzer(lambda day: dict(SAMPLE_RATES), self.clock)

        with pytest.raises(ValueError):
            asyncio.run(analyzer.analyze_market("EUR", "soon"))
