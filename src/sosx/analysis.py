"""
Market Analyzer - indicators over a historical rate series

Trend, support/resistance, RSI and moving averages, computed from the daily
history supplied by HistoricalRateService.
"""

import logging
from collections.abc import Sequence
from datetime import timedelta

from sosx.historical import HistoricalRateService, annualized_volatility, parse_period
from sosx.models import Currency, MarketAnalysis, Trend, normalize_currency

logger = logging.getLogger(__name__)


class InsufficientDataError(ValueError):
    """Not enough history points to analyze a market."""


class MarketAnalyzer:
    """
    Compute market indicators for one currency against SOS.

    Thresholds:
    - Trend: last 7 days vs previous 7 days, ±2% change
    - RSI: 14-day window
    - SMA/EMA: 7, 14 and 30 day windows
    """

    MIN_POINTS = 14
    TREND_THRESHOLD = 0.02
    RSI_PERIOD = 14
    WINDOWS = (7, 14, 30)

    def __init__(self, historical: HistoricalRateService):
        self.historical = historical

    async def analyze_market(
        self,
        currency: str | Currency,
        period: str = "30d"
    ) -> MarketAnalysis:
        """
        Raises:
            InsufficientDataError: if fewer than MIN_POINTS days could be fetched
        """
        code = normalize_currency(currency)
        days = parse_period(period)
        end = self.historical.today()
        start = end - timedelta(days=days)

        history = await self.historical.get_rate_history(code, start, end)
        if len(history) < self.MIN_POINTS:
            raise InsufficientDataError(
                f"Insufficient data for analysis: {len(history)} day(s), "
                f"minimum {self.MIN_POINTS} required"
            )

        rates = [point.rate for point in history]
        logger.info(f"Analyzing {code} over {len(rates)} days")

        return MarketAnalysis(
            currency=code,
            period=period,
            volatility=annualized_volatility(rates),
            trend=self.compute_trend(rates),
            support=self.compute_support(rates),
            resistance=self.compute_resistance(rates),
            rsi=self.compute_rsi(rates),
            sma=self.compute_sma(rates),
            ema=self.compute_ema(rates),
        )

    def compute_trend(self, rates: Sequence[float]) -> Trend:
        if len(rates) < 2:
            return Trend.NEUTRAL

        recent = rates[-7:]
        older = rates[-14:-7]
        if not older:
            return Trend.NEUTRAL

        recent_avg = sum(recent) / len(recent)
        older_avg = sum(older) / len(older)
        change = (recent_avg - older_avg) / older_avg

        if change > self.TREND_THRESHOLD:
            return Trend.BULLISH
        if change < -self.TREND_THRESHOLD:
            return Trend.BEARISH
        return Trend.NEUTRAL

    def compute_support(self, rates: Sequence[float]) -> float:
        """Lowest rate of the last 30 days."""
        return min(rates[-30:])

    def compute_resistance(self, rates: Sequence[float]) -> float:
        """Highest rate of the last 30 days."""
        return max(rates[-30:])

    def compute_rsi(self, rates: Sequence[float]) -> float:
        """
        Relative Strength Index over RSI_PERIOD changes.

        50 (neutral) when the series is too short, 100 when there were no losses.
        """
        period = self.RSI_PERIOD
        if len(rates) < period + 1:
            return 50.0

        changes = [rates[i] - rates[i - 1] for i in range(1, len(rates))][-period:]
        gains = [c for c in changes if c > 0]
        losses = [-c for c in changes if c < 0]

        avg_gain = sum(gains) / len(gains) if gains else 0.0
        avg_loss = sum(losses) / len(losses) if losses else 0.0

        if avg_loss == 0:
            return 100.0

        rs = avg_gain / avg_loss
        return 100 - (100 / (1 + rs))

    def compute_sma(self, rates: Sequence[float]) -> list[float]:
        result = []
        for window in self.WINDOWS:
            if len(rates) < window:
                result.append(rates[-1] if rates else 0.0)
                continue
            recent = rates[-window:]
            result.append(sum(recent) / len(recent))
        return result

    def compute_ema(self, rates: Sequence[float]) -> list[float]:
        result = []
        for window in self.WINDOWS:
            if len(rates) < window:
                result.append(rates[-1] if rates else 0.0)
                continue
            multiplier = 2 / (window + 1)
            ema = rates[0]
            for rate in rates[1:]:
                ema = rate * multiplier + ema * (1 - multiplier)
            result.append(ema)
        return result
