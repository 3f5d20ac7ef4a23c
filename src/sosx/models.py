"""
SOSX Data Models

All rate tables are pivoted on the Somali shilling: table["USD"] is the number
of US dollars bought by 1 SOS, and table["SOS"] is exactly 1.0.
"""

import math
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Currency(str, Enum):
    """Supported ISO 4217 currency codes."""
    SOS = "SOS"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    KES = "KES"
    ETB = "ETB"
    AED = "AED"
    SAR = "SAR"
    TRY = "TRY"
    CNY = "CNY"


PIVOT_CURRENCY = Currency.SOS.value
SUPPORTED_CURRENCIES: tuple[str, ...] = tuple(c.value for c in Currency)

RateTable = dict[str, float]


class UnsupportedCurrencyError(ValueError):
    """Raised when a caller asks for a currency outside SUPPORTED_CURRENCIES."""

    def __init__(self, currency: str):
        super().__init__(
            f"Unsupported currency: {currency!r}. "
            f"Supported: {', '.join(SUPPORTED_CURRENCIES)}"
        )
        self.currency = currency


def normalize_currency(currency: str | Currency) -> str:
    """Return the upper-case code, raising UnsupportedCurrencyError if unknown."""
    if isinstance(currency, Currency):
        return currency.value
    code = str(currency).strip().upper()
    if code not in SUPPORTED_CURRENCIES:
        raise UnsupportedCurrencyError(str(currency))
    return code


def validate_rate_table(raw: Mapping[str, Any]) -> RateTable:
    """
    Validate a loosely-typed mapping into a RateTable.

    Unknown currency codes are dropped. The pivot entry must be present and is
    normalized to exactly 1.0; every kept value must be a finite positive
    number.

    Raises:
        ValueError: if the pivot is missing or a value is not a positive number
    """
    if not isinstance(raw, Mapping):
        raise ValueError(f"Rate table must be a mapping, got {type(raw).__name__}")

    if PIVOT_CURRENCY not in raw:
        raise ValueError(f"Rate table is missing the pivot currency {PIVOT_CURRENCY}")

    table: RateTable = {}
    for code, value in raw.items():
        code = str(code).upper()
        if code not in SUPPORTED_CURRENCIES:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Rate for {code} is not a number: {value!r}")
        rate = float(value)
        if not math.isfinite(rate) or rate <= 0:
            raise ValueError(f"Rate for {code} must be positive, got {value!r}")
        table[code] = rate

    table[PIVOT_CURRENCY] = 1.0
    return table


# === Snapshots ===

class CachedSnapshot(BaseModel):
    """Most recent successfully fetched rate table and its capture time."""
    captured_at: datetime
    rates: RateTable

    @field_validator("captured_at")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("captured_at must be timezone-aware")
        return v

    @field_validator("rates", mode="before")
    @classmethod
    def check_rates(cls, v: Any) -> RateTable:
        return validate_rate_table(v)


# === Providers ===

class ProviderDescriptor(BaseModel):
    """Static description of a rate provider."""
    name: str
    priority: int | None = Field(
        default=None,
        description="Lower is more preferred; None is least preferred"
    )
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Per-attempt timeout in seconds (None = manager default)"
    )
    supports_current: bool = True
    supports_historical: bool = False


class ProviderStatus(BaseModel):
    """One row of ProviderManager.get_provider_status()."""
    name: str
    position: int = Field(ge=0, description="0 = primary")
    priority: int | None
    supports_historical: bool


# === Queries ===

class RatePoint(BaseModel):
    """One day of a rate history."""
    date: date
    rate: float


# === Market Analysis ===

class Trend(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class MarketAnalysis(BaseModel):
    """Indicators derived from a rate history."""
    currency: str
    base_currency: str = PIVOT_CURRENCY
    period: str
    volatility: float = Field(ge=0)
    trend: Trend
    support: float
    resistance: float
    rsi: float = Field(ge=0, le=100)
    sma: list[float] = Field(description="Simple moving averages for 7/14/30 days")
    ema: list[float] = Field(description="Exponential moving averages for 7/14/30 days")
