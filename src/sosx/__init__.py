"""
SOSX: Somali-shilling exchange rates with multi-provider failover, a two-tier
cache and a bundled seed floor.
"""

__version__ = "1.0.0"

from sosx.alerts import AlertManager, RateAlert
from sosx.cache import CacheStore
from sosx.historical import HistoricalRateService
from sosx.models import (
    PIVOT_CURRENCY,
    SUPPORTED_CURRENCIES,
    CachedSnapshot,
    Currency,
    RatePoint,
    UnsupportedCurrencyError,
)
from sosx.providers import AllProvidersExhausted, ProviderManager, RateProviderError
from sosx.service import RateOptions, RateService
from sosx.transfer_fees import TransferFeeCalculator, TransferMethod, TransferQuote

__all__ = [
    "__version__",
    "AlertManager",
    "AllProvidersExhausted",
    "CacheStore",
    "CachedSnapshot",
    "Currency",
    "HistoricalRateService",
    "PIVOT_CURRENCY",
    "ProviderManager",
    "RateAlert",
    "RateOptions",
    "RatePoint",
    "RateProviderError",
    "RateService",
    "SUPPORTED_CURRENCIES",
    "TransferFeeCalculator",
    "TransferMethod",
    "TransferQuote",
    "UnsupportedCurrencyError",
]
