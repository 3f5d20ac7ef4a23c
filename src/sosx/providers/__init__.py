"""
SOSX Rate Providers Module

Multi-provider fallback hierarchy: exchangerate.host → fixer.io → currencyapi.com
"""

from sosx.providers.base import (
    AllProvidersExhausted,
    BaseRateProvider,
    ProviderConfigError,
    ProviderTimeout,
    RateProviderError,
    UnknownProviderError,
)
from sosx.providers.currencyapi import CurrencyAPIClient
from sosx.providers.exchangeratehost import ExchangerateHostClient
from sosx.providers.fixer import FixerClient
from sosx.providers.manager import ProviderManager, build_provider_manager, create_provider

__all__ = [
    "AllProvidersExhausted",
    "BaseRateProvider",
    "ProviderConfigError",
    "ProviderTimeout",
    "RateProviderError",
    "UnknownProviderError",
    "CurrencyAPIClient",
    "ExchangerateHostClient",
    "FixerClient",
    "ProviderManager",
    "build_provider_manager",
    "create_provider",
]
