"""
SOSX API Module

REST surface over RateService and HistoricalRateService.
"""

from sosx.api.routes import router
from sosx.api.schemas import (
    ConversionResponse,
    ErrorResponse,
    HealthResponse,
    RatesResponse,
)

__all__ = [
    "router",
    "ConversionResponse",
    "ErrorResponse",
    "HealthResponse",
    "RatesResponse",
]
