"""
SOSX API Response Schemas
"""

from datetime import date as DateType, datetime
from typing import Any

from pydantic import BaseModel, Field

from sosx.alerts import AlertDirection, RateAlert, TriggeredAlert
from sosx.models import PIVOT_CURRENCY, ProviderStatus, RatePoint
from sosx.transfer_fees import FeeStructure, TransferMethod, TransferQuote


class RatesResponse(BaseModel):
    """Response schema for /api/v1/rates"""
    base: str = Field(default=PIVOT_CURRENCY, description="Pivot currency")
    rates: dict[str, float] = Field(description="1 SOS expressed in each currency")

    model_config = {
        "json_schema_extra": {
            "example": {
                "base": "SOS",
                "rates": {"SOS": 1.0, "USD": 0.00175, "EUR": 0.0016, "KES": 0.225}
            }
        }
    }


class RateResponse(BaseModel):
    """Response schema for /api/v1/rates/{currency}"""
    base: str = PIVOT_CURRENCY
    currency: str
    rate: float = Field(description="1 SOS expressed in currency")


class ConversionResponse(BaseModel):
    """Response schema for /api/v1/convert"""
    amount: float
    from_currency: str
    to_currency: str
    result: float

    model_config = {
        "json_schema_extra": {
            "example": {
                "amount": 100.0,
                "from_currency": "USD",
                "to_currency": "SOS",
                "result": 57142.86
            }
        }
    }


class HistoricalRatesResponse(BaseModel):
    """Response schema for /api/v1/historical/{date}"""
    date: DateType
    base: str = PIVOT_CURRENCY
    rates: dict[str, float]


class HistoryResponse(BaseModel):
    """Response schema for /api/v1/history/{currency}"""
    currency: str
    base: str
    start: DateType
    end: DateType
    points: list[RatePoint] = Field(description="Ascending by date; failed days are absent")


class VolatilityResponse(BaseModel):
    """Response schema for /api/v1/volatility/{currency}"""
    currency: str
    period: str
    volatility: float = Field(description="Annualized volatility of daily returns")


class ProvidersResponse(BaseModel):
    """Response schema for /api/v1/providers"""
    providers: list[ProviderStatus]


class HealthResponse(BaseModel):
    """Health check response for /api/v1/health"""
    status: str = Field(description="Service health status")
    version: str = Field(description="API version")
    offline: bool = Field(description="Whether network fetches are disabled")
    cached_at: datetime | None = Field(
        default=None,
        description="Capture time of the cached current-rate snapshot"
    )
    cache_age_hours: float | None = Field(
        default=None,
        description="Hours since the cached snapshot was captured"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "offline": False,
                "cached_at": "2026-01-15T12:00:00Z",
                "cache_age_hours": 2.5
            }
        }
    }


# === Transfers ===

class TransferComparisonResponse(BaseModel):
    """Response schema for /api/v1/transfer/compare"""
    amount: float
    from_currency: str
    to_currency: str
    method: TransferMethod
    quotes: list[TransferQuote] = Field(description="Cheapest total cost first")


class TransferProvidersResponse(BaseModel):
    """Response schema for /api/v1/transfer/providers"""
    providers: dict[str, dict[TransferMethod, FeeStructure]]


# === Alerts ===

class AlertCreateRequest(BaseModel):
    """Request body for POST /api/v1/alerts"""
    from_currency: str
    to_currency: str
    threshold: float = Field(gt=0, description="TO per one FROM")
    direction: AlertDirection

    model_config = {
        "json_schema_extra": {
            "example": {
                "from_currency": "USD",
                "to_currency": "SOS",
                "threshold": 580.0,
                "direction": "above"
            }
        }
    }


class AlertsResponse(BaseModel):
    """Response schema for /api/v1/alerts"""
    alerts: list[RateAlert]


class AlertCheckResponse(BaseModel):
    """Response schema for /api/v1/alerts/check"""
    checked_at: datetime
    triggered: list[TriggeredAlert]


class ErrorDetail(BaseModel):
    """Error detail information."""
    code: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details"
    )
    timestamp: datetime = Field(description="Error timestamp")


class ErrorResponse(BaseModel):
    """Error envelope shared by every endpoint."""
    error: ErrorDetail

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": {
                    "code": "SOSX_UNSUPPORTED_CURRENCY",
                    "message": "Unsupported currency: 'XYZ'",
                    "details": {"currency": "XYZ"},
                    "timestamp": "2026-01-15T15:30:00Z"
                }
            }
        }
    }
