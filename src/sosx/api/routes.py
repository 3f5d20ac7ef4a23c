"""
SOSX API Routes

API base URL: /api/v1/
Services are constructed once by the application factory and read from
app.state; routes never build their own.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from sosx import __version__
from sosx.alerts import AlertManager, AlertNotFoundError, AlertUpdate, RateAlert
from sosx.analysis import InsufficientDataError, MarketAnalyzer
from sosx.api.schemas import (
    AlertCheckResponse,
    AlertCreateRequest,
    AlertsResponse,
    ConversionResponse,
    ErrorResponse,
    HealthResponse,
    HistoricalRatesResponse,
    HistoryResponse,
    ProvidersResponse,
    RateResponse,
    RatesResponse,
    TransferComparisonResponse,
    TransferProvidersResponse,
    VolatilityResponse,
)
from sosx.historical import HistoricalRateService
from sosx.models import PIVOT_CURRENCY, MarketAnalysis, UnsupportedCurrencyError, normalize_currency
from sosx.providers.base import AllProvidersExhausted
from sosx.service import RateService
from sosx.transfer_fees import (
    REMITTANCE_PROVIDERS,
    NoTransferOptionError,
    TransferFeeCalculator,
    TransferMethod,
    TransferMethodUnavailable,
    TransferQuote,
    UnknownRemittanceProvider,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["SOSX"])

# Stale beyond this multiple of the TTL and /health reports unhealthy
HEALTH_STALENESS_FACTOR = 2


def _error(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": details,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )


def _unsupported(e: UnsupportedCurrencyError) -> HTTPException:
    return _error(
        status.HTTP_400_BAD_REQUEST,
        "SOSX_UNSUPPORTED_CURRENCY",
        str(e),
        {"currency": e.currency},
    )


def get_rate_service(request: Request) -> RateService:
    return request.app.state.rate_service


def get_historical_service(request: Request) -> HistoricalRateService:
    return request.app.state.historical_service


def get_market_analyzer(request: Request) -> MarketAnalyzer:
    return request.app.state.market_analyzer


def get_transfer_calculator(request: Request) -> TransferFeeCalculator:
    return request.app.state.transfer_calculator


def get_alert_manager(request: Request) -> AlertManager:
    return request.app.state.alert_manager


@router.get(
    "/rates",
    response_model=RatesResponse,
    summary="Current rate table",
    description="1 SOS expressed in every supported currency (cache, live, or seed)",
)
async def get_rates(service: RateService = Depends(get_rate_service)) -> RatesResponse:
    return RatesResponse(rates=await service.get_rates())


@router.get(
    "/rates/{currency}",
    response_model=RateResponse,
    summary="Current rate for one currency",
    responses={400: {"model": ErrorResponse, "description": "Unsupported currency"}},
)
async def get_rate(
    currency: str,
    service: RateService = Depends(get_rate_service)
) -> RateResponse:
    try:
        code = normalize_currency(currency)
    except UnsupportedCurrencyError as e:
        raise _unsupported(e)
    return RateResponse(currency=code, rate=await service.get_rate(code))


@router.get(
    "/convert",
    response_model=ConversionResponse,
    summary="Convert an amount between two currencies",
    responses={400: {"model": ErrorResponse, "description": "Unsupported currency"}},
)
async def convert(
    amount: float,
    from_currency: str = Query(alias="from"),
    to_currency: str = Query(alias="to"),
    service: RateService = Depends(get_rate_service)
) -> ConversionResponse:
    try:
        src = normalize_currency(from_currency)
        dst = normalize_currency(to_currency)
    except UnsupportedCurrencyError as e:
        raise _unsupported(e)

    result = await service.convert(amount, src, dst)
    return ConversionResponse(
        amount=amount,
        from_currency=src,
        to_currency=dst,
        result=result,
    )


@router.get(
    "/historical/{day}",
    response_model=HistoricalRatesResponse,
    summary="Rate table for a past date",
    responses={
        400: {"model": ErrorResponse, "description": "Date in the future"},
        404: {"model": ErrorResponse, "description": "No provider had data for the date"},
    },
)
async def get_historical_rates(
    day: date,
    historical: HistoricalRateService = Depends(get_historical_service)
) -> HistoricalRatesResponse:
    try:
        rates = await historical.get_historical_rates(day)
    except ValueError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "SOSX_INVALID_DATE", str(e))
    except AllProvidersExhausted as e:
        logger.error(f"Historical rates unavailable for {day}: {e}")
        raise _error(
            status.HTTP_404_NOT_FOUND,
            "SOSX_HISTORICAL_UNAVAILABLE",
            f"No historical rates available for {day}",
            {"requested_date": day.isoformat(), "last_error": str(e.last_error)},
        )
    return HistoricalRatesResponse(date=day, rates=rates)


@router.get(
    "/history/{currency}",
    response_model=HistoryResponse,
    summary="Daily rate history for a date range",
    responses={400: {"model": ErrorResponse, "description": "Invalid currency or range"}},
)
async def get_rate_history(
    currency: str,
    start: date,
    end: date,
    base: str = PIVOT_CURRENCY,
    historical: HistoricalRateService = Depends(get_historical_service)
) -> HistoryResponse:
    if start > end:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "SOSX_INVALID_RANGE",
            "start must not be after end",
            {"start": start.isoformat(), "end": end.isoformat()},
        )
    try:
        code = normalize_currency(currency)
        base_code = normalize_currency(base)
    except UnsupportedCurrencyError as e:
        raise _unsupported(e)

    points = await historical.get_rate_history(code, start, end, base_currency=base_code)
    return HistoryResponse(currency=code, base=base_code, start=start, end=end, points=points)


@router.get(
    "/volatility/{currency}",
    response_model=VolatilityResponse,
    summary="Annualized volatility over a trailing period",
    responses={400: {"model": ErrorResponse, "description": "Invalid currency or period"}},
)
async def get_volatility(
    currency: str,
    period: str = "30d",
    historical: HistoricalRateService = Depends(get_historical_service)
) -> VolatilityResponse:
    try:
        code = normalize_currency(currency)
    except UnsupportedCurrencyError as e:
        raise _unsupported(e)

    try:
        volatility = await historical.get_volatility(code, period)
    except ValueError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "SOSX_INVALID_PERIOD", str(e))
    return VolatilityResponse(currency=code, period=period, volatility=volatility)


@router.get(
    "/analysis/{currency}",
    response_model=MarketAnalysis,
    summary="Market indicators over a trailing period",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid currency or period"},
        422: {"model": ErrorResponse, "description": "Not enough history"},
    },
)
async def analyze_market(
    currency: str,
    period: str = "30d",
    analyzer: MarketAnalyzer = Depends(get_market_analyzer)
) -> MarketAnalysis:
    try:
        return await analyzer.analyze_market(currency, period)
    except UnsupportedCurrencyError as e:
        raise _unsupported(e)
    except InsufficientDataError as e:
        raise _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "SOSX_INSUFFICIENT_DATA", str(e))
    except ValueError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "SOSX_INVALID_PERIOD", str(e))


# === Transfers ===

def _transfer_error(e: ValueError) -> HTTPException:
    if isinstance(e, UnsupportedCurrencyError):
        return _unsupported(e)
    if isinstance(e, UnknownRemittanceProvider):
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "SOSX_UNKNOWN_REMITTANCE_PROVIDER",
            str(e),
            {"provider": e.provider, "supported": list(REMITTANCE_PROVIDERS)},
        )
    if isinstance(e, TransferMethodUnavailable):
        return _error(
            status.HTTP_404_NOT_FOUND,
            "SOSX_TRANSFER_METHOD_UNAVAILABLE",
            str(e),
            {"provider": e.provider, "method": e.method.value},
        )
    return _error(status.HTTP_400_BAD_REQUEST, "SOSX_INVALID_TRANSFER", str(e))


@router.get(
    "/transfer/providers",
    response_model=TransferProvidersResponse,
    summary="Remittance fee schedules",
)
async def get_transfer_providers(
    calculator: TransferFeeCalculator = Depends(get_transfer_calculator)
) -> TransferProvidersResponse:
    return TransferProvidersResponse(providers=calculator.fees)


@router.get(
    "/transfer/fees",
    response_model=TransferQuote,
    summary="Cost of one transfer with one provider and method",
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported currency or provider"},
        404: {"model": ErrorResponse, "description": "Method not offered by the provider"},
    },
)
async def calculate_transfer_fee(
    provider: str,
    method: TransferMethod,
    amount: float = Query(gt=0),
    from_currency: str = Query(alias="from"),
    to_currency: str = Query(alias="to"),
    calculator: TransferFeeCalculator = Depends(get_transfer_calculator)
) -> TransferQuote:
    try:
        return await calculator.calculate_transfer_fee(
            amount, from_currency, to_currency, provider, method
        )
    except ValueError as e:
        raise _transfer_error(e)


@router.get(
    "/transfer/compare",
    response_model=TransferComparisonResponse,
    summary="Every provider's quote for one method, cheapest first",
    responses={400: {"model": ErrorResponse, "description": "Unsupported currency"}},
)
async def compare_transfer_options(
    method: TransferMethod,
    amount: float = Query(gt=0),
    from_currency: str = Query(alias="from"),
    to_currency: str = Query(alias="to"),
    calculator: TransferFeeCalculator = Depends(get_transfer_calculator)
) -> TransferComparisonResponse:
    try:
        src = normalize_currency(from_currency)
        dst = normalize_currency(to_currency)
    except UnsupportedCurrencyError as e:
        raise _unsupported(e)

    quotes = await calculator.compare_transfer_options(amount, src, dst, method)
    return TransferComparisonResponse(
        amount=amount,
        from_currency=src,
        to_currency=dst,
        method=method,
        quotes=quotes,
    )


@router.get(
    "/transfer/best",
    response_model=TransferQuote,
    summary="Cheapest quote across every provider and method",
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported currency"},
        404: {"model": ErrorResponse, "description": "No option available"},
    },
)
async def get_best_transfer_option(
    amount: float = Query(gt=0),
    from_currency: str = Query(alias="from"),
    to_currency: str = Query(alias="to"),
    calculator: TransferFeeCalculator = Depends(get_transfer_calculator)
) -> TransferQuote:
    try:
        return await calculator.get_best_transfer_option(amount, from_currency, to_currency)
    except UnsupportedCurrencyError as e:
        raise _unsupported(e)
    except NoTransferOptionError as e:
        raise _error(status.HTTP_404_NOT_FOUND, "SOSX_NO_TRANSFER_OPTION", str(e))


# === Alerts ===

def _alert_not_found(e: AlertNotFoundError) -> HTTPException:
    return _error(
        status.HTTP_404_NOT_FOUND,
        "SOSX_ALERT_NOT_FOUND",
        str(e),
        {"alert_id": e.alert_id},
    )


@router.get(
    "/alerts",
    response_model=AlertsResponse,
    summary="Stored rate alerts",
)
async def list_alerts(alerts: AlertManager = Depends(get_alert_manager)) -> AlertsResponse:
    return AlertsResponse(alerts=await alerts.get_alerts())


@router.post(
    "/alerts",
    response_model=RateAlert,
    status_code=status.HTTP_201_CREATED,
    summary="Create a rate alert",
    responses={400: {"model": ErrorResponse, "description": "Unsupported currency"}},
)
async def create_alert(
    body: AlertCreateRequest,
    alerts: AlertManager = Depends(get_alert_manager)
) -> RateAlert:
    try:
        return await alerts.create_alert(
            body.from_currency, body.to_currency, body.threshold, body.direction
        )
    except UnsupportedCurrencyError as e:
        raise _unsupported(e)


@router.post(
    "/alerts/check",
    response_model=AlertCheckResponse,
    summary="Evaluate active alerts against current rates",
)
async def check_alerts(alerts: AlertManager = Depends(get_alert_manager)) -> AlertCheckResponse:
    triggered = await alerts.check_alerts()
    return AlertCheckResponse(checked_at=datetime.now(timezone.utc), triggered=triggered)


@router.patch(
    "/alerts/{alert_id}",
    response_model=RateAlert,
    summary="Change an alert's threshold, direction or active flag",
    responses={404: {"model": ErrorResponse, "description": "Unknown alert"}},
)
async def update_alert(
    alert_id: str,
    body: AlertUpdate,
    alerts: AlertManager = Depends(get_alert_manager)
) -> RateAlert:
    try:
        return await alerts.update_alert(alert_id, body)
    except AlertNotFoundError as e:
        raise _alert_not_found(e)


@router.delete(
    "/alerts/{alert_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an alert",
    responses={404: {"model": ErrorResponse, "description": "Unknown alert"}},
)
async def delete_alert(
    alert_id: str,
    alerts: AlertManager = Depends(get_alert_manager)
) -> None:
    try:
        await alerts.delete_alert(alert_id)
    except AlertNotFoundError as e:
        raise _alert_not_found(e)


@router.get(
    "/providers",
    response_model=ProvidersResponse,
    summary="Configured provider chain",
)
async def get_providers(service: RateService = Depends(get_rate_service)) -> ProvidersResponse:
    return ProvidersResponse(providers=service.provider_manager.get_provider_status())


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    responses={503: {"model": ErrorResponse, "description": "No usable cached rates"}},
)
async def health_check(service: RateService = Depends(get_rate_service)) -> HealthResponse:
    """
    Healthy while the cached snapshot is younger than twice the TTL. Offline
    deployments are healthy on seed data alone.
    """
    snapshot = await service.cache.read()
    cached_at = snapshot.captured_at if snapshot else None
    age_hours = None
    if snapshot is not None:
        age_hours = (service.cache.now() - snapshot.captured_at).total_seconds() / 3600

    max_age_hours = service.ttl.total_seconds() / 3600 * HEALTH_STALENESS_FACTOR
    stale = age_hours is None or age_hours >= max_age_hours
    if stale and not service.offline:
        raise _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "SOSX_UNHEALTHY",
            "No recent rates in cache",
            {"cached_at": cached_at.isoformat() if cached_at else None,
             "cache_age_hours": age_hours},
        )

    return HealthResponse(
        status="healthy",
        version=__version__,
        offline=service.offline,
        cached_at=cached_at,
        cache_age_hours=age_hours,
    )
