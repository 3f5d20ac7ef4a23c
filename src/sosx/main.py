"""
SOSX Main Application Entry Point

Builds the provider chain, caches and services exactly once, serves them over
HTTP, and keeps the current-rate cache warm with a background refresh job.
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sosx import __version__
from sosx.alerts import AlertManager
from sosx.analysis import MarketAnalyzer
from sosx.api import router
from sosx.config import Settings, get_settings
from sosx.historical import HistoricalRateService
from sosx.providers import build_provider_manager
from sosx.service import RateService
from sosx.transfer_fees import TransferFeeCalculator

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )


async def refresh_rates_job(service: RateService) -> None:
    """Scheduled refresh wrapper. The service already absorbs provider outages."""
    logger.info("⏰ Scheduled refresh triggered")
    rates = await service.refresh()
    logger.info(f"⏰ Scheduled refresh complete: {len(rates)} rates")


async def check_alerts_job(manager: AlertManager) -> None:
    """Scheduled alert check. Triggered alerts are logged by the manager."""
    triggered = await manager.check_alerts()
    if triggered:
        logger.info(f"⏰ Alert check complete: {len(triggered)} triggered")


def _build_services(app: FastAPI, settings: Settings) -> None:
    state = app.state
    if getattr(state, "rate_service", None) is None:
        manager = build_provider_manager(settings)
        state.rate_service = RateService.from_settings(settings, provider_manager=manager)
    if getattr(state, "historical_service", None) is None:
        state.historical_service = HistoricalRateService.from_settings(
            settings, provider_manager=state.rate_service.provider_manager
        )
    if getattr(state, "market_analyzer", None) is None:
        state.market_analyzer = MarketAnalyzer(state.historical_service)
    if getattr(state, "transfer_calculator", None) is None:
        state.transfer_calculator = TransferFeeCalculator(state.rate_service)
    if getattr(state, "alert_manager", None) is None:
        state.alert_manager = AlertManager.from_settings(settings, state.rate_service)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    settings: Settings = app.state.settings
    scheduler: AsyncIOScheduler | None = None

    logger.info(f"🚀 Starting SOSX v.{__version__}")
    _build_services(app, settings)

    if settings.scheduler_enabled and not settings.offline:
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            refresh_rates_job,
            IntervalTrigger(minutes=settings.refresh_interval_minutes),
            args=[app.state.rate_service],
            id="refresh_current_rates",
            name="Refresh current rates",
            replace_existing=True,
            max_instances=1,
        )
        scheduler.add_job(
            check_alerts_job,
            IntervalTrigger(minutes=settings.alert_check_interval_minutes),
            args=[app.state.alert_manager],
            id="check_rate_alerts",
            name="Check rate alerts",
            replace_existing=True,
            max_instances=1,
        )
        scheduler.start()
        logger.info(
            f"⏰ Scheduler started: refresh every {settings.refresh_interval_minutes} min, "
            f"alerts every {settings.alert_check_interval_minutes} min"
        )

    yield

    logger.info("🛑 Shutting down SOSX")
    if scheduler:
        scheduler.shutdown()
        logger.info("⏰ Scheduler stopped")


def create_app(
    settings: Settings | None = None,
    rate_service: RateService | None = None,
    historical_service: HistoricalRateService | None = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Services passed in are used as-is; anything missing is built from settings
    at startup (or immediately, when services are injected, so the app works
    without running the lifespan).
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="SOSX",
        description="Somali shilling exchange rates with provider failover",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/v1/openapi.json"
    )
    app.state.settings = settings
    app.state.rate_service = rate_service
    app.state.historical_service = historical_service
    app.state.market_analyzer = None
    app.state.transfer_calculator = None
    app.state.alert_manager = None
    if rate_service is not None:
        _build_services(app, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "SOSX",
            "version": __version__,
            "docs": "/docs",
            "api": {
                "rates": "/api/v1/rates",
                "rate": "/api/v1/rates/{currency}",
                "convert": "/api/v1/convert?amount=&from=&to=",
                "historical": "/api/v1/historical/{date}",
                "history": "/api/v1/history/{currency}?start=&end=",
                "volatility": "/api/v1/volatility/{currency}?period=30d",
                "analysis": "/api/v1/analysis/{currency}?period=30d",
                "transfer_fees": "/api/v1/transfer/fees?amount=&from=&to=&provider=&method=",
                "transfer_compare": "/api/v1/transfer/compare?amount=&from=&to=&method=",
                "transfer_best": "/api/v1/transfer/best?amount=&from=&to=",
                "alerts": "/api/v1/alerts",
                "providers": "/api/v1/providers",
                "health": "/api/v1/health"
            }
        }

    return app


def main():
    """Main entry point for running the server."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info(f"Starting SOSX server on {settings.api_host}:{settings.api_port}")

    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
