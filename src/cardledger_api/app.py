from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from cardledger_api.core.settings import settings
from cardledger_api.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Card ledger API starting",
        environment=settings.environment,
        tier_rate_cap_bps=settings.cashback_tier_rate_cap_bps,
        total_rate_cap_bps=settings.cashback_total_rate_cap_bps,
        payment_link_ttl_hours=settings.payment_link_ttl_hours,
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Card ledger API stopped")


def create_app() -> FastAPI:
    """Application factory for the card ledger FastAPI service."""
    configure_logging(
        service_name="cardledger-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Card Ledger API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="cardledger-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
