"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crypto_rates.api.deps import AppState
from crypto_rates.api.routes import router
from crypto_rates.conversion.resolver import ConversionResolver
from crypto_rates.core.config import RatesConfig, load_config
from crypto_rates.core.exceptions import (
    CryptoRatesError,
    InvalidRequestError,
    NotFoundError,
)
from crypto_rates.ingestion.pipeline import build_pipeline
from crypto_rates.ingestion.scheduler import RecurringScheduler, RetryPolicy
from crypto_rates.prices.store import create_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage)
    resolver = ConversionResolver(store, config.currencies.symbols)

    scheduler = None
    if config.api.run_scheduler and config.scheduler.enabled:
        pipeline = build_pipeline(config, store)
        scheduler = RecurringScheduler()
        scheduler.schedule(
            config.scheduler.interval_seconds,
            RetryPolicy.from_config(config.scheduler),
            pipeline.run_once,
        )
        logger.info(
            "Price fetch job scheduled every %ss", config.scheduler.interval_seconds
        )

    app.state.app_state = AppState(
        config=config, store=store, resolver=resolver, scheduler=scheduler
    )

    yield

    if scheduler is not None:
        await scheduler.stop()
    await store.close()


def create_app(config: RatesConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import crypto_rates

    app = FastAPI(
        title="Crypto Rates API",
        description="Point-in-time crypto currency conversion",
        version=crypto_rates.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.api.cors_origins) if config else ["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(router)

    # Exception handlers
    @app.exception_handler(CryptoRatesError)
    async def rates_exception_handler(request: Request, exc: CryptoRatesError):
        if isinstance(exc, (InvalidRequestError, NotFoundError)):
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": str(exc)},
            )
        logger.error(
            "Internal error on %s: %s (context=%s)",
            request.url.path,
            exc,
            exc.context,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error"},
        )

    return app
