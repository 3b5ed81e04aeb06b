"""FastAPI route definitions for the crypto-rates API."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, Response

import crypto_rates
from crypto_rates.api.deps import AppState, get_app_state, get_config, get_resolver
from crypto_rates.api.schemas import ConversionResponse, ErrorResponse, HealthResponse
from crypto_rates.conversion.resolver import ConversionResolver
from crypto_rates.core.exceptions import CryptoRatesError

router = APIRouter()
prices_router = APIRouter(prefix="/prices")


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_app_state)):
    """Liveness plus storage connectivity."""
    return HealthResponse(
        timestamp=datetime.now(UTC),
        version=crypto_rates.__version__,
        storage=await state.store.health_check(),
        scheduler_running=state.scheduler is not None and state.scheduler.running,
    )


# -- Prices --


@prices_router.get(
    "/convert",
    response_model=ConversionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def convert_currency(
    response: Response,
    currency1: str | None = Query(None, description="Currency to convert from"),
    currency2: str | None = Query(None, description="Currency to convert to"),
    timestamp: str | None = Query(None, description="ISO-8601 instant; default now"),
    resolver: ConversionResolver = Depends(get_resolver),
    config=Depends(get_config),
):
    """Exchange rate between two currencies at or before a point in time."""
    try:
        result = await resolver.convert(currency1, currency2, timestamp)
    except CryptoRatesError:
        raise
    except Exception as e:
        raise CryptoRatesError(
            "Unexpected conversion failure",
            context={"operation": "convert"},
        ) from e

    response.headers["Cache-Control"] = f"public, max-age={config.api.cache_max_age}"
    return ConversionResponse(
        from_symbol=result.from_symbol,
        to_symbol=result.to_symbol,
        rate=float(result.rate),
        timestamp=result.query_timestamp,
        data_timestamps=result.data_timestamps,
    )


router.include_router(prices_router, prefix="/v1/api")
