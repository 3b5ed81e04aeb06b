"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from crypto_rates.conversion.resolver import ConversionResolver
from crypto_rates.core.config import RatesConfig
from crypto_rates.ingestion.scheduler import RecurringScheduler
from crypto_rates.prices.store import SqlitePriceStore


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: RatesConfig
    store: SqlitePriceStore
    resolver: ConversionResolver
    scheduler: RecurringScheduler | None = None


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> RatesConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_resolver(request: Request) -> ConversionResolver:
    """Dependency: retrieve the conversion resolver."""
    return request.app.state.app_state.resolver
