"""Shared pytest fixtures for crypto-rates."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from crypto_rates.core.config import (
    CoinMarketCapConfig,
    CurrencyConfig,
    ProvidersConfig,
    RatesConfig,
    SchedulerConfig,
    StorageConfig,
)
from crypto_rates.core.models import Observation
from crypto_rates.prices.store import SqlitePriceStore


def make_observation(
    symbol: str = "BTC",
    price: str | int | float = "50000",
    timestamp: datetime | None = None,
    source: str = "test",
) -> Observation:
    return Observation(
        symbol=symbol,
        price_usd=Decimal(str(price)),
        timestamp=timestamp or datetime(2023, 1, 1, tzinfo=UTC),
        source=source,
    )


class StaticProvider:
    """Provider double that returns fixed observations or raises."""

    def __init__(self, name: str, observations=None, error: Exception | None = None):
        self._name = name
        self._observations = observations or []
        self._error = error
        self.calls: list[list[str]] = []

    @property
    def name(self) -> str:
        return self._name

    async def fetch_prices(self, symbols):
        self.calls.append(list(symbols))
        if self._error is not None:
            raise self._error
        return list(self._observations)


@pytest.fixture
def sample_observation() -> Observation:
    return make_observation()


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    return StorageConfig(sqlite_path=str(tmp_path / "prices.db"))


@pytest.fixture
async def store(storage_config: StorageConfig) -> SqlitePriceStore:
    """An initialized SqlitePriceStore on a temp file."""
    s = SqlitePriceStore(storage_config)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def rates_config(storage_config: StorageConfig) -> RatesConfig:
    return RatesConfig(
        currencies=CurrencyConfig(symbols=["BTC", "ETH", "SOL"]),
        providers=ProvidersConfig(
            coinmarketcap=CoinMarketCapConfig(api_key="test-key")
        ),
        storage=storage_config,
        scheduler=SchedulerConfig(retry_delay=0.0),
    )
