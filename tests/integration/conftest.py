"""Integration test fixtures — real SQLite storage, mocked network."""

from __future__ import annotations

from pathlib import Path

import pytest

from crypto_rates.core.config import (
    APIConfig,
    CoinMarketCapConfig,
    CurrencyConfig,
    ProvidersConfig,
    RatesConfig,
    SchedulerConfig,
    StorageConfig,
)
from crypto_rates.prices.store import SqlitePriceStore


@pytest.fixture
def integration_config(tmp_path: Path) -> RatesConfig:
    return RatesConfig(
        currencies=CurrencyConfig(symbols=["BTC", "ETH", "SOL"]),
        providers=ProvidersConfig(
            coinmarketcap=CoinMarketCapConfig(api_key="integration-key")
        ),
        storage=StorageConfig(sqlite_path=str(tmp_path / "integration.db")),
        scheduler=SchedulerConfig(enabled=False, retry_delay=0.0),
        api=APIConfig(cache_max_age=30),
    )


@pytest.fixture
async def integration_store(integration_config: RatesConfig) -> SqlitePriceStore:
    """An initialized SqlitePriceStore for integration tests."""
    store = SqlitePriceStore(integration_config.storage)
    await store.initialize()
    yield store
    await store.close()

