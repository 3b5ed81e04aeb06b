"""Price sources and price persistence.

Architecture
------------
    PriceProvider (CoinMarketCap, ...) → list[Observation] → PriceStore

Key abstractions:

- ``PriceProvider``: async ``fetch_prices(symbols)`` capability.
- ``ProviderRegistry``: named factories; ``build_providers`` returns the
  enabled, fully configured providers.
- ``PriceStore``: append-only observation log with point-in-time lookup.

Built-in implementations:

- ``CoinMarketCapProvider``: batched quotes from the CoinMarketCap API.
- ``SqlitePriceStore``: aiosqlite-backed store.
"""

from crypto_rates.prices.coinmarketcap import CoinMarketCapProvider
from crypto_rates.prices.provider import (
    PriceProvider,
    ProviderRegistry,
    build_providers,
    default_registry,
)
from crypto_rates.prices.store import PriceStore, SqlitePriceStore, create_store

__all__ = [
    # Protocols
    "PriceProvider",
    "PriceStore",
    # Registry
    "ProviderRegistry",
    "build_providers",
    "default_registry",
    # Implementations
    "CoinMarketCapProvider",
    "SqlitePriceStore",
    "create_store",
]
