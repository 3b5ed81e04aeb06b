"""Price provider protocol and registry: the source-agnostic interface layer.

Architecture
------------
The ingestion pipeline only ever sees ``PriceProvider`` instances:

    ProviderRegistry → [PriceProvider, ...] → list[Observation] → PriceStore

- **PriceProvider** is the capability every quote source implements:
  a ``name`` and an async ``fetch_prices(symbols)``.

- **ProviderRegistry** maps provider names to factories that build a
  provider from configuration. ``build_providers`` walks the registry and
  returns the enabled providers. Adding a source means registering one
  factory; the pipeline does not change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from typing import Protocol, runtime_checkable

from crypto_rates.core.config import ProvidersConfig
from crypto_rates.core.models import Observation

logger = logging.getLogger(__name__)


@runtime_checkable
class PriceProvider(Protocol):
    """A source of current USD prices for crypto symbols."""

    @property
    def name(self) -> str: ...

    async def fetch_prices(self, symbols: Collection[str]) -> list[Observation]:
        """Fetch the latest price for each requested symbol.

        Returns
        -------
        list[Observation]
            At most one observation per symbol. Symbols the source does not
            know are omitted, not reported as errors.

        Raises
        ------
        ProviderError
            On network failure, non-success status, malformed payload, or
            an error code embedded in the response.
        """
        ...


ProviderFactory = Callable[[ProvidersConfig], PriceProvider | None]


class ProviderRegistry:
    """Named provider factories.

    A factory returns None when its provider is disabled in config, and
    raises ConfigError when it is enabled but misconfigured.
    """

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        if name in self._factories:
            raise ValueError(f"provider already registered: {name}")
        self._factories[name] = factory

    def names(self) -> list[str]:
        return list(self._factories)

    def build(self, config: ProvidersConfig) -> list[PriceProvider]:
        providers: list[PriceProvider] = []
        for name, factory in self._factories.items():
            provider = factory(config)
            if provider is None:
                logger.info("Provider %s disabled", name)
                continue
            providers.append(provider)
        return providers


def default_registry() -> ProviderRegistry:
    """Registry holding every built-in provider."""
    from crypto_rates.prices.coinmarketcap import CoinMarketCapProvider

    registry = ProviderRegistry()
    registry.register(
        CoinMarketCapProvider.NAME,
        lambda cfg: (
            CoinMarketCapProvider(cfg.coinmarketcap)
            if cfg.coinmarketcap.enabled
            else None
        ),
    )
    return registry


def build_providers(
    config: ProvidersConfig,
    registry: ProviderRegistry | None = None,
) -> list[PriceProvider]:
    """Instantiate all enabled providers. Raises ConfigError on missing credentials."""
    return (registry or default_registry()).build(config)
