"""crypto_rates.core — Foundation types, config, and exceptions."""

from crypto_rates.core.config import (
    APIConfig,
    CoinMarketCapConfig,
    CurrencyConfig,
    LoggingConfig,
    ProvidersConfig,
    RatesConfig,
    SchedulerConfig,
    StorageConfig,
    load_config,
)
from crypto_rates.core.exceptions import (
    ConfigError,
    CryptoRatesError,
    InvalidRequestError,
    InvalidTimestampError,
    MissingParameterError,
    NotFoundError,
    PriceNotFoundError,
    ProviderError,
    StorageError,
    UnsupportedCurrencyError,
)
from crypto_rates.core.models import (
    ConversionResult,
    Observation,
    ProviderName,
    RunState,
    StorageBackend,
    Symbol,
)

__all__ = [
    # Type aliases
    "Symbol",
    "ProviderName",
    # Enums
    "StorageBackend",
    "RunState",
    # Models
    "Observation",
    "ConversionResult",
    # Config
    "RatesConfig",
    "CurrencyConfig",
    "ProvidersConfig",
    "CoinMarketCapConfig",
    "StorageConfig",
    "SchedulerConfig",
    "APIConfig",
    "LoggingConfig",
    "load_config",
    # Exceptions
    "CryptoRatesError",
    "ConfigError",
    "InvalidRequestError",
    "MissingParameterError",
    "UnsupportedCurrencyError",
    "InvalidTimestampError",
    "NotFoundError",
    "PriceNotFoundError",
    "ProviderError",
    "StorageError",
]
