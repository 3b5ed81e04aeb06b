"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from crypto_rates.core.exceptions import ConfigError
from crypto_rates.core.models import StorageBackend, normalize_symbol

DEFAULT_SYMBOLS = ["BTC", "ETH", "USDT", "BNB", "SOL", "XRP", "ADA", "DOGE"]
CONFIG_ENV_VAR = "CRYPTO_RATES_CONFIG"
DEFAULT_CONFIG_FILE = "crypto-rates.yml"

# Environment names used by earlier deployments, mapped to config paths.
# Prefixed variables take precedence over these.
_LEGACY_ENV_VARS: dict[str, tuple[str, ...]] = {
    "CRYPTO_SYMBOLS": ("currencies", "symbols"),
    "COINMARKETCAP_API_KEY": ("providers", "coinmarketcap", "api_key"),
}


class CurrencyConfig(BaseModel):
    """The allow-listed symbol set."""

    model_config = ConfigDict(frozen=True)

    symbols: list[str] = DEFAULT_SYMBOLS

    @field_validator("symbols", mode="before")
    @classmethod
    def split_comma_separated(cls, v: object) -> object:
        if isinstance(v, str):
            return v.split(",")
        return v

    @field_validator("symbols")
    @classmethod
    def normalize_symbols(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for raw in v:
            symbol = normalize_symbol(raw)
            if symbol and symbol not in seen:
                seen.append(symbol)
        if not seen:
            raise ValueError("symbols must contain at least one ticker")
        return seen


class CoinMarketCapConfig(BaseModel):
    """CoinMarketCap quote API access."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    api_key: str | None = None
    base_url: str = "https://pro-api.coinmarketcap.com/v1"
    request_timeout: float = 15.0
    rate_limit: int = 30

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1 (requests per minute)")
        return v


class ProvidersConfig(BaseModel):
    """Configuration for every known price provider."""

    model_config = ConfigDict(frozen=True)

    coinmarketcap: CoinMarketCapConfig = CoinMarketCapConfig()


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/crypto_rates.db"


class SchedulerConfig(BaseModel):
    """Recurring ingestion trigger: cadence and retry policy."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    interval_seconds: float = 60.0
    retry_limit: int = 1
    retry_delay: float = 20.0
    retry_backoff: bool = True
    run_timeout: float | None = None

    @field_validator("interval_seconds")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_seconds must be > 0")
        return v

    @field_validator("retry_limit")
    @classmethod
    def retry_limit_small(cls, v: int) -> int:
        if v < 0 or v > 5:
            raise ValueError("retry_limit must be between 0 and 5")
        return v

    @field_validator("retry_delay")
    @classmethod
    def retry_delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry_delay must be >= 0")
        return v


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 3001
    cache_max_age: int = 60
    cors_origins: list[str] = ["*"]
    run_scheduler: bool = False

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v: object) -> object:
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v


class LoggingConfig(BaseModel):
    """Log level and line format for the process."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    @field_validator("level")
    @classmethod
    def known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return v


class RatesConfig(BaseModel):
    """Root configuration for the entire crypto-rates system."""

    model_config = ConfigDict(frozen=True)

    currencies: CurrencyConfig = CurrencyConfig()
    providers: ProvidersConfig = ProvidersConfig()
    storage: StorageConfig = StorageConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    api: APIConfig = APIConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "CRYPTO_RATES_",
) -> RatesConfig:
    """Build the effective RatesConfig.

    Layers, lowest precedence first: model defaults, the YAML file, the
    legacy variables in ``_LEGACY_ENV_VARS``, then ``{env_prefix}SECTION__KEY``
    variables (``CRYPTO_RATES_SCHEDULER__INTERVAL_SECONDS=30`` sets
    ``scheduler.interval_seconds``).

    Raises ConfigError for a missing or malformed file and for any value
    the models reject.
    """
    try:
        path = _find_config_file(config_path)
        layered = _read_yaml(path) if path is not None else {}
        layered = _merge_legacy_env_vars(layered)
        layered = _merge_env_vars(layered, env_prefix)
        return RatesConfig.model_validate(layered)
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(
            f"Invalid configuration: {e}", context={"source": "load_config"}
        ) from e


def _find_config_file(explicit: str | None) -> Path | None:
    """The explicit path, else $CRYPTO_RATES_CONFIG, else ./crypto-rates.yml if present."""
    candidates = (
        ("config_path", explicit),
        (CONFIG_ENV_VAR, os.environ.get(CONFIG_ENV_VAR)),
    )
    for origin, candidate in candidates:
        if not candidate:
            continue
        path = Path(candidate)
        if not path.is_file():
            raise ConfigError(
                f"Config file not found: {candidate}",
                context={"field": origin, "value": candidate},
            )
        return path

    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Cannot parse {path}: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"{path} must be a mapping of config sections, got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _set_nested(target: dict, parts: list[str] | tuple[str, ...], value: object) -> None:
    # Copies each level on the way down so the caller's dicts are untouched
    for part in parts[:-1]:
        child = target.get(part)
        target[part] = dict(child) if isinstance(child, dict) else {}
        target = target[part]
    target[parts[-1]] = value


def _merge_legacy_env_vars(base: dict) -> dict:
    """Overlay the unprefixed names of earlier deployments, as raw text."""
    result = dict(base)
    for name, path in _LEGACY_ENV_VARS.items():
        value = os.environ.get(name)
        if value:
            _set_nested(result, path, value)
    return result


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay ``{prefix}SECTION__KEY`` variables onto ``base``.

    Values go through :func:`_auto_cast`, except ``api_key`` leaves, which
    stay text so a numeric credential keeps its leading zeros.
    """
    result = dict(base)
    for name, raw in os.environ.items():
        if not name.startswith(prefix):
            continue
        path = [part.lower() for part in name[len(prefix) :].split("__")]
        if path == ["config"]:
            continue
        value = raw if path[-1] == "api_key" else _auto_cast(raw)
        _set_nested(result, path, value)
    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Interpret env text as a bool, then an int, then a float, else keep it."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
