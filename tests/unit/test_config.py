"""Tests for crypto_rates.core.config."""

import os

import pytest
from pydantic import ValidationError

from crypto_rates.core.config import (
    DEFAULT_SYMBOLS,
    APIConfig,
    CoinMarketCapConfig,
    CurrencyConfig,
    LoggingConfig,
    SchedulerConfig,
    _auto_cast,
    _merge_env_vars,
    load_config,
)
from crypto_rates.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("CRYPTO_RATES_") or key in ("CRYPTO_SYMBOLS", "COINMARKETCAP_API_KEY"):
            monkeypatch.delenv(key, raising=False)
    # Keep a stray crypto-rates.yml in the cwd from leaking into tests
    monkeypatch.chdir(tmp_path)


class TestCurrencyConfig:
    def test_defaults(self):
        assert CurrencyConfig().symbols == DEFAULT_SYMBOLS

    def test_comma_separated_string(self):
        c = CurrencyConfig(symbols="btc, eth ,SOL")
        assert c.symbols == ["BTC", "ETH", "SOL"]

    def test_deduplicates_in_order(self):
        c = CurrencyConfig(symbols=["eth", "BTC", "ETH"])
        assert c.symbols == ["ETH", "BTC"]

    def test_empty_rejected(self):
        with pytest.raises(ValidationError, match="at least one ticker"):
            CurrencyConfig(symbols=" , ")


class TestSchedulerConfig:
    def test_defaults_match_trigger_policy(self):
        c = SchedulerConfig()
        assert c.interval_seconds == 60
        assert c.retry_limit == 1
        assert c.retry_delay == 20
        assert c.retry_backoff is True

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError, match="interval_seconds must be > 0"):
            SchedulerConfig(interval_seconds=0)

    def test_retry_limit_bounded(self):
        with pytest.raises(ValidationError, match="between 0 and 5"):
            SchedulerConfig(retry_limit=10)


class TestMiscConfig:
    def test_rate_limit_positive(self):
        with pytest.raises(ValidationError, match="rate_limit must be >= 1"):
            CoinMarketCapConfig(rate_limit=0)

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError, match="unknown log level"):
            LoggingConfig(level="chatty")

    def test_cors_origins_from_string(self):
        assert APIConfig(cors_origins="https://a.test, https://b.test").cors_origins == [
            "https://a.test",
            "https://b.test",
        ]


class TestLoadConfig:
    def test_defaults(self):
        config = load_config()
        assert config.currencies.symbols == DEFAULT_SYMBOLS
        assert config.providers.coinmarketcap.api_key is None
        assert config.api.cache_max_age == 60

    def test_yaml_loading(self, tmp_path):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text(
            "currencies:\n  symbols: [BTC, ETH]\nscheduler:\n  interval_seconds: 30\n"
        )
        config = load_config(config_path=str(yaml_file))
        assert config.currencies.symbols == ["BTC", "ETH"]
        assert config.scheduler.interval_seconds == 30

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text("scheduler:\n  interval_seconds: 30\n")
        monkeypatch.setenv("CRYPTO_RATES_SCHEDULER__INTERVAL_SECONDS", "15")
        config = load_config(config_path=str(yaml_file))
        assert config.scheduler.interval_seconds == 15

    def test_legacy_env_names(self, monkeypatch):
        monkeypatch.setenv("CRYPTO_SYMBOLS", "btc,eth")
        monkeypatch.setenv("COINMARKETCAP_API_KEY", "abc-123")
        config = load_config()
        assert config.currencies.symbols == ["BTC", "ETH"]
        assert config.providers.coinmarketcap.api_key == "abc-123"

    def test_prefixed_env_beats_legacy(self, monkeypatch):
        monkeypatch.setenv("CRYPTO_SYMBOLS", "btc")
        monkeypatch.setenv("CRYPTO_RATES_CURRENCIES__SYMBOLS", "SOL,ADA")
        config = load_config()
        assert config.currencies.symbols == ["SOL", "ADA"]

    def test_numeric_api_key_stays_string(self, monkeypatch):
        monkeypatch.setenv("CRYPTO_RATES_PROVIDERS__COINMARKETCAP__API_KEY", "123456")
        config = load_config()
        assert config.providers.coinmarketcap.api_key == "123456"

    def test_config_env_var_path(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "other.yml"
        yaml_file.write_text("api:\n  port: 9000\n")
        monkeypatch.setenv("CRYPTO_RATES_CONFIG", str(yaml_file))
        assert load_config().api.port == 9000

    def test_missing_file_raises(self):
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(config_path="/nonexistent/crypto-rates.yml")

    def test_non_mapping_yaml_raises(self, tmp_path):
        yaml_file = tmp_path / "bad.yml"
        yaml_file.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(config_path=str(yaml_file))

    def test_invalid_value_wrapped_in_config_error(self, monkeypatch):
        monkeypatch.setenv("CRYPTO_RATES_SCHEDULER__INTERVAL_SECONDS", "-5")
        with pytest.raises(ConfigError):
            load_config()


class TestEnvHelpers:
    def test_auto_cast(self):
        assert _auto_cast("true") is True
        assert _auto_cast("False") is False
        assert _auto_cast("42") == 42
        assert _auto_cast("1.5") == 1.5
        assert _auto_cast("BTC,ETH") == "BTC,ETH"

    def test_merge_env_vars_nests(self, monkeypatch):
        monkeypatch.setenv("CRYPTO_RATES_API__PORT", "8080")
        result = _merge_env_vars({"api": {"host": "127.0.0.1"}}, "CRYPTO_RATES_")
        assert result["api"] == {"host": "127.0.0.1", "port": 8080}
