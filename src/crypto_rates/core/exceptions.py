"""Custom exception hierarchy for crypto-rates."""

from typing import Any


class CryptoRatesError(Exception):
    """Base exception for all crypto-rates errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(CryptoRatesError):
    """Invalid or missing configuration.

    Raised by load_config() during startup and by provider constructors
    that are missing a credential. Should be treated as fatal; never retried.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class InvalidRequestError(CryptoRatesError):
    """A conversion request failed validation.

    Policy: surface to the caller as-is (HTTP 400). Never retried,
    never logged as a system fault.
    """

    status_code = 400


class MissingParameterError(InvalidRequestError):
    """One or both currency symbols were not supplied."""


class UnsupportedCurrencyError(InvalidRequestError):
    """A symbol is not in the configured allow-list.

    Context keys:
        symbol: str — the offending symbol, as supplied
    """


class InvalidTimestampError(InvalidRequestError):
    """The target time could not be parsed as an ISO-8601 instant.

    Context keys:
        value: str — the unparseable input
    """


class NotFoundError(CryptoRatesError):
    """The requested data does not exist.

    Policy: normal outcome for sparse data (HTTP 404), not a system fault.
    """

    status_code = 404


class PriceNotFoundError(NotFoundError):
    """No observation exists for a symbol at or before the queried time.

    Context keys:
        symbol: str — the symbol that has no data
        timestamp: str — the queried instant (ISO-8601)
    """


class ProviderError(CryptoRatesError):
    """A price provider failed to deliver quotes.

    Policy: log and contribute nothing. Other providers' results remain valid.

    Context keys:
        provider: str — provider name
        status_code: int | None — HTTP status code if applicable
    """


class StorageError(CryptoRatesError):
    """Database operation failed.

    Policy: raise immediately. Fails the ingestion run (the trigger retries)
    and collapses to a generic internal error on the query path.

    Context keys:
        operation: str — "insert", "query", "migrate", etc.
        table: str — the table involved
    """
