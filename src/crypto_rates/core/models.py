"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

Symbol = str
ProviderName = str

# --- Constants ---

PRICE_SCALE = Decimal("0.00000001")
MAX_INTEGER_DIGITS = 18

# --- Enumerations ---


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


class RunState(StrEnum):
    """Ingestion run states: Idle -> FanOut -> Aggregate -> Persist -> Idle."""

    IDLE = "idle"
    FAN_OUT = "fan_out"
    AGGREGATE = "aggregate"
    PERSIST = "persist"
    FAILED = "failed"


# --- Helpers ---


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_symbol(value: str) -> Symbol:
    return value.strip().upper()


# --- Price Models ---


class Observation(BaseModel):
    """One price observation for one symbol, as reported by one provider.

    Observations are immutable and append-only. `id` and `ingested_at` are
    assigned by the store when the row is written and are None before that.
    """

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    price_usd: Decimal
    timestamp: datetime
    source: ProviderName
    ingested_at: datetime | None = None
    id: int | None = None

    @field_validator("symbol")
    @classmethod
    def symbol_uppercase(cls, v: str) -> str:
        v = normalize_symbol(v)
        if not v:
            raise ValueError("symbol must not be empty")
        return v

    @field_validator("price_usd", mode="before")
    @classmethod
    def price_from_text(cls, v: object) -> object:
        # Floats go through str() so 0.1 stays 0.1 rather than its binary expansion
        if isinstance(v, float):
            return str(v)
        return v

    @field_validator("price_usd")
    @classmethod
    def price_fixed_precision(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError(f"price_usd is not a finite decimal: {v}")
        if v.adjusted() >= MAX_INTEGER_DIGITS:
            raise ValueError(
                f"price_usd exceeds {MAX_INTEGER_DIGITS} integer digits: {v}"
            )
        try:
            v = v.quantize(PRICE_SCALE, rounding=ROUND_HALF_EVEN)
        except InvalidOperation as e:
            raise ValueError(f"price_usd cannot be stored at 8 decimal places: {v}") from e
        if v <= 0:
            raise ValueError(f"price_usd must be > 0, got {v}")
        return v

    @field_validator("timestamp", "ingested_at")
    @classmethod
    def timestamps_utc(cls, v: datetime | None) -> datetime | None:
        return to_utc(v) if v is not None else None

    @field_validator("source")
    @classmethod
    def source_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source must not be empty")
        return v


class ConversionResult(BaseModel):
    """Exchange rate between two symbols at a point in time."""

    model_config = ConfigDict(frozen=True)

    from_symbol: Symbol
    to_symbol: Symbol
    rate: Decimal
    query_timestamp: datetime
    data_timestamps: dict[Symbol, datetime]

    @property
    def staleness(self) -> dict[Symbol, float]:
        """Seconds between the queried instant and each price's own timestamp."""
        return {
            symbol: (self.query_timestamp - ts).total_seconds()
            for symbol, ts in self.data_timestamps.items()
        }
