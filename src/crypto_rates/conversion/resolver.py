"""Point-in-time conversion between two allow-listed symbols."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from crypto_rates.core.exceptions import (
    InvalidTimestampError,
    MissingParameterError,
    PriceNotFoundError,
    UnsupportedCurrencyError,
)
from crypto_rates.core.models import ConversionResult, normalize_symbol, to_utc
from crypto_rates.prices.store import PriceStore

logger = logging.getLogger(__name__)


def parse_target_time(value: str | datetime | None, now: datetime) -> datetime:
    """Resolve the query instant. None or blank means ``now``.

    Strings must be ISO-8601; naive values are taken as UTC.
    """
    if value is None:
        return now
    if isinstance(value, datetime):
        return to_utc(value)
    text = value.strip()
    if not text:
        return now
    try:
        return to_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError) as e:
        raise InvalidTimestampError(
            "Invalid timestamp format", context={"value": value}
        ) from e


class ConversionResolver:
    """Computes ``price(from) / price(to)`` as of a target time.

    Validation order (first failure wins): both symbols present, both
    allow-listed, target time parseable. Lookups then run concurrently
    against the store.
    """

    def __init__(
        self,
        store: PriceStore,
        symbols: Iterable[str],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._symbols = frozenset(normalize_symbol(s) for s in symbols)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def convert(
        self,
        symbol1: str | None,
        symbol2: str | None,
        target_time: str | datetime | None = None,
    ) -> ConversionResult:
        if not symbol1 or not symbol1.strip() or not symbol2 or not symbol2.strip():
            raise MissingParameterError(
                "Missing required parameters: currency1, currency2"
            )

        for raw in (symbol1, symbol2):
            if normalize_symbol(raw) not in self._symbols:
                raise UnsupportedCurrencyError(
                    f"Currency {raw} is not supported", context={"symbol": raw}
                )

        at = parse_target_time(target_time, self._clock())
        from_symbol = normalize_symbol(symbol1)
        to_symbol = normalize_symbol(symbol2)

        price1, price2 = await asyncio.gather(
            self._store.latest_at_or_before(from_symbol, at),
            self._store.latest_at_or_before(to_symbol, at),
        )

        for symbol, found in ((from_symbol, price1), (to_symbol, price2)):
            if found is None:
                raise PriceNotFoundError(
                    f"No price data found for {symbol} at or before {at.isoformat()}",
                    context={"symbol": symbol, "timestamp": at.isoformat()},
                )

        rate = price1.price_usd / price2.price_usd
        logger.debug(
            "Converted %s->%s at %s: %s", from_symbol, to_symbol, at.isoformat(), rate
        )
        return ConversionResult(
            from_symbol=from_symbol,
            to_symbol=to_symbol,
            rate=rate,
            query_timestamp=at,
            data_timestamps={from_symbol: price1.timestamp, to_symbol: price2.timestamp},
        )
