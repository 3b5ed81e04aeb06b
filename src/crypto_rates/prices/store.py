"""Price storage backend: Protocol definition, SQLite implementation, factory.

The store is an append-only log of observations. Rows are never updated or
deleted, and no uniqueness is enforced on (symbol, timestamp): re-ingesting
the same provider state appends duplicates.

Point-in-time lookups pick, among rows with ``symbol = S`` and
``timestamp <= T``, the row with the greatest timestamp. Ties on timestamp
go to the most recently inserted row (highest ``id``); within a batch, later
list positions are inserted later.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from crypto_rates.core.config import StorageConfig
from crypto_rates.core.exceptions import StorageError
from crypto_rates.core.models import (
    Observation,
    StorageBackend as StorageBackendEnum,
    normalize_symbol,
    to_utc,
)

logger = logging.getLogger(__name__)


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC text, so lexicographic order equals chronological order."""
    naive = to_utc(value).replace(tzinfo=None)
    return naive.isoformat(timespec="microseconds") + "Z"


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.removesuffix("Z")).replace(tzinfo=UTC)


@runtime_checkable
class PriceStore(Protocol):
    """Abstract append-only observation store."""

    async def insert_batch(self, observations: list[Observation]) -> int: ...
    async def latest_at_or_before(
        self, symbol: str, timestamp: datetime
    ) -> Observation | None: ...
    async def get_statistics(self) -> dict: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqlitePriceStore:
    """SQLite implementation of the price store.

    Uses aiosqlite with WAL mode and two connections: one writer, one reader.
    A batch is written and committed on the writer in one transaction, and
    the reader only ever sees committed data, so a concurrent conversion
    query observes either the whole batch or none of it.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS currency_prices (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    price_usd TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    source TEXT NOT NULL,
                    ingested_at TEXT NOT NULL
                )""",
                # Indexes
                "CREATE INDEX IF NOT EXISTS idx_currency_prices_symbol_timestamp "
                "ON currency_prices(symbol, timestamp)",
                "CREATE INDEX IF NOT EXISTS idx_currency_prices_timestamp "
                "ON currency_prices(timestamp)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._writer: aiosqlite.Connection | None = None
        self._reader: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open connections, enable WAL, run migrations."""
        try:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._writer = await aiosqlite.connect(self._path)
            await self._writer.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._writer.commit()

            self._reader = await aiosqlite.connect(self._path)
            self._reader.row_factory = aiosqlite.Row
        except Exception as e:
            await self.close()
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        for conn in (self._reader, self._writer):
            if conn is not None:
                await conn.close()
        self._reader = None
        self._writer = None

    async def health_check(self) -> bool:
        if self._reader is None:
            return False
        try:
            async with self._reader.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._writer.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._writer.execute(sql)
            await self._writer.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Observation Operations ---

    async def insert_batch(self, observations: list[Observation]) -> int:
        """Append all observations in one transaction. Returns rows inserted.

        An empty list returns 0 without touching the database.
        """
        if not observations:
            return 0
        if self._writer is None:
            raise StorageError(
                "Store is not initialized",
                context={"operation": "insert", "table": "currency_prices"},
            )

        ingested_at = format_timestamp(datetime.now(UTC))
        rows = [
            (
                obs.symbol,
                str(obs.price_usd),
                format_timestamp(obs.timestamp),
                obs.source,
                ingested_at,
            )
            for obs in observations
        ]
        async with self._write_lock:
            try:
                await self._writer.executemany(
                    """INSERT INTO currency_prices
                       (symbol, price_usd, timestamp, source, ingested_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    rows,
                )
                await self._writer.commit()
            except Exception as e:
                await self._rollback()
                raise StorageError(
                    f"Failed to insert observation batch: {e}",
                    context={
                        "operation": "insert",
                        "table": "currency_prices",
                        "batch_size": len(rows),
                    },
                ) from e

        logger.info("Stored %d price observations", len(rows))
        return len(rows)

    async def _rollback(self) -> None:
        try:
            await self._writer.rollback()
        except Exception:
            logger.exception("Rollback after failed insert also failed")

    async def latest_at_or_before(
        self, symbol: str, timestamp: datetime
    ) -> Observation | None:
        """Most recent observation for `symbol` with timestamp <= `timestamp`.

        Ties on timestamp resolve to the highest row id (latest insert).
        Returns None when no row qualifies.
        """
        if self._reader is None:
            raise StorageError(
                "Store is not initialized",
                context={"operation": "query", "table": "currency_prices"},
            )
        try:
            async with self._reader.execute(
                """SELECT id, symbol, price_usd, timestamp, source, ingested_at
                   FROM currency_prices
                   WHERE symbol = ? AND timestamp <= ?
                   ORDER BY timestamp DESC, id DESC
                   LIMIT 1""",
                (normalize_symbol(symbol), format_timestamp(timestamp)),
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to query latest price: {e}",
                context={
                    "operation": "query",
                    "table": "currency_prices",
                    "symbol": symbol,
                },
            ) from e
        return self._row_to_observation(row) if row is not None else None

    async def get_statistics(self) -> dict:
        """Row count, per-symbol counts, and the overall timestamp range."""
        if self._reader is None:
            raise StorageError(
                "Store is not initialized",
                context={"operation": "stats", "table": "currency_prices"},
            )
        try:
            async with self._reader.execute(
                """SELECT COUNT(*) AS total, MIN(timestamp) AS earliest,
                          MAX(timestamp) AS latest
                   FROM currency_prices"""
            ) as cursor:
                totals = await cursor.fetchone()
            async with self._reader.execute(
                """SELECT symbol, COUNT(*) AS n FROM currency_prices
                   GROUP BY symbol ORDER BY symbol"""
            ) as cursor:
                per_symbol = await cursor.fetchall()
        except Exception as e:
            raise StorageError(
                f"Failed to gather statistics: {e}",
                context={"operation": "stats", "table": "currency_prices"},
            ) from e

        return {
            "total_observations": totals["total"],
            "symbols": {row["symbol"]: row["n"] for row in per_symbol},
            "earliest": parse_timestamp(totals["earliest"]) if totals["earliest"] else None,
            "latest": parse_timestamp(totals["latest"]) if totals["latest"] else None,
        }

    # --- Row Mapping ---

    @staticmethod
    def _row_to_observation(row: aiosqlite.Row) -> Observation:
        return Observation(
            id=row["id"],
            symbol=row["symbol"],
            price_usd=Decimal(row["price_usd"]),
            timestamp=parse_timestamp(row["timestamp"]),
            source=row["source"],
            ingested_at=parse_timestamp(row["ingested_at"]),
        )


async def create_store(config: StorageConfig) -> SqlitePriceStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackendEnum.SQLITE:
        store = SqlitePriceStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
