"""One ingestion run: fan out to providers, aggregate, persist.

State machine per run::

    Idle → FanOut → Aggregate → Persist → Idle
                                   ↘ Failed

Provider failures are absorbed during FanOut: a failing provider is logged
and contributes nothing, and its siblings are never interrupted. Only a
missing provider set (ConfigError) or a storage failure fails the run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from crypto_rates.core.config import RatesConfig
from crypto_rates.core.exceptions import ConfigError
from crypto_rates.core.models import Observation, RunState, normalize_symbol
from crypto_rates.prices.provider import PriceProvider, build_providers
from crypto_rates.prices.store import PriceStore

logger = logging.getLogger(__name__)


@dataclass
class ProviderOutcome:
    """Result of one provider's fetch within a run."""

    provider: str
    observations: list[Observation] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunReport:
    """Summary of one ingestion run."""

    started_at: datetime
    finished_at: datetime | None = None
    state: RunState = RunState.IDLE
    fetched: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    discarded: int = 0
    inserted: int = 0

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "state": str(self.state),
            "fetched": dict(self.fetched),
            "errors": dict(self.errors),
            "discarded": self.discarded,
            "inserted": self.inserted,
        }


class IngestionPipeline:
    """Runs price ingestion once per call to :meth:`run_once`.

    Parameters
    ----------
    providers : Sequence[PriceProvider]
        Every configured provider; all are queried concurrently each run.
    store : PriceStore
        Destination for the aggregated batch.
    symbols : Sequence[str]
        The allow-listed symbol set. Observations for other symbols are
        discarded before persisting.
    """

    def __init__(
        self,
        providers: Sequence[PriceProvider],
        store: PriceStore,
        symbols: Sequence[str],
    ) -> None:
        self._providers = list(providers)
        self._store = store
        self._symbols = frozenset(normalize_symbol(s) for s in symbols)
        self._state = RunState.IDLE
        self.last_report: RunReport | None = None

    @property
    def state(self) -> RunState:
        return self._state

    async def run_once(self) -> RunReport:
        """Execute one full run. Raises ConfigError or StorageError on run failure."""
        report = RunReport(started_at=datetime.now(UTC))
        self.last_report = report
        logger.info("Starting price fetch run")

        try:
            if not self._providers:
                raise ConfigError(
                    "No price providers configured",
                    context={"field": "providers"},
                )

            self._transition(report, RunState.FAN_OUT)
            outcomes = await self._fan_out()

            self._transition(report, RunState.AGGREGATE)
            batch = self._aggregate(outcomes, report)

            self._transition(report, RunState.PERSIST)
            if batch:
                await self._persist(batch, report)
                logger.info("Bulk inserted %d price records", report.inserted)
            else:
                logger.info("No observations fetched; skipping write")
        except BaseException:
            self._transition(report, RunState.FAILED)
            report.finished_at = datetime.now(UTC)
            logger.exception("Price fetch run failed")
            self._state = RunState.IDLE
            raise

        self._transition(report, RunState.IDLE)
        report.finished_at = datetime.now(UTC)
        logger.info(
            "Price fetch run completed. Total records saved: %d", report.inserted
        )
        return report

    def _transition(self, report: RunReport, state: RunState) -> None:
        logger.debug("Run state %s -> %s", self._state, state)
        self._state = state
        report.state = state

    async def _persist(self, batch: list[Observation], report: RunReport) -> None:
        """Write the batch; a cancelled run waits for its write to settle.

        The insert runs as its own task under ``asyncio.shield``. If this run
        is cancelled (or timed out) mid-write, the insert is still awaited to
        completion before the cancellation propagates, so the write is never
        orphaned and its failure is never lost.
        """
        insert = asyncio.ensure_future(self._store.insert_batch(batch))
        cancelled: asyncio.CancelledError | None = None
        while True:
            try:
                report.inserted = await asyncio.shield(insert)
                break
            except asyncio.CancelledError as e:
                if insert.done():
                    raise
                cancelled = e

        if cancelled is not None:
            logger.warning(
                "Run cancelled during persist; %d price records were written",
                report.inserted,
            )
            raise cancelled

    async def _fan_out(self) -> list[ProviderOutcome]:
        """Query every provider concurrently; settle all before returning."""
        symbols = sorted(self._symbols)
        results = await asyncio.gather(
            *(self._fetch(provider, symbols) for provider in self._providers),
            return_exceptions=True,
        )

        outcomes: list[ProviderOutcome] = []
        for provider, result in zip(self._providers, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to fetch prices from %s: %s", provider.name, result
                )
                outcomes.append(ProviderOutcome(provider=provider.name, error=str(result)))
            else:
                logger.info(
                    "Fetched %d price records from %s", len(result), provider.name
                )
                outcomes.append(
                    ProviderOutcome(provider=provider.name, observations=list(result))
                )
        return outcomes

    @staticmethod
    async def _fetch(provider: PriceProvider, symbols: list[str]) -> list[Observation]:
        # Wrapping keeps synchronous raises inside the gathered awaitable
        return await provider.fetch_prices(symbols)

    def _aggregate(
        self, outcomes: list[ProviderOutcome], report: RunReport
    ) -> list[Observation]:
        batch: list[Observation] = []
        for outcome in outcomes:
            if not outcome.ok:
                report.errors[outcome.provider] = outcome.error or "unknown error"
                report.fetched[outcome.provider] = 0
                continue
            report.fetched[outcome.provider] = len(outcome.observations)
            for obs in outcome.observations:
                if obs.symbol not in self._symbols:
                    logger.warning(
                        "Discarding %s observation from %s: not in allow-list",
                        obs.symbol,
                        outcome.provider,
                    )
                    report.discarded += 1
                    continue
                batch.append(obs)
        return batch


def build_pipeline(
    config: RatesConfig,
    store: PriceStore,
    providers: Sequence[PriceProvider] | None = None,
) -> IngestionPipeline:
    """Wire a pipeline from config. Raises ConfigError for a misconfigured provider."""
    if providers is None:
        providers = build_providers(config.providers)
    return IngestionPipeline(providers, store, config.currencies.symbols)
