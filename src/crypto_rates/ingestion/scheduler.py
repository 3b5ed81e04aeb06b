"""Recurring trigger for ingestion runs.

The pipeline only exposes ``run_once``. This module owns the bounded retry
safety net and hands wall-clock cadence to APScheduler. Provider flakiness
is already absorbed inside a run, so retries here only cover run-level
failures (storage errors, timeouts).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.job import Job
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from crypto_rates.core.config import SchedulerConfig
from crypto_rates.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: ``limit`` extra attempts after the first one."""

    limit: int = 1
    delay: float = 20.0
    backoff: bool = True
    timeout: float | None = None

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> RetryPolicy:
        return cls(
            limit=config.retry_limit,
            delay=config.retry_delay,
            backoff=config.retry_backoff,
            timeout=config.run_timeout,
        )

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""
        if retry_number < 1:
            return 0.0
        if self.backoff:
            return self.delay * (2 ** (retry_number - 1))
        return self.delay


async def run_with_retry(
    callback: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
) -> T:
    """Call ``callback`` until it succeeds or ``1 + policy.limit`` attempts fail.

    ConfigError is fatal and never retried. A per-attempt timeout, when set,
    counts as a failed attempt. The last error is re-raised.
    """
    attempts = policy.limit + 1
    for attempt in range(1, attempts + 1):
        try:
            if policy.timeout is not None:
                return await asyncio.wait_for(callback(), timeout=policy.timeout)
            return await callback()
        except ConfigError:
            raise
        except Exception as e:
            if attempt >= attempts:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "Run failed (%s: %s), retrying in %.1fs (attempt %d/%d)",
                type(e).__name__, e, delay, attempt, attempts,
            )
            await asyncio.sleep(delay)

    # Should not reach here, but just in case
    raise RuntimeError("retry loop exited without result")


class RecurringScheduler:
    """In-process recurring trigger backed by APScheduler.

    Jobs run on an ``AsyncIOScheduler`` with ``coalesce=True`` and
    ``max_instances=1``: a run (including its retries) never overlaps the
    next one, and ticks missed meanwhile collapse into a single run.

    A ConfigError from a run removes every job and is re-raised from
    :meth:`wait`. Any other failure is logged and the schedule continues.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone="UTC",
        )
        self._in_flight: set[asyncio.Task[Any]] = set()
        self._done = asyncio.Event()
        self._fatal: ConfigError | None = None
        self.runs_succeeded = 0
        self.runs_failed = 0

    @property
    def running(self) -> bool:
        return self._scheduler.running and bool(self._scheduler.get_jobs())

    def schedule(
        self,
        cadence: float,
        policy: RetryPolicy,
        callback: Callable[[], Awaitable[Any]],
        run_immediately: bool = True,
    ) -> Job:
        """Call ``callback`` every ``cadence`` seconds. Needs a running event loop."""
        if cadence <= 0:
            raise ValueError("cadence must be > 0")

        kwargs: dict[str, Any] = {}
        if run_immediately:
            kwargs["next_run_time"] = datetime.now(UTC)
        job = self._scheduler.add_job(
            self._run,
            trigger="interval",
            seconds=cadence,
            args=[policy, callback],
            id=f"recurring-{getattr(callback, '__name__', 'job')}",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            **kwargs,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("Scheduled %s every %ss", job.id, cadence)
        return job

    async def _run(
        self, policy: RetryPolicy, callback: Callable[[], Awaitable[Any]]
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._in_flight.add(task)
        try:
            await run_with_retry(callback, policy)
            self.runs_succeeded += 1
        except ConfigError as e:
            self.runs_failed += 1
            logger.error("Scheduled run hit a configuration error; stopping: %s", e)
            self._fatal = e
            self._scheduler.remove_all_jobs()
            self._done.set()
        except Exception:
            self.runs_failed += 1
            logger.exception("Scheduled run failed after %d retries", policy.limit)
        finally:
            if task is not None:
                self._in_flight.discard(task)

    async def wait(self) -> None:
        """Block until :meth:`stop` is called or a run hits a ConfigError."""
        await self._done.wait()
        if self._fatal is not None:
            raise self._fatal

    async def stop(self) -> None:
        """Shut the scheduler down and wait for any in-progress run to settle."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        pending = list(self._in_flight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._done.set()
