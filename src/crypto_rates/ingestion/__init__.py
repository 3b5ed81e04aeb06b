"""Price ingestion: the run-once pipeline and its recurring trigger."""

from crypto_rates.ingestion.pipeline import (
    IngestionPipeline,
    ProviderOutcome,
    RunReport,
    build_pipeline,
)
from crypto_rates.ingestion.scheduler import RecurringScheduler, RetryPolicy, run_with_retry

__all__ = [
    "IngestionPipeline",
    "ProviderOutcome",
    "RunReport",
    "build_pipeline",
    "RecurringScheduler",
    "RetryPolicy",
    "run_with_retry",
]
