"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys

from crypto_rates.core.config import LoggingConfig

_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "apscheduler")


def configure_logging(config: LoggingConfig | None = None, verbose: bool = False) -> None:
    """Configure root logging on stdout.

    `verbose` forces DEBUG for crypto_rates loggers regardless of config.
    Third-party HTTP, DB and scheduler loggers stay at WARNING.
    """
    config = config or LoggingConfig()
    logging.basicConfig(
        level=config.level,
        format=config.format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    if verbose:
        logging.getLogger("crypto_rates").setLevel(logging.DEBUG)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
