"""CoinMarketCap price provider — direct HTTP implementation.

Uses the ``/cryptocurrency/quotes/latest`` endpoint via httpx with one
batched request per fetch. Requires an API key sent as ``X-CMC_PRO_API_KEY``.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from datetime import datetime
from typing import Any

import httpx
from aiolimiter import AsyncLimiter
from pydantic import ValidationError

from crypto_rates.core.config import CoinMarketCapConfig
from crypto_rates.core.exceptions import ConfigError, ProviderError
from crypto_rates.core.models import Observation, normalize_symbol

logger = logging.getLogger(__name__)

_QUOTES_PATH = "/cryptocurrency/quotes/latest"
_CONVERT = "USD"


class CoinMarketCapProvider:
    """Fetches latest USD quotes from CoinMarketCap.

    Parameters
    ----------
    config : CoinMarketCapConfig
        Must carry an ``api_key``; construction fails with ConfigError
        otherwise, so a keyless provider is never offered to the scheduler.
    """

    NAME = "CoinMarketCap"

    def __init__(self, config: CoinMarketCapConfig) -> None:
        if not config.api_key:
            raise ConfigError(
                "CoinMarketCap API key is required "
                "(set COINMARKETCAP_API_KEY or providers.coinmarketcap.api_key)",
                context={"field": "providers.coinmarketcap.api_key", "value": None},
            )
        self._api_key = config.api_key
        self._base_url = config.base_url.rstrip("/")
        self._timeout = config.request_timeout
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=60.0)

    @property
    def name(self) -> str:
        return self.NAME

    async def fetch_prices(self, symbols: Collection[str]) -> list[Observation]:
        """Fetch prices for all symbols in a single request.

        Symbols missing from the response are silently omitted.
        """
        requested = sorted({normalize_symbol(s) for s in symbols if s.strip()})
        if not requested:
            return []

        payload = await self._request(requested)
        data = payload.get("data")
        if not isinstance(data, dict):
            raise ProviderError(
                "CoinMarketCap response has no data object",
                context={"provider": self.NAME, "status_code": 200},
            )

        observations: list[Observation] = []
        for symbol in requested:
            entry = data.get(symbol)
            # v2-style responses map each symbol to a list of matches
            if isinstance(entry, list):
                entry = entry[0] if entry else None
            if not isinstance(entry, dict):
                continue
            observation = self._to_observation(symbol, entry)
            if observation is not None:
                observations.append(observation)

        logger.debug(
            "CoinMarketCap returned %d/%d requested symbols",
            len(observations),
            len(requested),
        )
        return observations

    async def _request(self, symbols: list[str]) -> dict[str, Any]:
        url = f"{self._base_url}{_QUOTES_PATH}"
        params = {"symbol": ",".join(symbols), "convert": _CONVERT}
        headers = {"X-CMC_PRO_API_KEY": self._api_key, "Accept": "application/json"}

        await self._limiter.acquire()
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, params=params, headers=headers)
        except httpx.RequestError as e:
            raise ProviderError(
                f"CoinMarketCap request failed: {e}",
                context={"provider": self.NAME, "status_code": None},
            ) from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        status = body.get("status") if isinstance(body, dict) else None
        if not resp.is_success:
            message = status.get("error_message") if isinstance(status, dict) else None
            raise ProviderError(
                f"CoinMarketCap API error: {resp.status_code} {message or resp.reason_phrase}",
                context={"provider": self.NAME, "status_code": resp.status_code},
            )
        if not isinstance(body, dict):
            raise ProviderError(
                "CoinMarketCap returned a non-JSON or non-object body",
                context={"provider": self.NAME, "status_code": resp.status_code},
            )
        if isinstance(status, dict) and status.get("error_code", 0) != 0:
            raise ProviderError(
                f"CoinMarketCap API error: {status.get('error_message')}",
                context={
                    "provider": self.NAME,
                    "status_code": resp.status_code,
                    "error_code": status.get("error_code"),
                },
            )
        return body

    def _to_observation(self, symbol: str, entry: dict[str, Any]) -> Observation | None:
        quote = (entry.get("quote") or {}).get(_CONVERT)
        if not isinstance(quote, dict):
            return None

        last_updated = quote.get("last_updated") or entry.get("last_updated")
        try:
            return Observation(
                symbol=entry.get("symbol") or symbol,
                price_usd=quote.get("price"),
                timestamp=datetime.fromisoformat(last_updated),
                source=self.NAME,
            )
        except (TypeError, ValueError, ValidationError) as e:
            logger.warning("Skipping malformed CoinMarketCap quote for %s: %s", symbol, e)
            return None
