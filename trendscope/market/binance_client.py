"""Binance public REST API async client.

Fetches klines and 24-hour tickers.  No authentication: only public
market-data endpoints are used.
"""

import asyncio
import logging
from typing import Optional

import httpx

from trendscope.config import Config
from trendscope.errors import InvalidInputError
from trendscope.market.models import MAX_KLINES_PER_REQUEST, RESOLUTION_LIMITS, Ticker
from trendscope.strategy.models import Candle

logger = logging.getLogger("trendscope.market")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


class BinanceClient:
    """Async client wrapping the Binance spot market-data endpoints."""

    def __init__(self, config: Config) -> None:
        self._base_url = config.binance_base_url
        self._quote_asset = config.quote_asset
        self._timeout = config.request_timeout

    def pair(self, symbol: str) -> str:
        """``"btc"`` → ``"BTCUSDT"``; symbols already quoted pass through."""
        symbol = symbol.upper()
        if symbol.endswith(self._quote_asset):
            return symbol
        return f"{symbol}{self._quote_asset}"

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(self, url: str, params: dict) -> httpx.Response:
        """GET with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504), rate-limits
        (429) and transport errors.  Other HTTP errors raise immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(url, params=params, timeout=self._timeout)

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = _RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        "Binance GET %s returned %d, retry %d/%d in %.1fs",
                        url, resp.status_code, attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Binance GET %s transport error (%s), retry %d/%d in %.1fs",
                    url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    # ── Candle data ──────────────────────────────────────────────────────

    async def fetch_candles(
        self,
        symbol: str,
        resolution: str,
        count: Optional[int] = None,
    ) -> list[Candle]:
        """Fetch klines for *symbol*.

        Args:
            symbol: base asset (``"BTC"``) or full pair (``"BTCUSDT"``)
            resolution: Binance interval, e.g. ``"1h"``, ``"4h"``, ``"1d"``
            count: candles to request; defaults to ~30 days for the
                resolution and is capped at the exchange maximum.

        Returns:
            List of ``Candle`` objects ordered oldest-first.
        """
        if resolution not in RESOLUTION_LIMITS:
            raise InvalidInputError(
                f"Unsupported resolution {resolution!r}; "
                f"expected one of {', '.join(RESOLUTION_LIMITS)}"
            )
        limit = min(count or RESOLUTION_LIMITS[resolution], MAX_KLINES_PER_REQUEST)
        params = {"symbol": self.pair(symbol), "interval": resolution, "limit": limit}

        resp = await self._request_with_retry(f"{self._base_url}/klines", params)

        candles = [
            Candle(
                timestamp=int(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
            )
            for row in resp.json()
        ]
        logger.debug("Fetched %d %s candles for %s", len(candles), resolution, params["symbol"])
        return candles

    # ── Ticker ───────────────────────────────────────────────────────────

    async def fetch_ticker(self, symbol: str) -> Ticker:
        """24-hour price statistics for *symbol*."""
        pair = self.pair(symbol)
        resp = await self._request_with_retry(
            f"{self._base_url}/ticker/24hr", {"symbol": pair}
        )
        data = resp.json()
        return Ticker(
            symbol=pair,
            price=float(data["lastPrice"]),
            change_24h=float(data["priceChangePercent"]),
            volume_24h=float(data["quoteVolume"]),
            high_24h=float(data["highPrice"]),
            low_24h=float(data["lowPrice"]),
        )

    async def fetch_many(
        self, symbol: str, resolutions: list[str], count: Optional[int] = None
    ) -> dict[str, list[Candle]]:
        """Fetch several resolutions concurrently."""
        results = await asyncio.gather(
            *(self.fetch_candles(symbol, r, count) for r in resolutions)
        )
        return dict(zip(resolutions, results))
