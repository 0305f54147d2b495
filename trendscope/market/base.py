"""Market data provider protocol.

Anything that can hand the engine candles satisfies this interface; the
engine itself never performs I/O.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from trendscope.market.models import Ticker
from trendscope.strategy.models import Candle


@runtime_checkable
class MarketDataProvider(Protocol):
    """Interface that all candle sources must satisfy."""

    async def fetch_candles(self, symbol: str, resolution: str, count: int) -> list[Candle]:
        """Return up to *count* candles, oldest first."""
        ...

    async def fetch_ticker(self, symbol: str) -> Ticker:
        """Return 24-hour statistics for *symbol*."""
        ...
