"""Market data models — typed representations of exchange API objects."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Ticker:
    """24-hour rolling statistics for a symbol."""

    symbol: str
    price: float
    change_24h: float  # percent
    volume_24h: float
    high_24h: float
    low_24h: float


# Candles in roughly 30 days of history per resolution.
RESOLUTION_LIMITS: dict[str, int] = {
    "1m": 1000,
    "5m": 1000,
    "15m": 2880,
    "30m": 1440,
    "1h": 720,
    "2h": 360,
    "4h": 180,
    "6h": 120,
    "12h": 60,
    "1d": 30,
}

# Binance rejects kline requests above this many rows.
MAX_KLINES_PER_REQUEST = 1000
