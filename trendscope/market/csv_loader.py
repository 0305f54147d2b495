"""Load OHLCV candles from CSV files with pandas."""

import logging
from pathlib import Path
from typing import Union

import pandas as pd

from trendscope.errors import InvalidInputError
from trendscope.strategy.models import Candle

logger = logging.getLogger("trendscope.market")

_REQUIRED_COLUMNS = ["open", "high", "low", "close"]
_TIME_COLUMNS = ("timestamp", "time", "open_time", "date")
_EPOCH = pd.Timestamp("1970-01-01", tz="UTC")


def clean_candles(df: pd.DataFrame) -> pd.DataFrame:
    """Normalise a raw candle frame.

    Lower-cases column names, converts the time column to epoch
    milliseconds, drops rows with missing prices or duplicate timestamps
    and sorts oldest first.
    """
    df = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    time_col = next((c for c in _TIME_COLUMNS if c in df.columns), None)
    missing = [c for c in _REQUIRED_COLUMNS if c not in df.columns]
    if time_col is None or missing:
        raise InvalidInputError(
            f"CSV needs a time column ({'/'.join(_TIME_COLUMNS)}) and {missing or _REQUIRED_COLUMNS}"
        )
    if "volume" not in df.columns:
        df["volume"] = 0.0

    if pd.api.types.is_numeric_dtype(df[time_col]):
        df["timestamp"] = df[time_col].astype("int64")
    else:
        ts = pd.to_datetime(df[time_col], utc=True)
        df["timestamp"] = (ts - _EPOCH) // pd.Timedelta(milliseconds=1)

    before = len(df)
    df = df.dropna(subset=_REQUIRED_COLUMNS)
    df = df.drop_duplicates(subset="timestamp", keep="last")
    df = df.sort_values("timestamp").reset_index(drop=True)
    if len(df) != before:
        logger.info("Dropped %d malformed or duplicate rows", before - len(df))
    return df[["timestamp", "open", "high", "low", "close", "volume"]]


def load_candles_csv(path: Union[str, Path]) -> list[Candle]:
    """Read a CSV of candles into ``Candle`` objects, oldest first."""
    df = clean_candles(pd.read_csv(path))
    return [
        Candle(
            timestamp=int(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]
