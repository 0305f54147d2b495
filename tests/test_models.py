"""Tests for candle validation and the small model helpers."""

import math

import pytest

from trendscope.errors import InvalidInputError
from trendscope.strategy.models import (
    Candle,
    CandleSeries,
    RecommendationClass,
    SignalStatus,
)


def _make_candle(ts=1_000, o=10.0, h=11.0, l=9.0, c=10.5, vol=5.0) -> Candle:
    return Candle(timestamp=ts, open=o, high=h, low=l, close=c, volume=vol)


class TestCandleSeries:
    def test_aligned_columns(self):
        series = CandleSeries([_make_candle(1_000), _make_candle(2_000, c=10.8)])
        assert len(series) == 2
        assert series.timestamps == [1_000, 2_000]
        assert series.closes == [10.5, 10.8]
        assert series[-1].close == 10.8

    def test_tail(self):
        series = CandleSeries([_make_candle(ts) for ts in range(1, 6)])
        assert series.tail(2).timestamps == [4, 5]
        assert series.tail(10) is series

    def test_coerce_passes_series_through(self):
        series = CandleSeries([_make_candle()])
        assert CandleSeries.coerce(series) is series

    @pytest.mark.parametrize(
        "candles, message",
        [
            ([], "empty"),
            ([_make_candle(2_000), _make_candle(1_000)], "not after"),
            ([_make_candle(1_000), _make_candle(1_000)], "not after"),
            ([_make_candle(h=10.2)], "bracket"),
            ([_make_candle(l=10.6)], "bracket"),
            ([_make_candle(vol=-1.0)], "negative"),
            ([_make_candle(c=math.nan)], "non-finite"),
            ([{"open": 1}], "not a Candle"),
        ],
    )
    def test_rejects_malformed(self, candles, message):
        with pytest.raises(InvalidInputError, match=message):
            CandleSeries(candles)


class TestFromMapping:
    def test_time_key_alias(self):
        c = Candle.from_mapping(
            {"time": "1700000000000", "open": "1", "high": 2, "low": 0.5, "close": 1.5}
        )
        assert c.timestamp == 1_700_000_000_000
        assert c.volume == 0.0

    def test_missing_field(self):
        with pytest.raises(InvalidInputError, match="Malformed"):
            Candle.from_mapping({"timestamp": 1, "open": 1, "high": 2, "low": 0.5})


class TestEnums:
    def test_class_ranks(self):
        ranks = [c.rank for c in RecommendationClass]
        assert ranks == [2, 1, 0, -1, -2]
        assert RecommendationClass.BUY.is_bullish
        assert RecommendationClass.SELL.is_bearish
        assert not RecommendationClass.HOLD.is_bullish

    def test_status_direction(self):
        assert SignalStatus.WATCH_FOR_PULLBACK.is_bullish
        assert not SignalStatus.HOLD.is_bullish and not SignalStatus.HOLD.is_bearish
        assert SignalStatus.STRONG_SELL.is_bearish
