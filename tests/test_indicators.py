"""Deterministic tests for the indicator library.

All tests use fixed candle data fixtures. Same input = same output, always.
"""

import math

import pytest

from trendscope.config import IndicatorConfig
from trendscope.errors import InsufficientDataError, InvalidInputError
from trendscope.strategy.indicators import (
    IndicatorSet,
    calculate_adx,
    calculate_atr,
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    compute_indicators,
    ema_of,
)
from trendscope.strategy.models import Candle, CandleSeries


# ── Candle fixtures ──────────────────────────────────────────────────────

_T0 = 1_700_000_000_000
_HOUR = 3_600_000


def _make_candle(i: int, o: float, h: float, l: float, c: float, vol: float = 1000.0) -> Candle:
    return Candle(timestamp=_T0 + i * _HOUR, open=o, high=h, low=l, close=c, volume=vol)


def _series(closes, spread: float = 1.0) -> CandleSeries:
    return CandleSeries(
        _make_candle(i, c, c + spread, c - spread, c) for i, c in enumerate(closes)
    )


def _rising(n: int, start: float = 100.0, step: float = 1.0, spread: float = 0.5) -> CandleSeries:
    return _series([start + step * i for i in range(n)], spread=spread)


# ── SMA / EMA ────────────────────────────────────────────────────────────


class TestMovingAverages:
    def test_sma_values_and_warmup(self):
        sma = calculate_sma(_series(range(1, 11)), 3)
        assert len(sma) == 10
        assert math.isnan(sma[0]) and math.isnan(sma[1])
        assert sma[2] == pytest.approx(2.0)
        assert sma[9] == pytest.approx(9.0)

    def test_ema_seeded_with_sma(self):
        ema = calculate_ema(_series([1, 2, 3, 4, 5]), 3)
        assert math.isnan(ema[1])
        assert ema[2] == pytest.approx(2.0)
        # k = 0.5
        assert ema[3] == pytest.approx(3.0)
        assert ema[4] == pytest.approx(4.0)

    def test_ema_skips_leading_nan(self):
        ema = ema_of([float("nan"), float("nan"), 1.0, 2.0, 3.0], 2)
        assert math.isnan(ema[2])
        assert ema[3] == pytest.approx(1.5)
        assert ema[4] == pytest.approx(2.5)

    def test_ema_insufficient_data(self):
        with pytest.raises(InsufficientDataError):
            calculate_ema(_series([1, 2]), 3)

    def test_insufficient_data_is_a_value_error(self):
        with pytest.raises(ValueError, match="Need at least 5 candles for SMA"):
            calculate_sma(_series([1, 2, 3]), 5)


# ── RSI ──────────────────────────────────────────────────────────────────


class TestRSI:
    def test_all_gains_is_100(self):
        rsi = calculate_rsi(_rising(30), 14)
        assert math.isnan(rsi[13])
        assert rsi[14] == pytest.approx(100.0)
        assert rsi[-1] == pytest.approx(100.0)

    def test_all_losses_is_0(self):
        rsi = calculate_rsi(_rising(30, start=200, step=-1.0), 14)
        assert rsi[-1] == pytest.approx(0.0)

    def test_bounded(self):
        closes = [100 + 5 * math.sin(i / 3) for i in range(80)]
        rsi = calculate_rsi(_series(closes), 14)
        assert all(0 <= v <= 100 for v in rsi[14:])

    def test_needs_period_plus_one(self):
        with pytest.raises(InsufficientDataError):
            calculate_rsi(_rising(14), 14)


# ── MACD ─────────────────────────────────────────────────────────────────


class TestMACD:
    def test_warmup_boundaries(self):
        macd = calculate_macd(_rising(60), 12, 26, 9)
        assert math.isnan(macd.line[24])
        assert not math.isnan(macd.line[25])
        assert math.isnan(macd.histogram[32])
        assert not math.isnan(macd.histogram[33])
        assert len(macd.line) == len(macd.signal) == len(macd.histogram) == 60

    def test_histogram_is_line_minus_signal(self):
        macd = calculate_macd(_series([100 + 3 * math.sin(i / 4) for i in range(70)]))
        for i in range(33, 70):
            assert macd.histogram[i] == pytest.approx(macd.line[i] - macd.signal[i])

    def test_minimum_is_slow_plus_signal_minus_one(self):
        calculate_macd(_rising(34))
        with pytest.raises(InsufficientDataError):
            calculate_macd(_rising(33))


# ── Bollinger ────────────────────────────────────────────────────────────


class TestBollinger:
    def test_known_window(self):
        bands = calculate_bollinger(_series([1, 2, 3, 4, 5], spread=0.5), period=5, std_dev=2.0)
        root2 = math.sqrt(2)
        assert bands.middle[4] == pytest.approx(3.0)
        assert bands.upper[4] == pytest.approx(3 + 2 * root2)
        assert bands.lower[4] == pytest.approx(3 - 2 * root2)
        assert bands.bandwidth[4] == pytest.approx(4 * root2 / 3 * 100)
        assert bands.percent_b[4] == pytest.approx((1 + root2) / (2 * root2))

    def test_flat_window_pins_percent_b(self):
        bands = calculate_bollinger(_series([50.0] * 25), period=20)
        assert bands.upper[-1] == bands.middle[-1] == bands.lower[-1]
        assert bands.bandwidth[-1] == 0.0
        assert bands.percent_b[-1] == 0.5


# ── ATR / ADX ────────────────────────────────────────────────────────────


class TestATR:
    def test_constant_range(self):
        atr = calculate_atr(_series([100.0] * 20, spread=1.0), 14)
        assert math.isnan(atr[13])
        assert atr[14] == pytest.approx(2.0)
        assert atr[-1] == pytest.approx(2.0)

    def test_wilder_smoothing(self):
        candles = [_make_candle(i, 100, 101, 99, 100) for i in range(15)]
        candles.append(_make_candle(15, 100, 103, 97, 100))
        atr = calculate_atr(CandleSeries(candles), 14)
        assert atr[15] == pytest.approx((2.0 * 13 + 6.0) / 14)


class TestADX:
    def test_strong_uptrend(self):
        adx = calculate_adx(_rising(40), 14)
        assert math.isnan(adx.adx[26])
        assert adx.adx[27] == pytest.approx(100.0)
        assert adx.plus_di[-1] > adx.minus_di[-1]

    def test_needs_two_periods(self):
        calculate_adx(_rising(28), 14)
        with pytest.raises(InsufficientDataError):
            calculate_adx(_rising(27), 14)


# ── Indicator bundle ─────────────────────────────────────────────────────


class TestComputeIndicators:
    def test_short_series_marks_unavailable(self):
        ind = compute_indicators(_rising(30))
        assert ind.sma is None
        assert ind.ema_series(50) is None
        assert ind.macd is None
        assert ind.rsi is not None
        assert ind.adx is not None

    @pytest.mark.parametrize("n", [60, 121])
    def test_every_series_is_aligned(self, n):
        closes = [100 + 10 * math.sin(i / 7) + i * 0.1 for i in range(n)]
        ind = compute_indicators(_series(closes))
        series_list = [ind.sma, ind.rsi, ind.atr]
        series_list += list(ind.ema.values())
        series_list += [ind.macd.line, ind.macd.signal, ind.macd.histogram]
        series_list += [ind.bollinger.upper, ind.bollinger.percent_b, ind.adx.adx]
        for values in series_list:
            assert len(values) == n

    def test_custom_periods(self):
        cfg = IndicatorConfig(rsi_period=5, ema_periods=(3, 12, 20, 26, 50))
        ind = compute_indicators(_rising(60), cfg)
        assert not math.isnan(ind.rsi[5])
        assert ind.ema_series(3) is not None

    def test_misaligned_series_rejected(self):
        with pytest.raises(InvalidInputError, match="sma has 2 values for 3 candles"):
            IndicatorSet(
                length=3,
                sma=[1.0, 2.0],
                ema={},
                rsi=None,
                macd=None,
                bollinger=None,
                adx=None,
                atr=None,
            )
