"""Technical indicators — SMA, EMA, RSI, MACD, Bollinger, ADX, ATR. Pure functions, no I/O.

Every series is positionally aligned with the candles it was computed
from: same length, ``float('nan')`` wherever the lookback is not yet full.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from trendscope.config import IndicatorConfig
from trendscope.errors import InsufficientDataError, InvalidInputError, require_length
from trendscope.strategy.models import CandleSeries

logger = logging.getLogger("trendscope.indicators")

NAN = float("nan")


def is_defined(value: Optional[float]) -> bool:
    """True for a real number (not ``None`` and not NaN)."""
    return value is not None and not math.isnan(value)


# ── Moving averages ──────────────────────────────────────────────────────


def calculate_sma(series: CandleSeries, period: int) -> list[float]:
    """Simple moving average of closes.  Requires at least *period* candles."""
    require_length(len(series), period, f"SMA({period})")
    closes = series.closes
    sma: list[float] = [NAN] * len(closes)
    window_sum = sum(closes[:period])
    sma[period - 1] = window_sum / period
    for i in range(period, len(closes)):
        window_sum += closes[i] - closes[i - period]
        sma[i] = window_sum / period
    return sma


def ema_of(values: list[float], period: int) -> list[float]:
    """EMA of an arbitrary series whose leading entries may be NaN.

    The first EMA value is seeded with the SMA of the first *period*
    defined values; ``k = 2 / (period + 1)``.
    """
    start = next((i for i, v in enumerate(values) if not math.isnan(v)), len(values))
    defined = len(values) - start
    if defined < period:
        raise InsufficientDataError(
            f"Need at least {period} values for EMA({period}), got {defined}",
            required=period,
            available=defined,
        )

    k = 2.0 / (period + 1)
    ema: list[float] = [NAN] * len(values)
    seed_idx = start + period - 1
    ema[seed_idx] = sum(values[start : seed_idx + 1]) / period
    for i in range(seed_idx + 1, len(values)):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)
    return ema


def calculate_ema(series: CandleSeries, period: int) -> list[float]:
    """Calculate an Exponential Moving Average series of closes.

    Uses the standard EMA formula:
        ``EMA_today = close × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    Requires at least *period* candles. The first EMA value is seeded
    with the SMA of the first *period* closes.
    """
    require_length(len(series), period, f"EMA({period})")
    return ema_of(series.closes, period)


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(series: CandleSeries, period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RS = avg_gain / avg_loss
        6. RSI = 100 - 100 / (1 + RS), or 100 when avg_loss is zero.

    Requires at least ``period + 1`` candles.
    """
    require_length(len(series), period + 1, f"RSI({period})")

    closes = series.closes
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[float] = [NAN] * len(closes)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 100.0
        return 100.0 - 100.0 / (1.0 + ag / al)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas are offset by one candle
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


# ── MACD ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MACDSeries:
    line: list[float]
    signal: list[float]
    histogram: list[float]


def calculate_macd(
    series: CandleSeries,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDSeries:
    """MACD line (EMA fast − EMA slow), signal EMA of the line, histogram.

    The signal EMA is seeded from the first *signal* defined line values,
    so the histogram needs ``slow + signal − 1`` candles.
    """
    require_length(len(series), slow + signal - 1, f"MACD({fast},{slow},{signal})")

    fast_ema = ema_of(series.closes, fast)
    slow_ema = ema_of(series.closes, slow)
    line = [
        f - s if not (math.isnan(f) or math.isnan(s)) else NAN
        for f, s in zip(fast_ema, slow_ema)
    ]
    signal_line = ema_of(line, signal)
    histogram = [
        m - s if not (math.isnan(m) or math.isnan(s)) else NAN
        for m, s in zip(line, signal_line)
    ]
    return MACDSeries(line=line, signal=signal_line, histogram=histogram)


# ── Bollinger Bands ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class BollingerSeries:
    upper: list[float]
    middle: list[float]
    lower: list[float]
    bandwidth: list[float]  # (upper − lower) / middle × 100
    percent_b: list[float]  # (close − lower) / (upper − lower)


def calculate_bollinger(
    series: CandleSeries,
    period: int = 20,
    std_dev: float = 2.0,
) -> BollingerSeries:
    """Calculate Bollinger Bands.

    Middle = SMA(close, *period*)
    Upper  = middle + *std_dev* × σ
    Lower  = middle − *std_dev* × σ

    σ is the population standard deviation.  A flat window has zero
    width, so its percent-B is pinned to 0.5.
    """
    require_length(len(series), period, f"Bollinger({period})")

    closes = series.closes
    n = len(closes)

    upper: list[float] = [NAN] * n
    middle: list[float] = [NAN] * n
    lower: list[float] = [NAN] * n
    bandwidth: list[float] = [NAN] * n
    percent_b: list[float] = [NAN] * n

    for i in range(period - 1, n):
        window = closes[i - period + 1 : i + 1]
        sma = sum(window) / period
        sigma = math.sqrt(sum((x - sma) ** 2 for x in window) / period)

        middle[i] = sma
        upper[i] = sma + std_dev * sigma
        lower[i] = sma - std_dev * sigma

        width = upper[i] - lower[i]
        bandwidth[i] = width / sma * 100 if sma else 0.0
        percent_b[i] = (closes[i] - lower[i]) / width if width else 0.5

    return BollingerSeries(upper, middle, lower, bandwidth, percent_b)


# ── ADX ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ADXSeries:
    adx: list[float]
    plus_di: list[float]
    minus_di: list[float]


def _true_ranges(series: CandleSeries) -> list[float]:
    """True range per bar; index 0 has no previous close and is 0.0."""
    tr = [0.0]
    for i in range(1, len(series)):
        high, low, prev_close = series.highs[i], series.lows[i], series.closes[i - 1]
        tr.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
    return tr


def calculate_adx(series: CandleSeries, period: int = 14) -> ADXSeries:
    """Calculate the Average Directional Index with its +DI / −DI lines.

    Algorithm:
        1. +DM / -DM directional movement per bar.
        2. Wilder-smooth +DM, -DM, and TR over *period*.
        3. +DI = 100 × smoothed_+DM / smoothed_TR
        4. -DI = 100 × smoothed_-DM / smoothed_TR
        5. DX = 100 × |+DI − −DI| / (+DI + −DI)
        6. ADX = Wilder-smoothed DX over *period*.

    DI values start at candle *period*; the first ADX lands at
    ``2 × period − 1``, so ``2 × period`` candles are required.
    """
    require_length(len(series), 2 * period, f"ADX({period})")

    n = len(series)
    tr_raw = _true_ranges(series)
    plus_dm_raw = [0.0]
    minus_dm_raw = [0.0]
    for i in range(1, n):
        up_move = series.highs[i] - series.highs[i - 1]
        down_move = series.lows[i - 1] - series.lows[i]
        plus_dm_raw.append(up_move if (up_move > down_move and up_move > 0) else 0.0)
        minus_dm_raw.append(down_move if (down_move > up_move and down_move > 0) else 0.0)

    plus_di: list[float] = [NAN] * n
    minus_di: list[float] = [NAN] * n
    dx_values: list[float] = []

    smoothed_plus_dm = sum(plus_dm_raw[1 : period + 1])
    smoothed_minus_dm = sum(minus_dm_raw[1 : period + 1])
    smoothed_tr = sum(tr_raw[1 : period + 1])

    for i in range(period, n):
        if i > period:
            smoothed_plus_dm = smoothed_plus_dm - smoothed_plus_dm / period + plus_dm_raw[i]
            smoothed_minus_dm = smoothed_minus_dm - smoothed_minus_dm / period + minus_dm_raw[i]
            smoothed_tr = smoothed_tr - smoothed_tr / period + tr_raw[i]

        if smoothed_tr == 0:
            pdi = mdi = 0.0
        else:
            pdi = 100.0 * smoothed_plus_dm / smoothed_tr
            mdi = 100.0 * smoothed_minus_dm / smoothed_tr
        plus_di[i] = pdi
        minus_di[i] = mdi

        di_sum = pdi + mdi
        dx_values.append(100.0 * abs(pdi - mdi) / di_sum if di_sum else 0.0)

    adx: list[float] = [NAN] * n
    # dx_values[0] belongs to candle *period*
    adx_prev = sum(dx_values[:period]) / period
    adx[2 * period - 1] = adx_prev
    for j in range(period, len(dx_values)):
        adx_prev = (adx_prev * (period - 1) + dx_values[j]) / period
        adx[period + j] = adx_prev

    return ADXSeries(adx=adx, plus_di=plus_di, minus_di=minus_di)


# ── ATR ──────────────────────────────────────────────────────────────────


def calculate_atr(series: CandleSeries, period: int = 14) -> list[float]:
    """Average True Range with Wilder smoothing.

    TR = max(high - low, |high - prev_close|, |low - prev_close|)

    Seeded with the mean of the first *period* true ranges (candles
    1..period), then ``ATR = (prev × (period − 1) + TR) / period``.
    Requires at least ``period + 1`` candles.
    """
    require_length(len(series), period + 1, f"ATR({period})")

    tr = _true_ranges(series)
    atr: list[float] = [NAN] * len(series)
    atr[period] = sum(tr[1 : period + 1]) / period
    for i in range(period + 1, len(series)):
        atr[i] = (atr[i - 1] * (period - 1) + tr[i]) / period
    return atr


# ── Indicator bundle ─────────────────────────────────────────────────────


T = TypeVar("T")


@dataclass(frozen=True)
class IndicatorSet:
    """All indicators for one candle series.

    A field is ``None`` when the series is shorter than that indicator's
    minimum; every present series has exactly ``length`` entries.
    """

    length: int
    sma: Optional[list[float]]
    ema: dict[int, Optional[list[float]]]
    rsi: Optional[list[float]]
    macd: Optional[MACDSeries]
    bollinger: Optional[BollingerSeries]
    adx: Optional[ADXSeries]
    atr: Optional[list[float]]

    def __post_init__(self) -> None:
        for name, values in self._all_series():
            if values is not None and len(values) != self.length:
                raise InvalidInputError(
                    f"{name} has {len(values)} values for {self.length} candles"
                )

    def _all_series(self):
        yield "sma", self.sma
        for period, values in self.ema.items():
            yield f"ema{period}", values
        yield "rsi", self.rsi
        yield "atr", self.atr
        if self.macd is not None:
            yield "macd.line", self.macd.line
            yield "macd.signal", self.macd.signal
            yield "macd.histogram", self.macd.histogram
        if self.bollinger is not None:
            yield "bollinger.upper", self.bollinger.upper
            yield "bollinger.percent_b", self.bollinger.percent_b
        if self.adx is not None:
            yield "adx", self.adx.adx
            yield "plus_di", self.adx.plus_di

    def ema_series(self, period: int) -> Optional[list[float]]:
        return self.ema.get(period)


def _optional(name: str, fn: Callable[[], T]) -> Optional[T]:
    try:
        return fn()
    except InsufficientDataError as exc:
        logger.debug("%s unavailable: %s", name, exc)
        return None


def compute_indicators(
    series: CandleSeries,
    config: Optional[IndicatorConfig] = None,
) -> IndicatorSet:
    """Compute every indicator once for *series*.

    Indicators whose minimum exceeds the series length come back as
    ``None`` instead of raising.
    """
    cfg = config or IndicatorConfig()
    return IndicatorSet(
        length=len(series),
        sma=_optional("SMA", lambda: calculate_sma(series, cfg.sma_period)),
        ema={
            p: _optional(f"EMA({p})", lambda p=p: calculate_ema(series, p))
            for p in cfg.ema_periods
        },
        rsi=_optional("RSI", lambda: calculate_rsi(series, cfg.rsi_period)),
        macd=_optional(
            "MACD",
            lambda: calculate_macd(series, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal),
        ),
        bollinger=_optional(
            "Bollinger",
            lambda: calculate_bollinger(series, cfg.bollinger_period, cfg.bollinger_stddev),
        ),
        adx=_optional("ADX", lambda: calculate_adx(series, cfg.adx_period)),
        atr=_optional("ATR", lambda: calculate_atr(series, cfg.atr_period)),
    )
