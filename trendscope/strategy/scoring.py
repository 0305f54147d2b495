"""Composite scoring engine — weighted sub-scores, class, entry timing.

Turns an ``IndicatorSet`` into a ``Recommendation`` for one candle
position.  ``ScoringEngine.score`` scores the latest candle;
``ScoringEngine.evaluate`` scores any index of a precomputed context and
is what the backtester replays.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from trendscope.config import ScoringConfig
from trendscope.errors import InvalidInputError
from trendscope.strategy.indicators import IndicatorSet, compute_indicators, is_defined
from trendscope.strategy.models import (
    Candle,
    CandleSeries,
    IndicatorSnapshot,
    Recommendation,
    RecommendationClass,
    ScoreBreakdown,
    Severity,
    SignalStatus,
    SignalWarning,
    StopLoss,
    VolumeAnalysis,
)

logger = logging.getLogger("trendscope.scoring")


@dataclass(frozen=True)
class ScoringContext:
    """A validated series with its indicators computed once."""

    series: CandleSeries
    indicators: IndicatorSet


def _at(values: Optional[list[float]], i: int) -> Optional[float]:
    if values is None or i < 0 or i >= len(values):
        return None
    v = values[i]
    return v if is_defined(v) else None


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _pct_change(current: float, past: float) -> float:
    if past == 0:
        return 0.0
    return (current - past) / past * 100


# ── Sub-scores ───────────────────────────────────────────────────────────


_GAIN_BUCKETS = ((20.0, 15.0), (10.0, 12.0), (5.0, 8.0), (0.0, 4.0))
_LOSS_BUCKETS = ((20.0, -35.0), (10.0, -30.0), (5.0, -20.0), (0.0, -10.0))


def _bucket(magnitude: float, buckets: tuple[tuple[float, float], ...]) -> float:
    for bound, points in buckets:
        if magnitude > bound:
            return points
    return 0.0


def long_term_trend_score(ctx: ScoringContext, i: int, cfg: ScoringConfig) -> Optional[float]:
    """Price versus the slow averages plus weighted multi-lookback momentum.

    Losses are penalised harder than gains are rewarded.
    """
    ind = ctx.indicators
    closes = ctx.series.closes
    sma = _at(ind.sma, i)
    ema = _at(ind.ema_series(cfg.ema_trend), i)
    longest = max(lb for lb, _ in cfg.trend_lookbacks)
    if sma is None or ema is None or i < longest or i + 1 < cfg.trend_high_lookback:
        return None

    close = closes[i]
    score = 50.0

    # Graded, saturating at ±5 % from each average
    for ma in (sma, ema):
        if ma:
            distance = (close - ma) / ma * 100
            score += 10.0 * max(-1.0, min(1.0, distance / 5.0))

    changes = []
    for lookback, weight in cfg.trend_lookbacks:
        change = _pct_change(close, closes[i - lookback])
        changes.append(change)
        if change > 0:
            score += _bucket(change, _GAIN_BUCKETS) * weight
        elif change < 0:
            score += _bucket(-change, _LOSS_BUCKETS) * weight

    if all(c < -3 for c in changes):
        score -= 20
    elif all(c > 3 for c in changes):
        score += 10

    recent_high = max(ctx.series.highs[i - cfg.trend_high_lookback + 1 : i + 1])
    if recent_high and close < recent_high * 0.85:
        score -= 10

    return _clamp(score)


def macd_score(ctx: ScoringContext, i: int) -> Optional[float]:
    macd = ctx.indicators.macd
    if macd is None:
        return None
    hist = _at(macd.histogram, i)
    line = _at(macd.line, i)
    signal = _at(macd.signal, i)
    if hist is None or line is None or signal is None:
        return None
    prev_hist = _at(macd.histogram, i - 1)

    score = 50.0
    if hist > 0:
        score += 20
        if prev_hist is not None and hist > prev_hist:
            score += 10
    elif hist < 0:
        score -= 20
        if prev_hist is not None and hist < prev_hist:
            score -= 10

    if line > signal:
        score += 15
    elif line < signal:
        score -= 15

    if line > 0:
        score += 5
    elif line < 0:
        score -= 5

    return _clamp(score)


def _cross_points(
    fast: list[float], slow: list[float], i: int, base: float, fresh: float
) -> Optional[float]:
    now_fast, now_slow = _at(fast, i), _at(slow, i)
    if now_fast is None or now_slow is None:
        return None
    prev_fast, prev_slow = _at(fast, i - 1), _at(slow, i - 1)
    has_prev = prev_fast is not None and prev_slow is not None

    if now_fast > now_slow:
        return base + (fresh if has_prev and prev_fast <= prev_slow else 0.0)
    if now_fast < now_slow:
        return -base - (fresh if has_prev and prev_fast >= prev_slow else 0.0)
    return 0.0


def ema_cross_score(ctx: ScoringContext, i: int, cfg: ScoringConfig) -> Optional[float]:
    """Short and long EMA pair crossovers, fresh crosses weigh extra."""
    ind = ctx.indicators
    e_fast = ind.ema_series(cfg.ema_fast)
    e_slow = ind.ema_series(cfg.ema_slow)
    e_pull = ind.ema_series(cfg.ema_pullback)
    e_trend = ind.ema_series(cfg.ema_trend)
    if e_fast is None or e_slow is None or e_pull is None or e_trend is None:
        return None

    short_pts = _cross_points(e_fast, e_slow, i, 15.0, 10.0)
    long_pts = _cross_points(e_pull, e_trend, i, 10.0, 5.0)
    if short_pts is None or long_pts is None:
        return None

    score = 50.0 + short_pts + long_pts
    f, s, t = e_fast[i], e_slow[i], e_trend[i]
    if f > s > t:
        score += 5
    elif f < s < t:
        score -= 5
    return _clamp(score)


def adx_score(ctx: ScoringContext, i: int) -> Optional[float]:
    adx = ctx.indicators.adx
    if adx is None:
        return None
    value = _at(adx.adx, i)
    plus_di = _at(adx.plus_di, i)
    minus_di = _at(adx.minus_di, i)
    if value is None or plus_di is None or minus_di is None:
        return None
    if value < 20:
        return 50.0
    if plus_di > minus_di:
        return _clamp(50 + value / 2)
    if minus_di > plus_di:
        return _clamp(50 - value / 2)
    return 50.0


def rsi_score(ctx: ScoringContext, i: int) -> Optional[float]:
    rsi = _at(ctx.indicators.rsi, i)
    if rsi is None:
        return None
    if rsi > 70:
        return _clamp(50 - 30 * (rsi - 70) / 30)
    if rsi < 30:
        return _clamp(50 + 30 * (30 - rsi) / 30)
    return _clamp(50 + (rsi - 50) / 20 * 15)


def bollinger_score(ctx: ScoringContext, i: int) -> Optional[float]:
    bands = ctx.indicators.bollinger
    if bands is None:
        return None
    position = _at(bands.percent_b, i)
    if position is None:
        return None
    if position > 0.95:
        return 30.0
    if position < 0.05:
        return 70.0
    return _clamp(50 + (0.5 - position) * 40)


def volume_analysis(ctx: ScoringContext, i: int, lookback: int) -> Optional[VolumeAnalysis]:
    """Share of volume traded on up candles over the trailing window."""
    start = max(0, i - lookback + 1)
    series = ctx.series
    total = 0.0
    bullish = 0.0
    for j in range(start, i + 1):
        total += series.volumes[j]
        if series.closes[j] > series.opens[j]:
            bullish += series.volumes[j]
    count = i + 1 - start
    if count <= 0:
        return None
    ratio = bullish / total if total else 0.5
    return VolumeAnalysis(
        score=_clamp(50 + (ratio - 0.5) * 50),
        bullish_ratio=ratio,
        avg_volume=total / count,
    )


# ── Entry timing ─────────────────────────────────────────────────────────


def entry_quality(ctx: ScoringContext, i: int, cfg: ScoringConfig) -> float:
    """How good *now* is for entering, independent of trend strength.

    Rewards pullbacks inside a confirmed uptrend and penalises
    overextension from EMA20 and the upper band.
    """
    ind = ctx.indicators
    close = ctx.series.closes[i]
    rsi = _at(ind.rsi, i)
    adx = _at(ind.adx.adx, i) if ind.adx else None
    plus_di = _at(ind.adx.plus_di, i) if ind.adx else None
    minus_di = _at(ind.adx.minus_di, i) if ind.adx else None
    ema_pull = _at(ind.ema_series(cfg.ema_pullback), i)
    position = _at(ind.bollinger.percent_b, i) if ind.bollinger else None

    trending = adx is not None and adx > 25 and plus_di is not None and minus_di is not None
    uptrend = trending and plus_di > minus_di
    downtrend = trending and minus_di > plus_di

    quality = 50.0

    if rsi is not None:
        if uptrend:
            if rsi > 75:
                quality -= 35
            elif rsi > 70:
                quality -= 25
            elif 40 <= rsi <= 55:
                quality += 25
            elif 55 < rsi <= 65:
                quality += 10
            elif rsi < 40:
                quality += 15
        elif downtrend:
            quality -= 20
            if rsi < 30:
                quality += 15

    if ema_pull:
        distance = (close - ema_pull) / ema_pull * 100
        if 0 <= distance <= 2:
            quality += 15
        elif 2 < distance <= 5:
            quality += 5
        elif distance > 15:
            quality -= 20
        elif distance > 10:
            quality -= 10

    if position is not None:
        if position > 0.9:
            quality -= 15
        elif position < 0.3 and uptrend:
            quality += 10
        elif 0.4 <= position <= 0.6:
            quality += 5

    if rsi is not None and rsi < 55:
        start = max(0, i - cfg.volume_lookback + 1)
        window = ctx.series.volumes[start : i + 1]
        avg = sum(window) / len(window)
        if avg and ctx.series.volumes[i] < 0.7 * avg:
            quality += 5

    return _clamp(quality)


# (bound, severity, kind, label); first matching bound wins per check.
_RSI_WARNINGS = (
    (80.0, Severity.HIGH, "RSI_EXTREME", "RSI extremely overbought"),
    (75.0, Severity.HIGH, "RSI_OVERBOUGHT", "RSI overbought"),
    (70.0, Severity.MEDIUM, "RSI_ELEVATED", "RSI elevated"),
)
_RAPID_MOVE_WARNINGS = (
    (50.0, Severity.HIGH, "PARABOLIC_MOVE", "Parabolic move"),
    (30.0, Severity.HIGH, "RAPID_RISE", "Rapid rise"),
    (20.0, Severity.MEDIUM, "STRONG_RISE", "Strong rise"),
)
_LARGE_CANDLE_WARNINGS = (
    (10.0, Severity.HIGH, "LARGE_CANDLE", "Unusually large candle"),
    (5.0, Severity.MEDIUM, "LARGE_CANDLE", "Large candle"),
)
_EXTENSION_WARNINGS = (
    (20.0, Severity.HIGH, "EXTENDED_FROM_EMA", "Far above EMA20"),
    (15.0, Severity.MEDIUM, "EXTENDED_FROM_EMA", "Extended above EMA20"),
)


def _first_band(value: float, table, unit: str) -> Optional[SignalWarning]:
    for bound, severity, kind, label in table:
        if value > bound:
            return SignalWarning(
                kind=kind,
                severity=severity,
                message=f"{label} ({value:.1f}{unit})",
                value=round(value, 4),
            )
    return None


def collect_warnings(ctx: ScoringContext, i: int, cfg: ScoringConfig) -> tuple[SignalWarning, ...]:
    """Risk annotations in a fixed check order."""
    ind = ctx.indicators
    closes = ctx.series.closes
    close = closes[i]
    found: list[Optional[SignalWarning]] = []

    rsi = _at(ind.rsi, i)
    if rsi is not None:
        found.append(_first_band(rsi, _RSI_WARNINGS, ""))

    upper = _at(ind.bollinger.upper, i) if ind.bollinger else None
    if upper is not None and close > upper:
        found.append(
            SignalWarning(
                kind="ABOVE_BOLLINGER",
                severity=Severity.MEDIUM,
                message="Price closed above the upper Bollinger band",
                value=round(close, 8),
            )
        )

    lookback = cfg.rapid_move_lookback
    if i >= lookback:
        found.append(
            _first_band(_pct_change(close, closes[i - lookback]), _RAPID_MOVE_WARNINGS, "%")
        )

    if i >= 1:
        found.append(
            _first_band(abs(_pct_change(close, closes[i - 1])), _LARGE_CANDLE_WARNINGS, "%")
        )

    ema_pull = _at(ind.ema_series(cfg.ema_pullback), i)
    if ema_pull:
        found.append(
            _first_band(_pct_change(close, ema_pull), _EXTENSION_WARNINGS, "%")
        )

    adx = _at(ind.adx.adx, i) if ind.adx else None
    if adx is not None and adx > 50:
        found.append(
            SignalWarning(
                kind="ADX_EXTREME",
                severity=Severity.MEDIUM,
                message=f"ADX extreme ({adx:.1f}), trend may be exhausted",
                value=round(adx, 4),
            )
        )

    return tuple(w for w in found if w is not None)


# ── Classification ───────────────────────────────────────────────────────


def classify(score: float, cfg: ScoringConfig) -> RecommendationClass:
    """Scan the descending threshold table; below every row is STRONG_SELL."""
    for threshold, label in cfg.class_thresholds:
        if score >= threshold:
            return RecommendationClass(label)
    return RecommendationClass.STRONG_SELL


_STATUS_TABLE: dict[RecommendationClass, dict[str, SignalStatus]] = {
    RecommendationClass.STRONG_BUY: {
        "HIGH": SignalStatus.STRONG_BUY_NOW,
        "MEDIUM": SignalStatus.BUY_PARTIAL,
        "LOW": SignalStatus.WATCH_FOR_PULLBACK,
    },
    RecommendationClass.BUY: {
        "HIGH": SignalStatus.BUY_PARTIAL,
        "MEDIUM": SignalStatus.HOLD,
        "LOW": SignalStatus.WATCH_FOR_PULLBACK,
    },
}

_PASSTHROUGH = {
    RecommendationClass.HOLD: SignalStatus.HOLD,
    RecommendationClass.SELL: SignalStatus.SELL,
    RecommendationClass.STRONG_SELL: SignalStatus.STRONG_SELL,
}


def resolve_signal_status(
    rec_class: RecommendationClass,
    quality: float,
    has_high_warning: bool,
    cfg: ScoringConfig,
) -> SignalStatus:
    """Refine a class into an entry-timing verdict.

    Bullish classes are split by entry quality bucket; a high-severity
    warning turns any bullish class into WATCH_FOR_PULLBACK.  Neutral and
    bearish classes pass through unchanged.
    """
    if rec_class in _PASSTHROUGH:
        return _PASSTHROUGH[rec_class]
    if has_high_warning:
        return SignalStatus.WATCH_FOR_PULLBACK
    if quality >= cfg.entry_quality_high:
        bucket = "HIGH"
    elif quality >= cfg.entry_quality_medium:
        bucket = "MEDIUM"
    else:
        bucket = "LOW"
    return _STATUS_TABLE[rec_class][bucket]


def stop_loss(ctx: ScoringContext, i: int, multiple: float) -> Optional[StopLoss]:
    atr = _at(ctx.indicators.atr, i)
    if atr is None:
        return None
    close = ctx.series.closes[i]
    distance = multiple * atr
    pct = distance / close * 100 if close else 0.0
    return StopLoss(
        long=close - distance,
        short=close + distance,
        atr=atr,
        long_distance_pct=pct,
        short_distance_pct=pct,
    )


# ── Engine ───────────────────────────────────────────────────────────────


class ScoringEngine:
    """Scores candle positions with a fixed configuration."""

    def __init__(self, config: Optional[ScoringConfig] = None) -> None:
        self._config = config or ScoringConfig()

    @property
    def config(self) -> ScoringConfig:
        return self._config

    # ── Public API ───────────────────────────────────────────────────────

    def prepare(self, candles: Union[CandleSeries, Sequence[Candle]]) -> ScoringContext:
        """Validate *candles* and compute every indicator once."""
        series = CandleSeries.coerce(candles)
        return ScoringContext(
            series=series,
            indicators=compute_indicators(series, self._config.indicators),
        )

    def score(self, candles: Union[CandleSeries, Sequence[Candle]]) -> Recommendation:
        """Score the most recent candle."""
        ctx = self.prepare(candles)
        return self.evaluate(ctx, len(ctx.series) - 1)

    def evaluate(self, ctx: ScoringContext, index: int) -> Recommendation:
        """Score candle *index* using only data up to and including it."""
        if not 0 <= index < len(ctx.series):
            raise InvalidInputError(
                f"Index {index} outside series of {len(ctx.series)} candles"
            )
        cfg = self._config
        i = index

        volume = volume_analysis(ctx, i, cfg.volume_lookback)
        breakdown = ScoreBreakdown(
            long_term_trend=long_term_trend_score(ctx, i, cfg),
            macd=macd_score(ctx, i),
            ema_cross=ema_cross_score(ctx, i, cfg),
            adx=adx_score(ctx, i),
            rsi=rsi_score(ctx, i),
            bollinger=bollinger_score(ctx, i),
            volume=volume.score if volume else None,
        )
        warnings = collect_warnings(ctx, i, cfg)
        ind = ctx.indicators
        snapshot = IndicatorSnapshot(
            rsi=_at(ind.rsi, i),
            adx=_at(ind.adx.adx, i) if ind.adx else None,
            macd_histogram=_at(ind.macd.histogram, i) if ind.macd else None,
        )
        common = dict(
            warnings=warnings,
            stop_loss=stop_loss(ctx, i, cfg.stop_loss_atr_multiple),
            breakdown=breakdown,
            volume_analysis=volume,
            snapshot=snapshot,
            current_price=ctx.series.closes[i],
            timestamp=ctx.series.timestamps[i],
        )

        sub_scores = breakdown.weighted()
        missing = [name for name, value in sub_scores.items() if value is None]
        if missing:
            logger.debug(
                "No signal at index %d: unavailable sub-scores %s", i, ", ".join(missing)
            )
            return Recommendation(
                score=None,
                recommendation_class=None,
                signal_status=None,
                entry_quality=None,
                **common,
            )

        total = round(
            _clamp(sum(cfg.weights[name] * value for name, value in sub_scores.items())), 4
        )
        rec_class = classify(total, cfg)
        quality = entry_quality(ctx, i, cfg)
        has_high = any(w.severity is Severity.HIGH for w in warnings)

        return Recommendation(
            score=total,
            recommendation_class=rec_class,
            signal_status=resolve_signal_status(rec_class, quality, has_high, cfg),
            entry_quality=round(quality, 4),
            **common,
        )
