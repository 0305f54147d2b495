"""Breakout detection — squeeze, volume, consolidation and active breakouts."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

from trendscope.config import BreakoutConfig, IndicatorConfig
from trendscope.errors import require_length
from trendscope.strategy.indicators import calculate_bollinger, is_defined
from trendscope.strategy.models import (
    BreakoutAnalysis,
    BreakoutFinding,
    Candle,
    CandleSeries,
    Direction,
    Probability,
)

logger = logging.getLogger("trendscope.breakout")


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# ── Individual detectors ─────────────────────────────────────────────────


def squeeze_score(ratio: float, duration: int) -> float:
    """Compression relative to the average width, plus up to 10 for a sustained squeeze."""
    return max(0.0, min(100.0, (1 - ratio) * 150 + min(10.0, duration * 0.5)))


def detect_squeeze(
    series: CandleSeries,
    cfg: BreakoutConfig,
    indicator_config: Optional[IndicatorConfig] = None,
) -> Optional[BreakoutFinding]:
    """Bollinger bandwidth well below its recent average."""
    ind_cfg = indicator_config or IndicatorConfig()
    bands = calculate_bollinger(series, ind_cfg.bollinger_period, ind_cfg.bollinger_stddev)
    widths = [w for w in bands.bandwidth if is_defined(w)]
    if len(widths) < cfg.squeeze_average_period:
        logger.debug(
            "Squeeze needs %d bandwidth values, have %d", cfg.squeeze_average_period, len(widths)
        )
        return None
    widths = widths[-cfg.squeeze_average_period :]
    average = _mean(widths)
    if average <= 0:
        return None

    current = widths[-1]
    ratio = current / average
    if ratio >= cfg.squeeze_threshold:
        return None

    duration = 0
    for width in reversed(widths):
        if width / average >= cfg.squeeze_threshold:
            break
        duration += 1

    position = bands.percent_b[-1]
    direction = Direction.UP if position > 0.5 else Direction.DOWN if position < 0.5 else Direction.NEUTRAL
    return BreakoutFinding(
        kind="SQUEEZE",
        score=round(squeeze_score(ratio, duration), 2),
        direction=direction,
        message=f"Bollinger squeeze for {duration} candles (width {ratio:.0%} of average)",
        details={"bandwidth": current, "average_bandwidth": average, "ratio": ratio, "duration": duration},
    )


def detect_volume_buildup(series: CandleSeries, cfg: BreakoutConfig) -> Optional[BreakoutFinding]:
    """Volume spike, rising volume trend or quiet accumulation."""
    lookback = cfg.volume_lookback
    volumes = series.volumes
    closes = series.closes
    history = volumes[-lookback - 1 : -1]
    average = _mean(history)
    if average <= 0:
        return None

    ratio = volumes[-1] / average
    spike = ratio >= cfg.volume_spike_multiple
    score = 0.0
    if ratio >= 1.5:
        score += 30
    if ratio >= 2.0:
        score += 20

    recent = volumes[-lookback:]
    half = len(recent) // 2
    rising = half > 0 and _mean(recent[half:]) > 1.2 * _mean(recent[:half])
    if rising:
        score += 25

    last10 = closes[-10:]
    vol10 = volumes[-10:]
    price_change = abs(last10[-1] - last10[0]) / last10[0] * 100 if last10[0] else 0.0
    accumulating = price_change < 3 and _mean(vol10[5:]) > 1.3 * _mean(vol10[:5])
    if accumulating:
        score += 25

    if score < 50 and not spike:
        return None

    last = series[-1]
    direction = Direction.NEUTRAL
    if spike:
        direction = Direction.UP if last.close > last.open else Direction.DOWN if last.close < last.open else Direction.NEUTRAL
    parts = []
    if spike:
        parts.append(f"volume spike {ratio:.1f}x")
    if rising:
        parts.append("rising volume")
    if accumulating:
        parts.append("accumulation")
    return BreakoutFinding(
        kind="VOLUME",
        score=min(100.0, score),
        direction=direction,
        message="Volume: " + (", ".join(parts) or f"{ratio:.1f}x average"),
        details={"ratio": ratio, "average_volume": average},
    )


def detect_consolidation(series: CandleSeries, cfg: BreakoutConfig) -> Optional[BreakoutFinding]:
    """Tight trading range with price pressing one edge."""
    lookback = cfg.consolidation_lookback
    high = max(series.highs[-lookback:])
    low = min(series.lows[-lookback:])
    if low <= 0:
        return None
    range_pct = (high - low) / low * 100
    if range_pct >= cfg.consolidation_max_range_pct:
        return None

    duration = 0
    for close in reversed(series.closes):
        if not low * 0.99 <= close <= high * 1.01:
            break
        duration += 1
    if duration < cfg.consolidation_min_duration:
        return None

    close = series.closes[-1]
    position = (close - low) / (high - low) if high > low else 0.5
    score = 40.0
    direction = Direction.NEUTRAL
    if position > 0.8:
        score += 30
        direction = Direction.UP
    elif position < 0.2:
        score += 30
        direction = Direction.DOWN
    if range_pct < cfg.consolidation_max_range_pct / 2:
        score += 30

    return BreakoutFinding(
        kind="CONSOLIDATION",
        score=min(100.0, score),
        direction=direction,
        message=f"Consolidating {duration} candles in a {range_pct:.1f}% range",
        details={"range_percent": range_pct, "duration": duration, "position": position},
    )


def detect_active_breakout(series: CandleSeries, cfg: BreakoutConfig) -> Optional[BreakoutFinding]:
    """Last close beyond the prior range, which excludes the most recent candles."""
    end = len(series) - cfg.breakout_exclude_recent
    start = end - cfg.breakout_lookback
    if start < 0 or end <= start:
        return None

    range_high = max(series.highs[start:end])
    range_low = min(series.lows[start:end])
    range_volume = _mean(series.volumes[start:end])
    close = series.closes[-1]

    up_pct = (close - range_high) / range_high * 100 if range_high else 0.0
    down_pct = (range_low - close) / range_low * 100 if range_low else 0.0
    if up_pct > cfg.breakout_threshold_pct:
        direction, pct = Direction.UP, up_pct
    elif down_pct > cfg.breakout_threshold_pct:
        direction, pct = Direction.DOWN, down_pct
    else:
        return None

    volume_ratio = series.volumes[-1] / range_volume if range_volume else 0.0
    confirmed = volume_ratio >= cfg.breakout_volume_multiple
    strength = min(100.0, pct * 20 + (40 if confirmed else 0))
    label = "above resistance" if direction is Direction.UP else "below support"
    return BreakoutFinding(
        kind="ACTIVE_BREAKOUT",
        score=round(strength, 2),
        direction=direction,
        message=f"Broke {label} by {pct:.1f}%"
        + (" on volume" if confirmed else " without volume confirmation"),
        confirmed=confirmed,
        details={
            "range_high": range_high,
            "range_low": range_low,
            "percent": pct,
            "volume_ratio": volume_ratio,
        },
    )


# ── Combined analysis ────────────────────────────────────────────────────


def analyze_breakout(
    candles: Union[CandleSeries, Sequence[Candle]],
    config: Optional[BreakoutConfig] = None,
    indicator_config: Optional[IndicatorConfig] = None,
) -> BreakoutAnalysis:
    """Run every breakout detector and combine them into a likelihood.

    An active breakout is listed first and lifts the score to at least its
    strength plus 20.  Raises ``InsufficientDataError`` below
    ``config.min_candles``.
    """
    cfg = config or BreakoutConfig()
    series = CandleSeries.coerce(candles)
    require_length(len(series), cfg.min_candles, "breakout analysis")

    squeeze = detect_squeeze(series, cfg, indicator_config)
    volume = detect_volume_buildup(series, cfg)
    consolidation = detect_consolidation(series, cfg)
    active = detect_active_breakout(series, cfg)

    score = 0.0
    if squeeze:
        score += squeeze.score * cfg.squeeze_weight
    if volume:
        score += volume.score * cfg.volume_weight
    if consolidation:
        score += consolidation.score * cfg.consolidation_weight
    if active:
        score = max(score, active.score + 20)

    findings = [f for f in (active, squeeze, volume, consolidation) if f is not None]
    if len(findings) >= 2:
        score += 10
    if len(findings) >= 3:
        score += 10
    score = min(100.0, score)

    if score >= cfg.high_probability:
        probability = Probability.HIGH
    elif score >= cfg.medium_probability:
        probability = Probability.MEDIUM
    else:
        probability = Probability.LOW

    if active:
        likely = active.direction
    else:
        ups = sum(1 for f in findings if f.direction is Direction.UP)
        downs = sum(1 for f in findings if f.direction is Direction.DOWN)
        likely = Direction.UP if ups > downs else Direction.DOWN if downs > ups else Direction.NEUTRAL

    if active:
        summary = active.message
    elif findings:
        summary = f"{probability.value.title()} breakout probability: " + "; ".join(
            f.message for f in findings
        )
    else:
        summary = "No breakout setup"

    logger.debug("Breakout score %.1f from %d findings", score, len(findings))
    return BreakoutAnalysis(
        findings=tuple(findings),
        breakout_score=round(score, 2),
        probability=probability,
        likely_direction=likely,
        summary=summary,
    )
