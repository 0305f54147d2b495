"""Chart patterns — support/resistance levels and double bottoms/tops.

Levels are clustered from swing highs and lows; double formations pair
two similar extrema around an opposite swing (the neckline).
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

from trendscope.config import PatternConfig
from trendscope.errors import require_length
from trendscope.strategy.models import (
    Candle,
    CandleSeries,
    DoubleFormation,
    Level,
    PatternAnalysis,
    Pivot,
    SupportResistance,
)
from trendscope.strategy.pivots import find_pivots


# ── Support / resistance ─────────────────────────────────────────────────


def _cluster_touches(
    touches: list[Pivot], tolerance_pct: float
) -> list[list[Pivot]]:
    """Group price-sorted touches while each stays within tolerance of the group mean."""
    groups: list[list[Pivot]] = []
    for touch in sorted(touches, key=lambda p: p.value):
        if groups:
            group = groups[-1]
            mean = sum(p.value for p in group) / len(group)
            if mean and abs(touch.value - mean) / mean * 100 <= tolerance_pct:
                group.append(touch)
                continue
        groups.append([touch])
    return groups


def detect_support_resistance(
    candles: Union[CandleSeries, Sequence[Candle]],
    config: Optional[PatternConfig] = None,
) -> SupportResistance:
    """Cluster swing highs and lows into horizontal levels.

    Levels below the last close are support, levels above are resistance,
    each side ordered nearest first and capped at ``sr_max_levels``.
    """
    cfg = config or PatternConfig()
    series = CandleSeries.coerce(candles)
    require_length(len(series), cfg.min_candles, "support/resistance")

    n = len(series)
    price = series.closes[-1]
    # swing highs and swing lows are clustered independently
    groups = _cluster_touches(
        list(find_pivots(series.highs, cfg.sr_pivot_window).highs), cfg.sr_tolerance_pct
    )
    groups += _cluster_touches(
        list(find_pivots(series.lows, cfg.sr_pivot_window).lows), cfg.sr_tolerance_pct
    )

    support: list[Level] = []
    resistance: list[Level] = []
    for group in groups:
        if len(group) < cfg.sr_min_touches:
            continue
        level_price = sum(p.value for p in group) / len(group)
        indices = [p.index for p in group]
        recency = max(indices) / n
        kind = "SUPPORT" if level_price <= price else "RESISTANCE"
        level = Level(
            price=round(level_price, 8),
            touches=len(group),
            strength=round(min(100.0, len(group) * 25 + recency * 25), 2),
            distance_percent=round((level_price - price) / price * 100, 4) if price else 0.0,
            kind=kind,
            first_touch_index=min(indices),
            last_touch_index=max(indices),
        )
        (support if kind == "SUPPORT" else resistance).append(level)

    support.sort(key=lambda lv: lv.price, reverse=True)
    resistance.sort(key=lambda lv: lv.price)
    support = support[: cfg.sr_max_levels]
    resistance = resistance[: cfg.sr_max_levels]

    return SupportResistance(
        support=tuple(support),
        resistance=tuple(resistance),
        position=_position(support, resistance),
        risk_reward=_risk_reward(price, support, resistance),
        current_price=price,
    )


def _position(support: Sequence[Level], resistance: Sequence[Level]) -> str:
    near_support = abs(support[0].distance_percent) if support else None
    near_resistance = abs(resistance[0].distance_percent) if resistance else None
    if near_support is None and near_resistance is None:
        return "UNKNOWN"
    if near_support is not None and near_support <= 1.0:
        return "AT_SUPPORT"
    if near_resistance is not None and near_resistance <= 1.0:
        return "AT_RESISTANCE"
    if near_support is not None and near_support <= 3.0:
        return "NEAR_SUPPORT"
    if near_resistance is not None and near_resistance <= 3.0:
        return "NEAR_RESISTANCE"
    return "MID_RANGE"


def _risk_reward(
    price: float, support: Sequence[Level], resistance: Sequence[Level]
) -> Optional[float]:
    """Upside to the nearest resistance per unit of downside to the nearest support."""
    if not support or not resistance:
        return None
    risk = price - support[0].price
    reward = resistance[0].price - price
    if risk <= 0:
        return None
    return round(reward / risk, 2)


# ── Double bottom / top ──────────────────────────────────────────────────


def _formation_strength(confirmed: bool, height: float, diff: float, separation: int) -> float:
    strength = 40.0 if confirmed else 0.0
    strength += min(30.0, height * 300)
    strength += max(0.0, 20 - diff * 500)
    if 15 <= separation <= 30:
        strength += 10
    elif 10 <= separation <= 40:
        strength += 5
    return min(100.0, strength)


def _detect_doubles(series: CandleSeries, cfg: PatternConfig, bottoms: bool) -> tuple[DoubleFormation, ...]:
    window = series.tail(cfg.double_lookback)
    offset = len(series) - len(window)
    n = len(window)
    if n < 2 * cfg.double_pivot_window + 1:
        return ()

    low_pivots = find_pivots(window.lows, cfg.double_pivot_window).lows
    high_pivots = find_pivots(window.highs, cfg.double_pivot_window).highs
    extremes, opposites = (low_pivots, high_pivots) if bottoms else (high_pivots, low_pivots)
    close = window.closes[-1]

    results: list[DoubleFormation] = []
    for a_pos, first in enumerate(extremes):
        for second in extremes[a_pos + 1 :]:
            separation = second.index - first.index
            if separation < cfg.double_min_separation:
                continue
            if separation > cfg.double_max_separation:
                break

            diff = abs(first.value - second.value) / first.value if first.value else 1.0
            if diff * 100 > cfg.double_tolerance_pct:
                continue

            between = [p for p in opposites if first.index < p.index < second.index]
            if not between:
                continue
            # height and target are measured from the mean of the two extremes
            base = (first.value + second.value) / 2
            if bottoms:
                neck = max(between, key=lambda p: p.value)
                height = (neck.value - base) / base if base else 0.0
                confirmed = close > neck.value
                target = neck.value + (neck.value - base)
            else:
                neck = min(between, key=lambda p: p.value)
                height = (base - neck.value) / base if base else 0.0
                confirmed = close < neck.value
                target = neck.value - (base - neck.value)

            if height * 100 < cfg.double_min_height_pct:
                continue

            results.append(
                DoubleFormation(
                    kind="DOUBLE_BOTTOM" if bottoms else "DOUBLE_TOP",
                    first=Pivot(first.index + offset, first.value),
                    second=Pivot(second.index + offset, second.value),
                    neckline=neck.value,
                    neckline_index=neck.index + offset,
                    target_price=round(target, 8),
                    target_percent=round((target - close) / close * 100, 4) if close else 0.0,
                    height_percent=round(height * 100, 4),
                    strength=round(_formation_strength(confirmed, height, diff, separation), 2),
                    confirmed=confirmed,
                    candles_ago=n - second.index,
                )
            )

    results.sort(key=lambda f: f.strength, reverse=True)
    return tuple(results[: cfg.double_max_results])


def detect_double_bottoms(
    candles: Union[CandleSeries, Sequence[Candle]],
    config: Optional[PatternConfig] = None,
) -> tuple[DoubleFormation, ...]:
    """Two similar swing lows around a swing high; confirmed above the neckline."""
    return _detect_doubles(CandleSeries.coerce(candles), config or PatternConfig(), bottoms=True)


def detect_double_tops(
    candles: Union[CandleSeries, Sequence[Candle]],
    config: Optional[PatternConfig] = None,
) -> tuple[DoubleFormation, ...]:
    """Two similar swing highs around a swing low; confirmed below the neckline."""
    return _detect_doubles(CandleSeries.coerce(candles), config or PatternConfig(), bottoms=False)


def analyze_patterns(
    candles: Union[CandleSeries, Sequence[Candle]],
    config: Optional[PatternConfig] = None,
) -> PatternAnalysis:
    cfg = config or PatternConfig()
    series = CandleSeries.coerce(candles)
    return PatternAnalysis(
        support_resistance=detect_support_resistance(series, cfg),
        double_bottoms=detect_double_bottoms(series, cfg),
        double_tops=detect_double_tops(series, cfg),
    )
