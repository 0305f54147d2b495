"""RSI / MACD divergence detection.

Compares swing points on price against swing points on an oscillator.
Pure functions, no I/O.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

from trendscope.config import DivergenceConfig, IndicatorConfig
from trendscope.errors import require_length
from trendscope.strategy.indicators import calculate_macd, calculate_rsi
from trendscope.strategy.models import (
    Candle,
    CandleSeries,
    Direction,
    Divergence,
    DivergenceSummary,
    DivergenceType,
    Pivot,
)
from trendscope.strategy.pivots import find_pivots

logger = logging.getLogger("trendscope.divergence")


def _match(target: Pivot, candidates: Sequence[Pivot], tolerance: int) -> Optional[Pivot]:
    """Oscillator pivot closest to *target*'s index, within *tolerance* candles."""
    best: Optional[Pivot] = None
    for p in candidates:
        gap = abs(p.index - target.index)
        if gap <= tolerance and (best is None or gap < abs(best.index - target.index)):
            best = p
    return best


def _strength(p_prev: float, p_now: float, o_prev: float, o_now: float) -> float:
    price_move = abs((p_now - p_prev) / p_prev) if p_prev else 0.0
    osc_move = abs((o_now - o_prev) / (abs(o_prev) or 1.0))
    return min(100.0, (price_move + osc_move) * 100 * 5)


def _classify_troughs(p_prev, p_now, o_prev, o_now) -> Optional[DivergenceType]:
    if p_now < p_prev and o_now > o_prev:
        return DivergenceType.BULLISH
    if p_now > p_prev and o_now < o_prev:
        return DivergenceType.HIDDEN_BULLISH
    return None


def _classify_peaks(p_prev, p_now, o_prev, o_now) -> Optional[DivergenceType]:
    if p_now > p_prev and o_now < o_prev:
        return DivergenceType.BEARISH
    if p_now < p_prev and o_now > o_prev:
        return DivergenceType.HIDDEN_BEARISH
    return None


_DESCRIPTIONS = {
    DivergenceType.BULLISH: "lower low in price, higher low in {ind}",
    DivergenceType.HIDDEN_BULLISH: "higher low in price, lower low in {ind}",
    DivergenceType.BEARISH: "higher high in price, lower high in {ind}",
    DivergenceType.HIDDEN_BEARISH: "lower high in price, higher high in {ind}",
}


def detect_divergences(
    prices: Sequence[float],
    oscillator: Sequence[float],
    indicator: str,
    config: Optional[DivergenceConfig] = None,
    offset: int = 0,
) -> list[Divergence]:
    """Find divergences between two aligned series.

    The last ``pivots_compared`` price pivots of each kind are paired
    consecutively; each price pivot is matched to the nearest oscillator
    pivot of the same kind within the indicator's tolerance.  ``offset``
    is added to reported indices when the inputs are a window of a longer
    series.  Results are sorted by strength, strongest first.
    """
    cfg = config or DivergenceConfig()
    if len(prices) != len(oscillator):
        raise ValueError(
            f"Price and {indicator} series differ in length "
            f"({len(prices)} vs {len(oscillator)})"
        )
    tolerance = cfg.macd_match_tolerance if indicator == "MACD" else cfg.rsi_match_tolerance

    price_pivots = find_pivots(prices, cfg.pivot_window)
    osc_pivots = find_pivots(oscillator, cfg.pivot_window)
    length = len(prices)

    found: list[Divergence] = []
    for price_side, osc_side, classify in (
        (price_pivots.lows, osc_pivots.lows, _classify_troughs),
        (price_pivots.highs, osc_pivots.highs, _classify_peaks),
    ):
        recent = price_side[-cfg.pivots_compared :]
        for prev, now in zip(recent, recent[1:]):
            o_prev = _match(prev, osc_side, tolerance)
            o_now = _match(now, osc_side, tolerance)
            if o_prev is None or o_now is None or o_prev.index >= o_now.index:
                continue

            kind = classify(prev.value, now.value, o_prev.value, o_now.value)
            if kind is None:
                continue

            candles_ago = length - now.index
            found.append(
                Divergence(
                    type=kind,
                    indicator=indicator,
                    strength=round(_strength(prev.value, now.value, o_prev.value, o_now.value), 2),
                    candles_ago=candles_ago,
                    price_start=Pivot(prev.index + offset, prev.value),
                    price_end=Pivot(now.index + offset, now.value),
                    indicator_start=Pivot(o_prev.index + offset, o_prev.value),
                    indicator_end=Pivot(o_now.index + offset, o_now.value),
                    active=candles_ago <= cfg.recency_window,
                    message=f"{kind.value.replace('_', ' ').title()} {indicator} divergence: "
                    + _DESCRIPTIONS[kind].format(ind=indicator),
                )
            )

    found.sort(key=lambda d: d.strength, reverse=True)
    return found


def summarize_divergences(
    divergences: Sequence[Divergence],
    config: Optional[DivergenceConfig] = None,
) -> DivergenceSummary:
    """Combine active divergences into one directional signal.

    Inactive findings are kept for explanation but do not score.  When RSI
    and MACD both report the same regular divergence the signal is
    ``confirmed`` and the score moves a further ``confirmation_bonus``.
    """
    cfg = config or DivergenceConfig()
    active = [d for d in divergences if d.active]
    bullish = sum(d.strength for d in active if d.type.is_bullish)
    bearish = sum(d.strength for d in active if not d.type.is_bullish)

    def _confirmed(kind: DivergenceType) -> bool:
        indicators = {d.indicator for d in active if d.type is kind}
        return {"RSI", "MACD"} <= indicators

    if bullish > bearish:
        confirmed = _confirmed(DivergenceType.BULLISH)
        score = 50 + bullish / 2 + (cfg.confirmation_bonus if confirmed else 0)
        signal = Direction.UP
        message = "Bullish divergence" + (" confirmed by RSI and MACD" if confirmed else "")
    elif bearish > bullish:
        confirmed = _confirmed(DivergenceType.BEARISH)
        score = 50 - bearish / 2 - (cfg.confirmation_bonus if confirmed else 0)
        signal = Direction.DOWN
        message = "Bearish divergence" + (" confirmed by RSI and MACD" if confirmed else "")
    else:
        confirmed = False
        score = 50.0
        signal = Direction.NEUTRAL
        message = "No active divergence" if not active else "Conflicting divergences"

    return DivergenceSummary(
        signal=signal,
        score=round(max(0.0, min(100.0, score)), 2),
        confirmed=confirmed,
        message=message,
        divergences=tuple(divergences),
    )


def analyze_divergences(
    candles: Union[CandleSeries, Sequence[Candle]],
    config: Optional[DivergenceConfig] = None,
    indicator_config: Optional[IndicatorConfig] = None,
) -> DivergenceSummary:
    """RSI and MACD-histogram divergences over the trailing lookback window.

    Raises ``InsufficientDataError`` when the series is shorter than the
    lookback or the slowest oscillator's warm-up.
    """
    cfg = config or DivergenceConfig()
    ind_cfg = indicator_config or IndicatorConfig()
    series = CandleSeries.coerce(candles)
    macd_min = ind_cfg.macd_slow + ind_cfg.macd_signal - 1
    require_length(len(series), max(cfg.lookback, macd_min, ind_cfg.rsi_period + 1), "divergence")

    rsi = calculate_rsi(series, ind_cfg.rsi_period)
    macd = calculate_macd(series, ind_cfg.macd_fast, ind_cfg.macd_slow, ind_cfg.macd_signal)

    start = len(series) - cfg.lookback
    prices = series.closes[start:]
    found = detect_divergences(prices, rsi[start:], "RSI", cfg, offset=start)
    found += detect_divergences(prices, macd.histogram[start:], "MACD", cfg, offset=start)
    found.sort(key=lambda d: d.strength, reverse=True)

    summary = summarize_divergences(found, cfg)
    logger.debug(
        "Divergence scan: %d found, %d active, signal=%s",
        len(found), len(summary.active), summary.signal.value,
    )
    return summary
