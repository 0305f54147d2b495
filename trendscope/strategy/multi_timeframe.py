"""Multi-timeframe confirmation — one recommendation per resolution, reduced.

The reduction is a pure function of the per-resolution recommendations so
it can be tested without candles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Sequence, Union

from trendscope.errors import InsufficientDataError, TrendscopeError
from trendscope.strategy.models import (
    Candle,
    CandleSeries,
    Recommendation,
    RecommendationClass,
    Severity,
    SignalWarning,
)
from trendscope.strategy.scoring import ScoringEngine

logger = logging.getLogger("trendscope.multi_timeframe")


class Alignment(str, Enum):
    ALL_STRONG_BUY = "ALL_STRONG_BUY"
    ALL_BULLISH = "ALL_BULLISH"
    ALL_BEARISH = "ALL_BEARISH"
    MOSTLY_BULLISH = "MOSTLY_BULLISH"
    MOSTLY_BEARISH = "MOSTLY_BEARISH"
    CONFLICTING = "CONFLICTING"


class Confidence(str, Enum):
    VERY_HIGH = "VERY_HIGH"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Action(str, Enum):
    STRONG_BUY_NOW = "STRONG_BUY_NOW"
    BUY_PARTIAL = "BUY_PARTIAL"
    WATCH_FOR_PULLBACK = "WATCH_FOR_PULLBACK"
    WATCH = "WATCH"
    SELL = "SELL"
    WAIT = "WAIT"


@dataclass(frozen=True)
class MultiTimeframeResult:
    recommendations: dict[str, Recommendation]
    errors: dict[str, str]
    alignment: Alignment
    confidence: Confidence
    recommended_action: Action
    action_reason: str
    consolidated_warnings: tuple[SignalWarning, ...]
    avg_score: float
    avg_entry_quality: float


def _consolidate_warnings(recs: Mapping[str, Recommendation]) -> tuple[SignalWarning, ...]:
    """First warning of each kind, tagged with the resolution it came from."""
    seen: set[str] = set()
    out: list[SignalWarning] = []
    for resolution, rec in recs.items():
        for w in rec.warnings:
            if w.kind in seen:
                continue
            seen.add(w.kind)
            out.append(
                SignalWarning(
                    kind=w.kind,
                    severity=w.severity,
                    message=f"[{resolution}] {w.message}",
                    value=w.value,
                    resolution=resolution,
                )
            )
    return tuple(out)


def reduce_recommendations(
    recommendations: Mapping[str, Recommendation],
    errors: Optional[Mapping[str, str]] = None,
) -> MultiTimeframeResult:
    """Reduce per-resolution recommendations into one verdict.

    Only available recommendations vote.  Raises ``InsufficientDataError``
    when none is available.
    """
    errors = dict(errors or {})
    usable: dict[str, Recommendation] = {}
    for resolution, rec in recommendations.items():
        if rec.available:
            usable[resolution] = rec
        else:
            errors.setdefault(resolution, "insufficient history for a signal")
    if not usable:
        raise InsufficientDataError("No resolution produced a recommendation")

    classes = [r.recommendation_class for r in usable.values()]
    n = len(classes)
    bullish = sum(1 for c in classes if c.is_bullish)
    bearish = sum(1 for c in classes if c.is_bearish)
    avg_score = sum(r.score for r in usable.values()) / n
    avg_quality = sum(r.entry_quality for r in usable.values()) / n

    if all(c is RecommendationClass.STRONG_BUY for c in classes):
        alignment, confidence = Alignment.ALL_STRONG_BUY, Confidence.VERY_HIGH
    elif bullish == n:
        alignment, confidence = Alignment.ALL_BULLISH, Confidence.HIGH
    elif bearish == n:
        alignment, confidence = Alignment.ALL_BEARISH, Confidence.HIGH
    elif bullish > bearish:
        alignment = Alignment.MOSTLY_BULLISH
        confidence = Confidence.MEDIUM if bullish >= n - 1 else Confidence.LOW
    elif bearish > bullish:
        alignment = Alignment.MOSTLY_BEARISH
        confidence = Confidence.MEDIUM if bearish >= n - 1 else Confidence.LOW
    else:
        alignment, confidence = Alignment.CONFLICTING, Confidence.LOW

    if alignment is Alignment.ALL_STRONG_BUY:
        if avg_quality >= 55:
            action, reason = Action.STRONG_BUY_NOW, "All timeframes strong buy with good entry"
        else:
            action, reason = Action.WATCH_FOR_PULLBACK, "All timeframes strong buy, entry extended"
    elif alignment is Alignment.ALL_BULLISH:
        if avg_quality >= 50:
            action, reason = Action.BUY_PARTIAL, "All timeframes bullish"
        else:
            action, reason = Action.WATCH, "All timeframes bullish, entry quality poor"
    elif alignment is Alignment.ALL_BEARISH:
        action, reason = Action.SELL, "All timeframes bearish"
    elif alignment is Alignment.MOSTLY_BULLISH:
        action, reason = Action.WATCH, "Most timeframes bullish, wait for alignment"
    elif alignment is Alignment.CONFLICTING:
        action, reason = Action.WAIT, "Timeframes conflict"
    else:
        action, reason = Action.WAIT, "Most timeframes bearish"

    high_warning = any(
        w.severity is Severity.HIGH for r in usable.values() for w in r.warnings
    )
    if high_warning and action in (Action.STRONG_BUY_NOW, Action.BUY_PARTIAL):
        action = Action.WATCH_FOR_PULLBACK
        reason += "; downgraded by a high-severity warning"

    return MultiTimeframeResult(
        recommendations=usable,
        errors=errors,
        alignment=alignment,
        confidence=confidence,
        recommended_action=action,
        action_reason=reason,
        consolidated_warnings=_consolidate_warnings(usable),
        avg_score=round(avg_score, 4),
        avg_entry_quality=round(avg_quality, 4),
    )


def analyze_multi_timeframe(
    candles_by_resolution: Mapping[str, Union[CandleSeries, Sequence[Candle]]],
    engine: Optional[ScoringEngine] = None,
) -> MultiTimeframeResult:
    """Score every resolution and reduce the results.

    A resolution whose candles fail validation is recorded in ``errors``
    instead of failing the whole analysis.
    """
    scorer = engine or ScoringEngine()
    recommendations: dict[str, Recommendation] = {}
    errors: dict[str, str] = {}
    for resolution, candles in candles_by_resolution.items():
        try:
            recommendations[resolution] = scorer.score(candles)
        except TrendscopeError as exc:
            logger.warning("Resolution %s failed: %s", resolution, exc)
            errors[resolution] = str(exc)
    return reduce_recommendations(recommendations, errors)
