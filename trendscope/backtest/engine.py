"""Backtest engine — replays the scoring engine over historical candles.

Indicators are computed once over the whole history; each step scores
index ``i`` using only data up to ``i``.  A matching signal buys at the
close and sells ``hold_period`` candles later.  No real orders are placed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from trendscope.backtest.stats import BacktestStats, calculate_stats
from trendscope.config import BacktestConfig
from trendscope.errors import ConfigurationError, InsufficientDataError, require_length
from trendscope.strategy.models import (
    Candle,
    CandleSeries,
    Recommendation,
    RecommendationClass,
    SignalStatus,
)
from trendscope.strategy.scoring import ScoringContext, ScoringEngine

logger = logging.getLogger("trendscope.backtest")


@dataclass(frozen=True)
class TriggerCondition:
    """Which recommendations open a simulated position.

    Every criterion given must hold.  A bullish class matches that class
    or anything more bullish (BUY matches STRONG_BUY), a bearish class
    matches that class or anything more bearish, HOLD matches exactly.
    """

    recommendation_class: Optional[RecommendationClass] = None
    signal_status: Optional[SignalStatus] = None
    min_score: Optional[float] = None

    def __post_init__(self) -> None:
        if self.recommendation_class is None and self.signal_status is None and self.min_score is None:
            raise ConfigurationError("Trigger needs a class, a signal status or a minimum score")
        try:
            if isinstance(self.recommendation_class, str):
                object.__setattr__(
                    self, "recommendation_class", RecommendationClass(self.recommendation_class)
                )
            if isinstance(self.signal_status, str):
                object.__setattr__(self, "signal_status", SignalStatus(self.signal_status))
        except ValueError as exc:
            raise ConfigurationError(f"Unknown trigger value: {exc}") from exc
        if self.recommendation_class is not None and not isinstance(
            self.recommendation_class, RecommendationClass
        ):
            raise ConfigurationError(f"Unknown trigger class: {self.recommendation_class!r}")
        if self.signal_status is not None and not isinstance(self.signal_status, SignalStatus):
            raise ConfigurationError(f"Unknown trigger status: {self.signal_status!r}")
        if self.min_score is not None and (
            isinstance(self.min_score, bool) or not isinstance(self.min_score, (int, float))
        ):
            raise ConfigurationError(f"min_score must be a number, got {self.min_score!r}")
        if self.min_score is not None and not 0 <= self.min_score <= 100:
            raise ConfigurationError(f"min_score must be within [0, 100], got {self.min_score}")

    def matches(self, rec: Recommendation) -> bool:
        if not rec.available:
            return False
        wanted = self.recommendation_class
        if wanted is not None:
            got = rec.recommendation_class
            if wanted.is_bullish and got.rank < wanted.rank:
                return False
            if wanted.is_bearish and got.rank > wanted.rank:
                return False
            if wanted is RecommendationClass.HOLD and got is not wanted:
                return False
        if self.signal_status is not None and rec.signal_status is not self.signal_status:
            return False
        if self.min_score is not None and rec.score < self.min_score:
            return False
        return True

    def describe(self) -> str:
        parts = []
        if self.recommendation_class is not None:
            parts.append(f"class>={self.recommendation_class.value}")
        if self.signal_status is not None:
            parts.append(f"status={self.signal_status.value}")
        if self.min_score is not None:
            parts.append(f"score>={self.min_score:g}")
        return " & ".join(parts)


# Trigger presets compared by ``compare_triggers``.
DEFAULT_TRIGGERS: dict[str, TriggerCondition] = {
    "strong_buy": TriggerCondition(recommendation_class=RecommendationClass.STRONG_BUY),
    "buy": TriggerCondition(recommendation_class=RecommendationClass.BUY),
    "strong_buy_now": TriggerCondition(signal_status=SignalStatus.STRONG_BUY_NOW),
    "score_55": TriggerCondition(min_score=55.0),
    "score_65": TriggerCondition(min_score=65.0),
}


@dataclass(frozen=True)
class BacktestSignal:
    """One simulated round trip."""

    entry_index: int
    entry_timestamp: int
    entry_price: float
    exit_price: float
    score_at_entry: float
    entry_quality_at_entry: Optional[float]
    rsi_at_entry: Optional[float]
    signal_status: Optional[SignalStatus]
    return_percent: float
    max_drawdown_percent: float
    is_win: bool
    returns_by_horizon: dict[int, float] = field(default_factory=dict)


@dataclass(frozen=True)
class BacktestResult:
    trigger: TriggerCondition
    signals: tuple[BacktestSignal, ...]
    stats: BacktestStats
    steps_evaluated: int
    steps_skipped: int


class BacktestEngine:
    """Simulates fixed-hold entries on historical candle data.

    Args:
        scorer: Scoring engine to replay (defaults to a stock one).
        config: Hold period, warm-up window, cooldown and horizons.
    """

    def __init__(
        self,
        scorer: Optional[ScoringEngine] = None,
        config: Optional[BacktestConfig] = None,
    ) -> None:
        self._scorer = scorer or ScoringEngine()
        self._config = config or BacktestConfig()

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        candles: Union[CandleSeries, Sequence[Candle]],
        trigger: TriggerCondition,
    ) -> BacktestResult:
        """Replay *trigger* over *candles*.

        Raises ``InsufficientDataError`` when the history cannot hold the
        warm-up window plus one full holding period.
        """
        ctx = self._prepare(candles)
        return self._replay(ctx, trigger)

    def compare_triggers(
        self,
        candles: Union[CandleSeries, Sequence[Candle]],
        triggers: Optional[dict[str, TriggerCondition]] = None,
    ) -> dict[str, BacktestResult]:
        """Run several trigger conditions over the same precomputed history."""
        ctx = self._prepare(candles)
        return {
            name: self._replay(ctx, trigger)
            for name, trigger in (triggers or DEFAULT_TRIGGERS).items()
        }

    # ── Helpers ──────────────────────────────────────────────────────────

    def _prepare(self, candles: Union[CandleSeries, Sequence[Candle]]) -> ScoringContext:
        series = CandleSeries.coerce(candles)
        cfg = self._config
        require_length(len(series), cfg.window_size + cfg.hold_period + 1, "backtest")
        return self._scorer.prepare(series)

    def _replay(self, ctx: ScoringContext, trigger: TriggerCondition) -> BacktestResult:
        cfg = self._config
        n = len(ctx.series)
        hold = cfg.hold_period
        cooldown = cfg.effective_cooldown

        signals: list[BacktestSignal] = []
        evaluated = 0
        skipped = 0
        i = cfg.window_size
        while i < n - hold:
            evaluated += 1
            try:
                rec = self._scorer.evaluate(ctx, i)
            except InsufficientDataError as exc:
                logger.debug("Backtest step %d skipped: %s", i, exc)
                skipped += 1
                i += 1
                continue

            if not rec.available:
                skipped += 1
                i += 1
                continue

            if trigger.matches(rec):
                signals.append(self._simulate(ctx, i, rec))
                i += cooldown
            else:
                i += 1

        logger.info(
            "Backtest [%s]: %d signals over %d steps (%d skipped)",
            trigger.describe(), len(signals), evaluated, skipped,
        )
        return BacktestResult(
            trigger=trigger,
            signals=tuple(signals),
            stats=calculate_stats(
                signals, hold, cfg.high_entry_quality, cfg.low_entry_quality
            ),
            steps_evaluated=evaluated,
            steps_skipped=skipped,
        )

    def _simulate(self, ctx: ScoringContext, i: int, rec: Recommendation) -> BacktestSignal:
        series = ctx.series
        hold = self._config.hold_period
        entry = series.closes[i]
        exit_price = series.closes[i + hold]
        ret = self._pct(entry, exit_price)

        return BacktestSignal(
            entry_index=i,
            entry_timestamp=series.timestamps[i],
            entry_price=entry,
            exit_price=exit_price,
            score_at_entry=rec.score,
            entry_quality_at_entry=rec.entry_quality,
            rsi_at_entry=rec.snapshot.rsi,
            signal_status=rec.signal_status,
            return_percent=round(ret, 4),
            max_drawdown_percent=round(self._max_drawdown(series, i, hold), 4),
            is_win=ret > 0,
            returns_by_horizon={
                h: round(self._pct(entry, series.closes[i + h]), 4)
                for h in self._config.horizons
                if i + h < len(series)
            },
        )

    @staticmethod
    def _pct(entry: float, exit_price: float) -> float:
        if entry == 0:
            return 0.0
        return (exit_price - entry) / entry * 100

    @staticmethod
    def _max_drawdown(series: CandleSeries, i: int, hold: int) -> float:
        """Deepest low below the running peak after entry, as a non-positive percent."""
        peak = series.closes[i]
        worst = 0.0
        for j in range(i + 1, i + hold + 1):
            peak = max(peak, series.highs[j])
            if peak:
                worst = min(worst, (series.lows[j] - peak) / peak * 100)
        return worst
