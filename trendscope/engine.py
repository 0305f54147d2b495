"""Trendscope engine — the public operations over candle lists.

Each call is stateless: candles in, frozen result dataclasses out.
"""

from typing import Mapping, Optional, Sequence, Union

from trendscope.backtest.engine import BacktestEngine, BacktestResult, TriggerCondition
from trendscope.config import (
    BacktestConfig,
    BreakoutConfig,
    DivergenceConfig,
    PatternConfig,
    ScoringConfig,
)
from trendscope.strategy.breakout import analyze_breakout
from trendscope.strategy.divergence import analyze_divergences
from trendscope.strategy.models import (
    BreakoutAnalysis,
    Candle,
    CandleSeries,
    DivergenceSummary,
    PatternAnalysis,
    Recommendation,
)
from trendscope.strategy.multi_timeframe import MultiTimeframeResult
from trendscope.strategy.multi_timeframe import analyze_multi_timeframe as _analyze_mtf
from trendscope.strategy.patterns import analyze_patterns
from trendscope.strategy.scoring import ScoringEngine

Candles = Union[CandleSeries, Sequence[Candle]]


def score(candles: Candles, config: Optional[ScoringConfig] = None) -> Recommendation:
    """Composite recommendation for the latest candle."""
    return ScoringEngine(config).score(candles)


def detect_divergence(
    candles: Candles, config: Optional[DivergenceConfig] = None
) -> DivergenceSummary:
    return analyze_divergences(candles, config)


def detect_patterns(candles: Candles, config: Optional[PatternConfig] = None) -> PatternAnalysis:
    return analyze_patterns(candles, config)


def detect_breakout(candles: Candles, config: Optional[BreakoutConfig] = None) -> BreakoutAnalysis:
    return analyze_breakout(candles, config)


def backtest(
    candles: Candles,
    trigger: TriggerCondition,
    config: Optional[BacktestConfig] = None,
    scoring: Optional[ScoringConfig] = None,
) -> BacktestResult:
    """Replay *trigger* over *candles* with a fixed holding period."""
    return BacktestEngine(ScoringEngine(scoring), config).run(candles, trigger)


def analyze_multi_timeframe(
    candles_by_resolution: Mapping[str, Candles],
    config: Optional[ScoringConfig] = None,
) -> MultiTimeframeResult:
    return _analyze_mtf(candles_by_resolution, ScoringEngine(config))
