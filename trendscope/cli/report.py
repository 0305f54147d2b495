"""CLI report — prints analysis results to the console."""

import math
from typing import Optional

from trendscope.backtest.engine import BacktestResult
from trendscope.strategy.models import (
    BreakoutAnalysis,
    DivergenceSummary,
    PatternAnalysis,
    Recommendation,
)
from trendscope.strategy.multi_timeframe import MultiTimeframeResult

_RULE = "─" * 50


def _num(value: Optional[float], fmt: str = ".2f", suffix: str = "") -> str:
    if value is None:
        return "N/A"
    if math.isinf(value):
        return "∞"
    return f"{value:{fmt}}{suffix}"


def _emit(title: str, lines: list[str]) -> str:
    header = f"{'─' * 16} {title} ".ljust(50, "─")
    output = "\n".join([header, *lines, _RULE])
    print(output)
    return output


def print_recommendation(rec: Recommendation, label: str = "") -> str:
    """Format and print a recommendation.

    Returns:
        The formatted string (also printed to stdout).
    """
    title = f"Signal {label}".strip()
    if not rec.available:
        return _emit(title, ["  No signal: not enough history to score."])

    b = rec.breakdown
    lines = [
        f"  Price:           {_num(rec.current_price, '.8g')}",
        f"  Score:           {_num(rec.score, '.1f')} ({rec.recommendation_class.value})",
        f"  Status:          {rec.signal_status.value}",
        f"  Entry quality:   {_num(rec.entry_quality, '.0f')}",
        f"  Trend/MACD/EMA:  {_num(b.long_term_trend, '.0f')} / {_num(b.macd, '.0f')} / {_num(b.ema_cross, '.0f')}",
        f"  ADX/RSI/BB:      {_num(b.adx, '.0f')} / {_num(b.rsi, '.0f')} / {_num(b.bollinger, '.0f')}",
        f"  RSI / ADX:       {_num(rec.snapshot.rsi, '.1f')} / {_num(rec.snapshot.adx, '.1f')}",
    ]
    if rec.stop_loss:
        lines.append(
            f"  Stop (long):     {_num(rec.stop_loss.long, '.8g')} "
            f"(-{rec.stop_loss.long_distance_pct:.2f}%)"
        )
    for w in rec.warnings:
        lines.append(f"  ! {w.severity.value:<6} {w.message}")
    return _emit(title, lines)


def print_divergence(summary: DivergenceSummary) -> str:
    lines = [
        f"  Signal:          {summary.signal.value} ({summary.score:.0f})",
        f"  Confirmed:       {summary.confirmed}",
        f"  {summary.message}",
    ]
    for d in summary.divergences:
        marker = "*" if d.active else " "
        lines.append(
            f"  {marker} {d.type.value:<15} {d.indicator:<4} "
            f"strength {d.strength:5.1f}  {d.candles_ago} candles ago"
        )
    return _emit("Divergence", lines)


def print_patterns(patterns: PatternAnalysis) -> str:
    sr = patterns.support_resistance
    lines = [
        f"  Position:        {sr.position}",
        f"  Risk/reward:     {_num(sr.risk_reward)}",
    ]
    for level in sr.resistance[::-1] + sr.support:
        lines.append(
            f"  {level.kind:<10} {level.price:>14.8g}  {level.distance_percent:+6.2f}%  "
            f"touches {level.touches}"
        )
    for f in patterns.double_bottoms + patterns.double_tops:
        state = "confirmed" if f.confirmed else "forming"
        lines.append(
            f"  {f.kind:<13} neckline {f.neckline:.8g}  target {f.target_price:.8g} ({state})"
        )
    return _emit("Patterns", lines)


def print_breakout(analysis: BreakoutAnalysis) -> str:
    lines = [
        f"  Score:           {analysis.breakout_score:.0f} ({analysis.probability.value})",
        f"  Direction:       {analysis.likely_direction.value}",
        f"  {analysis.summary}",
    ]
    for f in analysis.findings:
        lines.append(f"  - {f.kind:<15} {f.score:5.1f}  {f.message}")
    return _emit("Breakout", lines)


def print_backtest(result: BacktestResult) -> str:
    s = result.stats
    lines = [
        f"  Trigger:         {result.trigger.describe()}",
        f"  Signals:         {s.total_signals} (hold {s.hold_period} candles)",
        f"  Win rate:        {s.win_rate:.1f}%",
        f"  Avg return:      {s.avg_return:+.2f}%  (win {s.avg_win_return:+.2f}%, loss {s.avg_loss_return:+.2f}%)",
        f"  Profit factor:   {_num(s.profit_factor)}",
        f"  Expectancy:      {s.expectancy:+.2f}%",
        f"  Avg drawdown:    {s.avg_max_drawdown:.2f}%",
    ]
    for bucket in s.entry_quality_buckets:
        if bucket.count:
            lines.append(
                f"  EQ {bucket.label:<7} {bucket.count:3d} signals  win {bucket.win_rate:5.1f}%"
            )
    return _emit("Backtest", lines)


def print_multi_timeframe(result: MultiTimeframeResult) -> str:
    lines = [
        f"  Alignment:       {result.alignment.value} ({result.confidence.value})",
        f"  Action:          {result.recommended_action.value}",
        f"  {result.action_reason}",
        f"  Avg score / EQ:  {result.avg_score:.1f} / {result.avg_entry_quality:.0f}",
    ]
    for res, rec in result.recommendations.items():
        lines.append(f"  {res:<6} {rec.recommendation_class.value:<12} {rec.score:5.1f}")
    for res, err in result.errors.items():
        lines.append(f"  {res:<6} error: {err}")
    for w in result.consolidated_warnings:
        lines.append(f"  ! {w.severity.value:<6} {w.message}")
    return _emit("Multi-timeframe", lines)
