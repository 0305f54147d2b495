"""Backtest statistics — pure functions over replayed signals."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Sequence

import numpy as np

if TYPE_CHECKING:
    from trendscope.backtest.engine import BacktestSignal


@dataclass(frozen=True)
class BucketStats:
    """Outcome of the signals falling into one stratification bucket."""

    label: str
    count: int
    win_rate: float
    avg_return: float


@dataclass(frozen=True)
class BacktestStats:
    total_signals: int
    wins: int
    losses: int
    win_rate: float  # percent
    loss_rate: float  # percent
    avg_return: float
    avg_win_return: float
    avg_loss_return: float
    max_win: float
    max_loss: float
    avg_max_drawdown: float
    profit_factor: float  # math.inf when there are wins and no losses
    expectancy: float
    cumulative_drawdown: float
    sharpe_ratio: float
    hold_period: int
    entry_quality_buckets: tuple[BucketStats, ...]
    rsi_buckets: tuple[BucketStats, ...]
    horizon_returns: dict[int, float]


def _mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def calculate_stats(
    signals: Sequence["BacktestSignal"],
    hold_period: int,
    high_entry_quality: float = 55.0,
    low_entry_quality: float = 45.0,
) -> BacktestStats:
    """Summarise replayed signals.

    A win is a strictly positive return; everything else is a loss.
    Profit factor is gross win / gross loss, ``math.inf`` when there are
    wins but no losses and ``0.0`` when there are no wins.
    """
    returns = [s.return_percent for s in signals]
    total = len(returns)
    wins = [r for r in returns if r > 0]
    losses = [r for r in returns if r <= 0]

    win_rate = len(wins) / total if total else 0.0
    loss_rate = len(losses) / total if total else 0.0
    avg_win = _mean(wins)
    avg_loss = _mean(losses)

    gross_loss = abs(sum(losses))
    if not wins:
        profit_factor = 0.0
    elif gross_loss == 0:
        profit_factor = math.inf
    else:
        profit_factor = sum(wins) / gross_loss

    horizons: dict[int, list[float]] = {}
    for s in signals:
        for h, r in s.returns_by_horizon.items():
            horizons.setdefault(h, []).append(r)

    return BacktestStats(
        total_signals=total,
        wins=len(wins),
        losses=len(losses),
        win_rate=round(win_rate * 100, 2),
        loss_rate=round(loss_rate * 100, 2),
        avg_return=round(_mean(returns), 4),
        avg_win_return=round(avg_win, 4),
        avg_loss_return=round(avg_loss, 4),
        max_win=round(max(returns), 4) if returns else 0.0,
        max_loss=round(min(returns), 4) if returns else 0.0,
        avg_max_drawdown=round(_mean([s.max_drawdown_percent for s in signals]), 4),
        profit_factor=profit_factor if math.isinf(profit_factor) else round(profit_factor, 4),
        expectancy=round(win_rate * avg_win + loss_rate * avg_loss, 4),
        cumulative_drawdown=round(_max_drawdown(returns), 4),
        sharpe_ratio=round(_sharpe(returns), 4),
        hold_period=hold_period,
        entry_quality_buckets=_bucketize(
            signals,
            lambda s: s.entry_quality_at_entry,
            (
                ("HIGH", lambda q: q >= high_entry_quality),
                ("MEDIUM", lambda q: low_entry_quality <= q < high_entry_quality),
                ("LOW", lambda q: q < low_entry_quality),
            ),
        ),
        rsi_buckets=_bucketize(
            signals,
            lambda s: s.rsi_at_entry,
            (
                ("BELOW_30", lambda r: r < 30),
                ("30_TO_50", lambda r: 30 <= r < 50),
                ("50_TO_70", lambda r: 50 <= r <= 70),
                ("ABOVE_70", lambda r: r > 70),
            ),
        ),
        horizon_returns={h: round(_mean(rs), 4) for h, rs in sorted(horizons.items())},
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _bucketize(
    signals: Sequence["BacktestSignal"],
    key: Callable[["BacktestSignal"], Optional[float]],
    buckets: Sequence[tuple[str, Callable[[float], bool]]],
) -> tuple[BucketStats, ...]:
    out = []
    for label, predicate in buckets:
        members = [
            s.return_percent for s in signals
            if key(s) is not None and predicate(key(s))
        ]
        out.append(
            BucketStats(
                label=label,
                count=len(members),
                win_rate=round(sum(1 for r in members if r > 0) / len(members) * 100, 2)
                if members else 0.0,
                avg_return=round(_mean(members), 4),
            )
        )
    return tuple(out)


def _sharpe(returns: list[float]) -> float:
    """Per-trade Sharpe ratio of the return series.

    Uses sample standard deviation (n − 1).  Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    if len(returns) < 2:
        return 0.0
    std = float(np.std(returns, ddof=1))
    if std < 1e-12:
        return 0.0
    return float(np.mean(returns)) / std


def _max_drawdown(returns: list[float]) -> float:
    """Largest peak-to-trough decline of the summed-return curve, as a positive number."""
    cumulative = 0.0
    peak = 0.0
    max_dd = 0.0
    for r in returns:
        cumulative += r
        peak = max(peak, cumulative)
        max_dd = max(max_dd, peak - cumulative)
    return max_dd
