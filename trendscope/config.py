"""Trendscope — application configuration.

Runtime settings come from .env / environment variables and are loaded
into a typed config object.  Engine tunables (weights, thresholds,
tolerances, windows) live in frozen dataclasses that validate themselves
at construction.
"""

import math
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from trendscope.errors import ConfigurationError


# ── Runtime configuration ────────────────────────────────────────────────


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    log_level: str
    binance_base_url: str
    quote_asset: str
    default_resolutions: tuple[str, ...]
    candle_count: int
    request_timeout: float
    api_port: int


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable has a default, so an empty environment yields a usable
    config.  Raises ``ConfigurationError`` naming the variable when a value
    cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    log_level = os.environ.get("TRENDSCOPE_LOG_LEVEL", "INFO").upper()
    if log_level not in _VALID_LOG_LEVELS:
        raise ConfigurationError(f"TRENDSCOPE_LOG_LEVEL must be one of {sorted(_VALID_LOG_LEVELS)}")

    resolutions = tuple(
        r.strip()
        for r in os.environ.get("DEFAULT_RESOLUTIONS", "1h,4h,1d").split(",")
        if r.strip()
    )
    if not resolutions:
        raise ConfigurationError("DEFAULT_RESOLUTIONS must name at least one resolution")

    candle_count = _env_int("CANDLE_COUNT", "500")
    if candle_count <= 0:
        raise ConfigurationError("CANDLE_COUNT must be positive")

    request_timeout = _env_float("REQUEST_TIMEOUT", "30.0")
    if request_timeout <= 0:
        raise ConfigurationError("REQUEST_TIMEOUT must be positive")

    return Config(
        log_level=log_level,
        binance_base_url=os.environ.get(
            "BINANCE_BASE_URL", "https://api.binance.com/api/v3"
        ).rstrip("/"),
        quote_asset=os.environ.get("QUOTE_ASSET", "USDT"),
        default_resolutions=resolutions,
        candle_count=candle_count,
        request_timeout=request_timeout,
        api_port=_env_int("API_PORT", "8080"),
    )


# ── Engine tunables ──────────────────────────────────────────────────────


def _check_positive(name: str, value: float) -> None:
    if not value > 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")


def _check_fraction(name: str, value: float) -> None:
    if not 0 <= value <= 1:
        raise ConfigurationError(f"{name} must be within [0, 1], got {value}")


@dataclass(frozen=True)
class IndicatorConfig:
    """Periods for the indicator library."""

    sma_period: int = 50
    ema_periods: tuple[int, ...] = (12, 20, 26, 50)
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bollinger_period: int = 20
    bollinger_stddev: float = 2.0
    adx_period: int = 14
    atr_period: int = 14

    def __post_init__(self) -> None:
        for name in (
            "sma_period", "rsi_period", "macd_fast", "macd_slow",
            "macd_signal", "bollinger_period", "adx_period", "atr_period",
        ):
            _check_positive(name, getattr(self, name))
        _check_positive("bollinger_stddev", self.bollinger_stddev)
        if self.macd_fast >= self.macd_slow:
            raise ConfigurationError("macd_fast must be shorter than macd_slow")


DEFAULT_WEIGHTS: dict[str, float] = {
    "long_term_trend": 0.30,
    "macd": 0.20,
    "ema_cross": 0.20,
    "adx": 0.15,
    "rsi": 0.10,
    "bollinger": 0.05,
}

# (minimum score, class); scanned top-down, first match wins.
DEFAULT_CLASS_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (60.0, "STRONG_BUY"),
    (50.0, "BUY"),
    (40.0, "HOLD"),
    (30.0, "SELL"),
)


@dataclass(frozen=True)
class ScoringConfig:
    """Weights and thresholds for the composite scoring engine."""

    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    class_thresholds: tuple[tuple[float, str], ...] = DEFAULT_CLASS_THRESHOLDS
    trend_lookbacks: tuple[tuple[int, float], ...] = ((10, 0.25), (25, 0.35), (50, 0.40))
    trend_high_lookback: int = 50
    ema_fast: int = 12
    ema_slow: int = 26
    ema_pullback: int = 20
    ema_trend: int = 50
    entry_quality_high: float = 60.0
    entry_quality_medium: float = 45.0
    volume_lookback: int = 20
    rapid_move_lookback: int = 24
    stop_loss_atr_multiple: float = 2.0
    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)

    def __post_init__(self) -> None:
        if set(self.weights) != set(DEFAULT_WEIGHTS):
            raise ConfigurationError(
                f"weights must define exactly {sorted(DEFAULT_WEIGHTS)}"
            )
        if any(w < 0 for w in self.weights.values()):
            raise ConfigurationError("weights must be non-negative")
        total = sum(self.weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ConfigurationError(f"weights must sum to 1.0, got {total:.6f}")

        previous: Optional[float] = None
        for threshold, label in self.class_thresholds:
            if not 0 <= threshold <= 100:
                raise ConfigurationError(f"class threshold {threshold} outside [0, 100]")
            if previous is not None and threshold >= previous:
                raise ConfigurationError("class thresholds must be strictly descending")
            if label not in ("STRONG_BUY", "BUY", "HOLD", "SELL"):
                raise ConfigurationError(f"unknown recommendation class {label!r}")
            previous = threshold

        if self.entry_quality_medium >= self.entry_quality_high:
            raise ConfigurationError("entry_quality_medium must be below entry_quality_high")
        for lookback, weight in self.trend_lookbacks:
            _check_positive("trend lookback", lookback)
            _check_fraction("trend lookback weight", weight)
        for name in ("trend_high_lookback", "volume_lookback", "rapid_move_lookback"):
            _check_positive(name, getattr(self, name))
        _check_positive("stop_loss_atr_multiple", self.stop_loss_atr_multiple)
        missing = {self.ema_fast, self.ema_slow, self.ema_pullback, self.ema_trend} - set(
            self.indicators.ema_periods
        )
        if missing:
            raise ConfigurationError(f"indicators.ema_periods must include {sorted(missing)}")

    @property
    def min_candles(self) -> int:
        """Shortest history that can produce an available recommendation."""
        longest = max(lb for lb, _ in self.trend_lookbacks)
        return max(
            longest + 1,
            self.trend_high_lookback,
            self.indicators.sma_period + 1,
            self.ema_trend + 1,
        )


@dataclass(frozen=True)
class DivergenceConfig:
    """Tolerances for RSI/MACD divergence detection."""

    lookback: int = 50
    pivot_window: int = 3
    pivots_compared: int = 3
    rsi_match_tolerance: int = 3
    macd_match_tolerance: int = 5
    recency_window: int = 10
    confirmation_bonus: float = 15.0

    def __post_init__(self) -> None:
        for name in (
            "lookback", "pivot_window", "rsi_match_tolerance",
            "macd_match_tolerance", "recency_window",
        ):
            _check_positive(name, getattr(self, name))
        if self.pivots_compared < 2:
            raise ConfigurationError("pivots_compared must be at least 2")
        if self.lookback < 2 * self.pivot_window + 1:
            raise ConfigurationError("lookback is too short for pivot_window")


@dataclass(frozen=True)
class PatternConfig:
    """Support/resistance and double formation parameters."""

    min_candles: int = 50
    sr_pivot_window: int = 5
    sr_tolerance_pct: float = 1.5
    sr_min_touches: int = 2
    sr_max_levels: int = 5
    double_lookback: int = 100
    double_pivot_window: int = 3
    double_tolerance_pct: float = 2.0
    double_min_height_pct: float = 3.0
    double_min_separation: int = 5
    double_max_separation: int = 50
    double_max_results: int = 3

    def __post_init__(self) -> None:
        for name in (
            "min_candles", "sr_pivot_window", "sr_tolerance_pct", "sr_min_touches",
            "sr_max_levels", "double_lookback", "double_pivot_window",
            "double_tolerance_pct", "double_min_height_pct",
            "double_min_separation", "double_max_results",
        ):
            _check_positive(name, getattr(self, name))
        if self.double_max_separation < self.double_min_separation:
            raise ConfigurationError("double_max_separation must be >= double_min_separation")


@dataclass(frozen=True)
class BreakoutConfig:
    """Squeeze, volume, consolidation and active breakout parameters."""

    min_candles: int = 50
    squeeze_average_period: int = 50
    squeeze_threshold: float = 0.6
    volume_lookback: int = 20
    volume_spike_multiple: float = 2.0
    consolidation_lookback: int = 20
    consolidation_max_range_pct: float = 5.0
    consolidation_min_duration: int = 10
    breakout_lookback: int = 20
    breakout_exclude_recent: int = 3
    breakout_threshold_pct: float = 1.5
    breakout_volume_multiple: float = 1.5
    squeeze_weight: float = 0.35
    volume_weight: float = 0.25
    consolidation_weight: float = 0.25
    high_probability: float = 70.0
    medium_probability: float = 50.0

    def __post_init__(self) -> None:
        for name in (
            "min_candles", "squeeze_average_period", "volume_lookback",
            "volume_spike_multiple", "consolidation_lookback",
            "consolidation_max_range_pct", "consolidation_min_duration",
            "breakout_lookback", "breakout_threshold_pct", "breakout_volume_multiple",
        ):
            _check_positive(name, getattr(self, name))
        _check_fraction("squeeze_threshold", self.squeeze_threshold)
        for name in ("squeeze_weight", "volume_weight", "consolidation_weight"):
            _check_fraction(name, getattr(self, name))
        if self.breakout_exclude_recent < 0:
            raise ConfigurationError("breakout_exclude_recent must be >= 0")
        if self.medium_probability >= self.high_probability:
            raise ConfigurationError("medium_probability must be below high_probability")


@dataclass(frozen=True)
class BacktestConfig:
    """Replay parameters for the backtest simulator."""

    hold_period: int = 24
    window_size: int = 100
    cooldown: Optional[int] = None
    horizons: tuple[int, ...] = (6, 12, 24, 48, 72)
    high_entry_quality: float = 55.0
    low_entry_quality: float = 45.0

    def __post_init__(self) -> None:
        _check_positive("hold_period", self.hold_period)
        _check_positive("window_size", self.window_size)
        if self.cooldown is not None and self.cooldown < 1:
            raise ConfigurationError("cooldown must be at least 1 candle")
        if any(h <= 0 for h in self.horizons):
            raise ConfigurationError("horizons must be positive")
        if self.low_entry_quality > self.high_entry_quality:
            raise ConfigurationError("low_entry_quality must not exceed high_entry_quality")

    @property
    def effective_cooldown(self) -> int:
        """Candles skipped after an entry."""
        if self.cooldown is not None:
            return self.cooldown
        return min(self.hold_period, 12)
