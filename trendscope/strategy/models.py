"""Strategy data models — candles, aligned series and typed engine outputs."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from trendscope.errors import InvalidInputError


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar. ``timestamp`` is epoch milliseconds."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Candle":
        """Build a candle from a dict with ``timestamp``/``time`` and OHLCV keys."""
        try:
            ts = data["timestamp"] if "timestamp" in data else data["time"]
            return cls(
                timestamp=int(ts),
                open=float(data["open"]),
                high=float(data["high"]),
                low=float(data["low"]),
                close=float(data["close"]),
                volume=float(data.get("volume", 0.0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidInputError(f"Malformed candle {dict(data)!r}: {exc}") from exc


class CandleSeries:
    """An immutable, validated, time-ordered candle sequence.

    Exposes positionally aligned ``opens``, ``highs``, ``lows``,
    ``closes``, ``volumes`` and ``timestamps`` lists.  Construction
    rejects empty input, non-ascending timestamps, non-finite or negative
    values and bars whose high/low do not bracket open and close.
    """

    __slots__ = ("_candles", "timestamps", "opens", "highs", "lows", "closes", "volumes")

    def __init__(self, candles: Iterable[Candle]) -> None:
        items = tuple(candles)
        if not items:
            raise InvalidInputError("Candle series is empty")

        prev_ts: Optional[int] = None
        for idx, c in enumerate(items):
            if not isinstance(c, Candle):
                raise InvalidInputError(f"Item {idx} is not a Candle: {type(c).__name__}")
            values = (c.open, c.high, c.low, c.close, c.volume)
            if any(not math.isfinite(v) for v in values):
                raise InvalidInputError(f"Candle {idx} has a non-finite value")
            if any(v < 0 for v in values):
                raise InvalidInputError(f"Candle {idx} has a negative value")
            if c.low > min(c.open, c.close) or c.high < max(c.open, c.close):
                raise InvalidInputError(
                    f"Candle {idx} high/low do not bracket open/close"
                )
            if prev_ts is not None and c.timestamp <= prev_ts:
                raise InvalidInputError(
                    f"Candle {idx} timestamp {c.timestamp} is not after {prev_ts}"
                )
            prev_ts = c.timestamp

        self._candles = items
        self.timestamps = [c.timestamp for c in items]
        self.opens = [c.open for c in items]
        self.highs = [c.high for c in items]
        self.lows = [c.low for c in items]
        self.closes = [c.close for c in items]
        self.volumes = [c.volume for c in items]

    @classmethod
    def coerce(cls, candles: Union["CandleSeries", Sequence[Candle]]) -> "CandleSeries":
        """Return *candles* as a series, validating when needed."""
        if isinstance(candles, CandleSeries):
            return candles
        return cls(candles)

    @property
    def candles(self) -> tuple[Candle, ...]:
        return self._candles

    def __len__(self) -> int:
        return len(self._candles)

    def __getitem__(self, idx: int) -> Candle:
        return self._candles[idx]

    def tail(self, count: int) -> "CandleSeries":
        """The last *count* candles (all of them when fewer exist)."""
        if count >= len(self._candles):
            return self
        return CandleSeries(self._candles[-count:])


# ── Enumerations ─────────────────────────────────────────────────────────


class RecommendationClass(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"

    @property
    def rank(self) -> int:
        """+2 strongest bullish … -2 strongest bearish."""
        return _CLASS_RANK[self]

    @property
    def is_bullish(self) -> bool:
        return self.rank > 0

    @property
    def is_bearish(self) -> bool:
        return self.rank < 0


_CLASS_RANK = {
    RecommendationClass.STRONG_BUY: 2,
    RecommendationClass.BUY: 1,
    RecommendationClass.HOLD: 0,
    RecommendationClass.SELL: -1,
    RecommendationClass.STRONG_SELL: -2,
}


class SignalStatus(str, Enum):
    STRONG_BUY_NOW = "STRONG_BUY_NOW"
    BUY_PARTIAL = "BUY_PARTIAL"
    WATCH_FOR_PULLBACK = "WATCH_FOR_PULLBACK"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"

    @property
    def is_bullish(self) -> bool:
        return self in (
            SignalStatus.STRONG_BUY_NOW,
            SignalStatus.BUY_PARTIAL,
            SignalStatus.WATCH_FOR_PULLBACK,
        )

    @property
    def is_bearish(self) -> bool:
        return self in (SignalStatus.SELL, SignalStatus.STRONG_SELL)


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Probability(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class DivergenceType(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    HIDDEN_BULLISH = "HIDDEN_BULLISH"
    HIDDEN_BEARISH = "HIDDEN_BEARISH"

    @property
    def is_bullish(self) -> bool:
        return self in (DivergenceType.BULLISH, DivergenceType.HIDDEN_BULLISH)


class Direction(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"


# ── Scoring outputs ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class SignalWarning:
    """A risk annotation attached to a recommendation."""

    kind: str
    severity: Severity
    message: str
    value: Optional[float] = None
    resolution: Optional[str] = None  # set by the multi-timeframe aggregator


@dataclass(frozen=True)
class StopLoss:
    long: float
    short: float
    atr: float
    long_distance_pct: float
    short_distance_pct: float


@dataclass(frozen=True)
class VolumeAnalysis:
    score: float
    bullish_ratio: float
    avg_volume: float


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores in [0, 100]; ``None`` when the inputs are unavailable."""

    long_term_trend: Optional[float]
    macd: Optional[float]
    ema_cross: Optional[float]
    adx: Optional[float]
    rsi: Optional[float]
    bollinger: Optional[float]
    volume: Optional[float] = None

    def weighted(self) -> dict[str, Optional[float]]:
        """The sub-scores that carry a weight, keyed like the weight table."""
        return {
            "long_term_trend": self.long_term_trend,
            "macd": self.macd,
            "ema_cross": self.ema_cross,
            "adx": self.adx,
            "rsi": self.rsi,
            "bollinger": self.bollinger,
        }


@dataclass(frozen=True)
class IndicatorSnapshot:
    rsi: Optional[float]
    adx: Optional[float]
    macd_histogram: Optional[float]


@dataclass(frozen=True)
class Recommendation:
    """Composite scoring result for one candle position.

    ``score``, ``recommendation_class``, ``signal_status`` and
    ``entry_quality`` are all ``None`` when the history was too short to
    score; this "no signal" state is distinct from a bearish one.
    """

    score: Optional[float]
    recommendation_class: Optional[RecommendationClass]
    signal_status: Optional[SignalStatus]
    entry_quality: Optional[float]
    warnings: tuple[SignalWarning, ...]
    stop_loss: Optional[StopLoss]
    breakdown: ScoreBreakdown
    volume_analysis: Optional[VolumeAnalysis]
    snapshot: IndicatorSnapshot
    current_price: float
    timestamp: int

    @property
    def available(self) -> bool:
        return self.score is not None

    @property
    def has_high_warning(self) -> bool:
        return any(w.severity is Severity.HIGH for w in self.warnings)


# ── Detector outputs ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Pivot:
    index: int
    value: float


@dataclass(frozen=True)
class Pivots:
    highs: tuple[Pivot, ...]
    lows: tuple[Pivot, ...]


@dataclass(frozen=True)
class Divergence:
    type: DivergenceType
    indicator: str  # "RSI" or "MACD"
    strength: float
    candles_ago: int
    price_start: Pivot
    price_end: Pivot
    indicator_start: Pivot
    indicator_end: Pivot
    active: bool
    message: str


@dataclass(frozen=True)
class DivergenceSummary:
    signal: Direction
    score: float
    confirmed: bool
    message: str
    divergences: tuple[Divergence, ...]

    @property
    def active(self) -> tuple[Divergence, ...]:
        return tuple(d for d in self.divergences if d.active)


@dataclass(frozen=True)
class Level:
    """A clustered support or resistance price."""

    price: float
    touches: int
    strength: float
    distance_percent: float
    kind: str  # "SUPPORT" or "RESISTANCE"
    first_touch_index: int
    last_touch_index: int


@dataclass(frozen=True)
class SupportResistance:
    support: tuple[Level, ...]
    resistance: tuple[Level, ...]
    position: str
    risk_reward: Optional[float]
    current_price: float


@dataclass(frozen=True)
class DoubleFormation:
    kind: str  # "DOUBLE_BOTTOM" or "DOUBLE_TOP"
    first: Pivot
    second: Pivot
    neckline: float
    neckline_index: int
    target_price: float
    target_percent: float
    height_percent: float
    strength: float
    confirmed: bool
    candles_ago: int


@dataclass(frozen=True)
class PatternAnalysis:
    support_resistance: SupportResistance
    double_bottoms: tuple[DoubleFormation, ...]
    double_tops: tuple[DoubleFormation, ...]


@dataclass(frozen=True)
class BreakoutFinding:
    kind: str  # SQUEEZE, VOLUME, CONSOLIDATION or ACTIVE_BREAKOUT
    score: float
    direction: Direction
    message: str
    confirmed: Optional[bool] = None
    details: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class BreakoutAnalysis:
    findings: tuple[BreakoutFinding, ...]
    breakout_score: float
    probability: Probability
    likely_direction: Direction
    summary: str

    def finding(self, kind: str) -> Optional[BreakoutFinding]:
        for f in self.findings:
            if f.kind == kind:
                return f
        return None
