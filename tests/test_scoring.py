"""Tests for trendscope.strategy.scoring — composite score, class and entry timing."""

import math

import pytest

from trendscope.config import ScoringConfig
from trendscope.errors import InvalidInputError
from trendscope.strategy import scoring
from trendscope.strategy.indicators import ADXSeries, BollingerSeries, IndicatorSet
from trendscope.strategy.models import (
    Candle,
    CandleSeries,
    RecommendationClass,
    Severity,
    SignalStatus,
)
from trendscope.strategy.scoring import (
    ScoringContext,
    ScoringEngine,
    classify,
    entry_quality,
    resolve_signal_status,
)

_T0 = 1_700_000_000_000
_HOUR = 3_600_000


def _make_candle(i: int, o: float, h: float, l: float, c: float, vol: float = 1000.0) -> Candle:
    return Candle(timestamp=_T0 + i * _HOUR, open=o, high=h, low=l, close=c, volume=vol)


def _trend(n: int, step_pct: float, start: float = 100.0) -> list[Candle]:
    """Geometric trend: each candle opens at the previous close."""
    candles = []
    prev = start
    for i in range(n):
        close = start * (1 + step_pct) ** i
        o = prev if i else close
        candles.append(
            _make_candle(i, o, max(o, close) * 1.002, min(o, close) * 0.998, close)
        )
        prev = close
    return candles


def _wave(n: int) -> list[Candle]:
    candles = []
    for i in range(n):
        close = 100 + 5 * math.sin(i / 5)
        o = 100 + 5 * math.sin((i - 1) / 5)
        candles.append(_make_candle(i, o, max(o, close) + 0.3, min(o, close) - 0.3, close))
    return candles


@pytest.fixture
def engine():
    return ScoringEngine()


# ── End-to-end recommendations ───────────────────────────────────────────


class TestScore:
    def test_strong_uptrend_is_strong_buy_but_extended(self, engine):
        rec = engine.score(_trend(120, 0.01))
        assert rec.available
        assert rec.recommendation_class is RecommendationClass.STRONG_BUY
        # RSI pinned at 100 → high-severity warning blocks the buy-now verdict
        assert rec.has_high_warning
        assert rec.signal_status is SignalStatus.WATCH_FOR_PULLBACK
        kinds = {w.kind for w in rec.warnings}
        assert "RSI_EXTREME" in kinds
        assert "ADX_EXTREME" in kinds

    def test_strong_downtrend_is_bearish(self, engine):
        rec = engine.score(_trend(120, -0.01))
        assert rec.recommendation_class.is_bearish
        assert rec.signal_status.is_bearish
        assert rec.breakdown.long_term_trend == pytest.approx(0.0)
        assert rec.breakdown.adx == pytest.approx(0.0)

    def test_short_history_is_unavailable_not_bearish(self, engine):
        rec = engine.score(_trend(30, 0.01))
        assert not rec.available
        assert rec.score is None
        assert rec.recommendation_class is None
        assert rec.signal_status is None
        assert rec.entry_quality is None
        assert rec.current_price == pytest.approx(100 * 1.01 ** 29)

    def test_min_candles_is_first_available_length(self, engine):
        needed = engine.config.min_candles
        assert engine.score(_wave(needed)).available
        assert not engine.score(_wave(needed - 1)).available

    def test_score_and_subscores_in_range(self, engine):
        for candles in (_trend(120, 0.01), _trend(120, -0.01), _wave(150)):
            rec = engine.score(candles)
            assert 0 <= rec.score <= 100
            assert 0 <= rec.entry_quality <= 100
            for value in rec.breakdown.weighted().values():
                assert 0 <= value <= 100

    def test_deterministic(self, engine):
        candles = _wave(150)
        assert engine.score(candles) == engine.score(candles)

    def test_evaluate_uses_no_future_data(self, engine):
        candles = _wave(150)
        ctx = engine.prepare(candles)
        past = engine.evaluate(ctx, 90)
        truncated = engine.score(candles[:91])
        assert past.score == truncated.score
        assert past.entry_quality == truncated.entry_quality
        assert past.warnings == truncated.warnings

    def test_evaluate_rejects_out_of_range_index(self, engine):
        ctx = engine.prepare(_wave(60))
        with pytest.raises(InvalidInputError):
            engine.evaluate(ctx, 60)

    def test_stop_loss_brackets_price(self, engine):
        rec = engine.score(_wave(120))
        stop = rec.stop_loss
        assert stop.long < rec.current_price < stop.short
        assert stop.long == pytest.approx(rec.current_price - 2 * stop.atr)
        assert stop.long_distance_pct == pytest.approx(stop.short_distance_pct)

    def test_class_matches_score(self, engine):
        rec = engine.score(_wave(150))
        assert rec.recommendation_class is classify(rec.score, engine.config)


# ── Classification ───────────────────────────────────────────────────────


class TestClassify:
    @pytest.mark.parametrize(
        "score, expected",
        [
            (100.0, RecommendationClass.STRONG_BUY),
            (60.0, RecommendationClass.STRONG_BUY),
            (59.99, RecommendationClass.BUY),
            (50.0, RecommendationClass.BUY),
            (45.0, RecommendationClass.HOLD),
            (30.0, RecommendationClass.SELL),
            (29.99, RecommendationClass.STRONG_SELL),
            (0.0, RecommendationClass.STRONG_SELL),
        ],
    )
    def test_thresholds(self, score, expected):
        assert classify(score, ScoringConfig()) is expected

    def test_monotonic(self):
        cfg = ScoringConfig()
        ranks = [classify(s / 2, cfg).rank for s in range(0, 201)]
        assert ranks == sorted(ranks)


# ── Signal status ────────────────────────────────────────────────────────


class TestSignalStatus:
    @pytest.mark.parametrize(
        "rec_class, quality, expected",
        [
            (RecommendationClass.STRONG_BUY, 70.0, SignalStatus.STRONG_BUY_NOW),
            (RecommendationClass.STRONG_BUY, 50.0, SignalStatus.BUY_PARTIAL),
            (RecommendationClass.STRONG_BUY, 30.0, SignalStatus.WATCH_FOR_PULLBACK),
            (RecommendationClass.BUY, 70.0, SignalStatus.BUY_PARTIAL),
            (RecommendationClass.BUY, 50.0, SignalStatus.HOLD),
            (RecommendationClass.BUY, 30.0, SignalStatus.WATCH_FOR_PULLBACK),
            (RecommendationClass.HOLD, 90.0, SignalStatus.HOLD),
            (RecommendationClass.SELL, 90.0, SignalStatus.SELL),
            (RecommendationClass.STRONG_SELL, 10.0, SignalStatus.STRONG_SELL),
        ],
    )
    def test_table(self, rec_class, quality, expected):
        assert resolve_signal_status(rec_class, quality, False, ScoringConfig()) is expected

    def test_high_warning_downgrades_bullish(self):
        cfg = ScoringConfig()
        status = resolve_signal_status(RecommendationClass.STRONG_BUY, 90.0, True, cfg)
        assert status is SignalStatus.WATCH_FOR_PULLBACK

    def test_high_warning_leaves_bearish_alone(self):
        cfg = ScoringConfig()
        status = resolve_signal_status(RecommendationClass.SELL, 90.0, True, cfg)
        assert status is SignalStatus.SELL

    def test_status_never_contradicts_class(self):
        cfg = ScoringConfig()
        for rec_class in RecommendationClass:
            for quality in (0.0, 44.9, 45.0, 59.9, 60.0, 100.0):
                for warned in (False, True):
                    status = resolve_signal_status(rec_class, quality, warned, cfg)
                    if rec_class.is_bearish:
                        assert not status.is_bullish
                    if rec_class.is_bullish:
                        assert not status.is_bearish


# ── Entry quality ────────────────────────────────────────────────────────

_UP = dict(adx=30.0, plus_di=30.0, minus_di=10.0)
_DOWN = dict(adx=30.0, plus_di=10.0, minus_di=30.0)


def _entry(
    close: float = 100.0,
    rsi=None,
    adx=None,
    plus_di=None,
    minus_di=None,
    ema20=None,
    percent_b=None,
    volumes=(1000.0, 1000.0, 1000.0),
) -> float:
    """Entry quality of the last of three flat candles with hand-set indicators."""
    n = len(volumes)
    candles = [
        _make_candle(k, close, close + 1, close - 1, close, vol) for k, vol in enumerate(volumes)
    ]

    def last_only(value):
        return None if value is None else [math.nan] * (n - 1) + [value]

    blank = [math.nan] * n
    indicators = IndicatorSet(
        length=n,
        sma=None,
        ema={20: last_only(ema20)},
        rsi=last_only(rsi),
        macd=None,
        bollinger=None
        if percent_b is None
        else BollingerSeries(
            upper=blank, middle=blank, lower=blank, bandwidth=blank,
            percent_b=last_only(percent_b),
        ),
        adx=None
        if adx is None
        else ADXSeries(adx=last_only(adx), plus_di=last_only(plus_di), minus_di=last_only(minus_di)),
        atr=None,
    )
    ctx = ScoringContext(series=CandleSeries(candles), indicators=indicators)
    return entry_quality(ctx, n - 1, ScoringConfig())


class TestEntryQuality:
    def test_neutral_without_indicators(self):
        assert _entry() == 50.0

    @pytest.mark.parametrize(
        "rsi, expected",
        [
            (78.0, 15.0),  # overbought in an uptrend
            (72.0, 25.0),
            (60.0, 60.0),
            (48.0, 75.0),  # 40-55 pullback inside the uptrend
            (35.0, 65.0),
        ],
    )
    def test_rsi_in_confirmed_uptrend(self, rsi, expected):
        assert _entry(rsi=rsi, **_UP) == pytest.approx(expected)

    def test_rsi_pullback_needs_trend(self):
        assert _entry(rsi=48.0) == 50.0
        weak = dict(_UP, adx=20.0)
        assert _entry(rsi=48.0, **weak) == 50.0

    def test_downtrend_penalised_unless_oversold(self):
        assert _entry(rsi=45.0, **_DOWN) == pytest.approx(30.0)
        assert _entry(rsi=25.0, **_DOWN) == pytest.approx(45.0)

    @pytest.mark.parametrize(
        "distance_pct, expected",
        [
            (1.0, 65.0),  # testing EMA20 from above
            (4.0, 55.0),
            (8.0, 50.0),
            (12.0, 40.0),
            (20.0, 30.0),
        ],
    )
    def test_distance_above_ema20(self, distance_pct, expected):
        ema20 = 100.0 / (1 + distance_pct / 100)
        assert _entry(ema20=ema20) == pytest.approx(expected)

    def test_below_ema20_is_neutral(self):
        assert _entry(ema20=105.0) == 50.0

    @pytest.mark.parametrize(
        "percent_b, expected",
        [(0.95, 35.0), (0.5, 55.0), (0.75, 50.0), (0.2, 50.0)],
    )
    def test_band_position(self, percent_b, expected):
        assert _entry(percent_b=percent_b) == pytest.approx(expected)

    def test_lower_band_rewarded_in_uptrend(self):
        assert _entry(percent_b=0.2, **_UP) == pytest.approx(60.0)

    def test_quiet_volume_on_pullback(self):
        quiet = (1000.0, 1000.0, 100.0)
        assert _entry(rsi=50.0, volumes=quiet) == pytest.approx(55.0)
        assert _entry(rsi=60.0, volumes=quiet) == 50.0
        assert _entry(rsi=50.0) == 50.0

    def test_clamped_at_zero(self):
        worst = _entry(rsi=78.0, ema20=100.0 / 1.2, percent_b=0.95, **_UP)
        assert worst == 0.0

    def test_independent_of_score(self, engine, monkeypatch):
        """A strong trend can still be a poor entry: STRONG_BUY yet wait for a pullback."""
        monkeypatch.setattr(scoring, "collect_warnings", lambda ctx, i, cfg: ())
        rec = engine.score(_trend(120, 0.01))
        assert rec.recommendation_class is RecommendationClass.STRONG_BUY
        assert not rec.has_high_warning
        assert rec.entry_quality < ScoringConfig().entry_quality_medium
        assert rec.signal_status is SignalStatus.WATCH_FOR_PULLBACK


# ── Warnings ─────────────────────────────────────────────────────────────


class TestWarnings:
    def test_large_single_candle(self, engine):
        candles = _wave(100)
        last = candles[-1]
        jump = last.close * 1.12
        candles[-1] = _make_candle(99, last.open, jump + 0.1, min(last.open, last.low), jump)
        rec = engine.score(candles)
        large = [w for w in rec.warnings if w.kind == "LARGE_CANDLE"]
        assert large and large[0].severity is Severity.HIGH
