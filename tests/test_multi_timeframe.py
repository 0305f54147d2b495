"""Tests for trendscope.strategy.multi_timeframe."""

import pytest

from trendscope.errors import InsufficientDataError
from trendscope.strategy.models import (
    Candle,
    IndicatorSnapshot,
    Recommendation,
    RecommendationClass,
    ScoreBreakdown,
    Severity,
    SignalStatus,
    SignalWarning,
)
from trendscope.strategy.multi_timeframe import (
    Action,
    Alignment,
    Confidence,
    analyze_multi_timeframe,
    reduce_recommendations,
)

SB = RecommendationClass.STRONG_BUY
B = RecommendationClass.BUY
H = RecommendationClass.HOLD
S = RecommendationClass.SELL
SS = RecommendationClass.STRONG_SELL

_STATUS = {
    SB: SignalStatus.STRONG_BUY_NOW,
    B: SignalStatus.BUY_PARTIAL,
    H: SignalStatus.HOLD,
    S: SignalStatus.SELL,
    SS: SignalStatus.STRONG_SELL,
}
_SCORE = {SB: 70.0, B: 55.0, H: 45.0, S: 35.0, SS: 20.0}


def _rec(rec_class, entry_quality=60.0, warnings=()):
    return Recommendation(
        score=_SCORE[rec_class],
        recommendation_class=rec_class,
        signal_status=_STATUS[rec_class],
        entry_quality=entry_quality,
        warnings=tuple(warnings),
        stop_loss=None,
        breakdown=ScoreBreakdown(50, 50, 50, 50, 50, 50),
        volume_analysis=None,
        snapshot=IndicatorSnapshot(rsi=50.0, adx=20.0, macd_histogram=0.0),
        current_price=100.0,
        timestamp=0,
    )


def _unavailable():
    return Recommendation(
        score=None,
        recommendation_class=None,
        signal_status=None,
        entry_quality=None,
        warnings=(),
        stop_loss=None,
        breakdown=ScoreBreakdown(None, None, None, None, None, None),
        volume_analysis=None,
        snapshot=IndicatorSnapshot(rsi=None, adx=None, macd_histogram=None),
        current_price=100.0,
        timestamp=0,
    )


def _reduce(*classes, entry_quality=60.0):
    return reduce_recommendations(
        {f"r{i}": _rec(c, entry_quality) for i, c in enumerate(classes)}
    )


_HIGH = SignalWarning(kind="RSI_EXTREME", severity=Severity.HIGH, message="RSI extremely overbought")


class TestAlignment:
    def test_all_strong_buy_with_good_entry(self):
        result = _reduce(SB, SB, SB, entry_quality=70.0)
        assert result.alignment is Alignment.ALL_STRONG_BUY
        assert result.confidence is Confidence.VERY_HIGH
        assert result.recommended_action is Action.STRONG_BUY_NOW

    def test_all_strong_buy_with_poor_entry(self):
        result = _reduce(SB, SB, entry_quality=40.0)
        assert result.recommended_action is Action.WATCH_FOR_PULLBACK

    def test_all_bullish(self):
        result = _reduce(SB, B, B, entry_quality=60.0)
        assert result.alignment is Alignment.ALL_BULLISH
        assert result.confidence is Confidence.HIGH
        assert result.recommended_action is Action.BUY_PARTIAL

    def test_all_bullish_poor_entry(self):
        result = _reduce(B, B, entry_quality=45.0)
        assert result.recommended_action is Action.WATCH

    def test_all_bearish(self):
        result = _reduce(S, SS)
        assert result.alignment is Alignment.ALL_BEARISH
        assert result.recommended_action is Action.SELL

    def test_mostly_bullish_medium(self):
        result = _reduce(B, B, S)
        assert result.alignment is Alignment.MOSTLY_BULLISH
        assert result.confidence is Confidence.MEDIUM
        assert result.recommended_action is Action.WATCH

    def test_mostly_bullish_low(self):
        result = _reduce(B, B, H, H, S)
        assert result.alignment is Alignment.MOSTLY_BULLISH
        assert result.confidence is Confidence.LOW

    def test_mostly_bearish_waits(self):
        result = _reduce(S, S, B)
        assert result.alignment is Alignment.MOSTLY_BEARISH
        assert result.recommended_action is Action.WAIT

    @pytest.mark.parametrize("classes", [(B, S), (B, H, H, S), (H, H)])
    def test_conflicting(self, classes):
        result = _reduce(*classes)
        assert result.alignment is Alignment.CONFLICTING
        assert result.confidence is Confidence.LOW
        assert result.recommended_action is Action.WAIT

    def test_averages(self):
        result = reduce_recommendations({"1h": _rec(SB, 70.0), "4h": _rec(B, 50.0)})
        assert result.avg_score == pytest.approx(62.5)
        assert result.avg_entry_quality == pytest.approx(60.0)


class TestWarnings:
    def test_high_warning_downgrades_buy(self):
        result = reduce_recommendations(
            {"1h": _rec(SB, 80.0, [_HIGH]), "4h": _rec(SB, 80.0)}
        )
        assert result.recommended_action is Action.WATCH_FOR_PULLBACK
        assert "downgraded" in result.action_reason

    def test_consolidated_by_kind(self):
        medium = SignalWarning(kind="ADX_EXTREME", severity=Severity.MEDIUM, message="ADX extreme")
        result = reduce_recommendations(
            {"1h": _rec(B, warnings=[_HIGH, medium]), "4h": _rec(B, warnings=[_HIGH])}
        )
        kinds = [w.kind for w in result.consolidated_warnings]
        assert kinds == ["RSI_EXTREME", "ADX_EXTREME"]
        first = result.consolidated_warnings[0]
        assert first.resolution == "1h"
        assert first.message.startswith("[1h] ")


class TestUnavailable:
    def test_excluded_from_vote(self):
        result = reduce_recommendations({"1h": _rec(SB, 70.0), "1d": _unavailable()})
        assert set(result.recommendations) == {"1h"}
        assert "1d" in result.errors
        assert result.alignment is Alignment.ALL_STRONG_BUY

    def test_none_available(self):
        with pytest.raises(InsufficientDataError):
            reduce_recommendations({"1h": _unavailable()})


class TestAnalyzeMultiTimeframe:
    def test_bad_resolution_does_not_fail_the_rest(self):
        good = []
        for i in range(120):
            c = 100 * 1.01 ** i
            good.append(Candle(i * 3_600_000, c, c * 1.002, c * 0.998, c, 1000.0))
        out_of_order = [good[1], good[0]]

        result = analyze_multi_timeframe(
            {"1h": good, "4h": good[:30], "1d": out_of_order}
        )
        assert set(result.recommendations) == {"1h"}
        assert set(result.errors) == {"4h", "1d"}
        assert "not after" in result.errors["1d"]
