"""Tests for trendscope.cli.report console output."""

import math

from trendscope import engine
from trendscope.backtest.engine import TriggerCondition
from trendscope.cli import report
from trendscope.config import BacktestConfig
from trendscope.strategy.models import Candle


def _candles(n: int) -> list[Candle]:
    out = []
    for i in range(n):
        c = 100 + 6 * math.sin(i / 6) + 0.1 * i
        o = 100 + 6 * math.sin((i - 1) / 6) + 0.1 * (i - 1)
        out.append(
            Candle(1_700_000_000_000 + i * 3_600_000, o, max(o, c) + 0.4, min(o, c) - 0.4, c, 500.0 + i)
        )
    return out


class TestReport:
    def test_recommendation(self, capsys):
        text = report.print_recommendation(engine.score(_candles(150)), label="1h")
        assert "Signal 1h" in text
        assert "Score:" in text
        assert capsys.readouterr().out.strip() == text.strip()

    def test_unavailable_recommendation(self):
        text = report.print_recommendation(engine.score(_candles(20)))
        assert "not enough history" in text

    def test_detectors(self):
        candles = _candles(150)
        assert "Divergence" in report.print_divergence(engine.detect_divergence(candles))
        assert "Position:" in report.print_patterns(engine.detect_patterns(candles))
        assert "Direction:" in report.print_breakout(engine.detect_breakout(candles))

    def test_backtest(self):
        result = engine.backtest(
            _candles(200),
            TriggerCondition(min_score=0),
            BacktestConfig(hold_period=12, window_size=60),
        )
        text = report.print_backtest(result)
        assert "score>=0" in text
        assert "Win rate:" in text

    def test_multi_timeframe(self):
        result = engine.analyze_multi_timeframe({"1h": _candles(150), "4h": _candles(10)})
        text = report.print_multi_timeframe(result)
        assert "Alignment:" in text
        assert "4h" in text
