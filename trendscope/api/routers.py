"""Analysis API routers — /score, /divergence, /patterns, /breakout, /backtest,
/multi-timeframe and /analysis endpoints.

No business logic. Parses candle payloads, delegates to the engine and
serialises the frozen result dataclasses.
"""

import dataclasses
import logging
import math
from enum import Enum
from typing import Any, Optional

from fastapi import APIRouter, Query

from trendscope import engine
from trendscope.backtest.engine import TriggerCondition
from trendscope.config import BacktestConfig
from trendscope.errors import InvalidInputError
from trendscope.strategy.models import Candle

logger = logging.getLogger("trendscope.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_provider = None  # Set via configure_routers()
_candle_count = 500


def configure_routers(provider=None, candle_count: Optional[int] = None) -> None:
    """Inject dependencies from the application startup.

    Args:
        provider: A ``MarketDataProvider`` (or duck-type for tests) used by
            the ``/analysis`` endpoint.
        candle_count: Candles fetched per resolution.
    """
    global _provider, _candle_count  # noqa: PLW0603
    _provider = provider
    if candle_count is not None:
        _candle_count = candle_count


# ── Serialisation helpers ────────────────────────────────────────────────


def to_jsonable(obj: Any) -> Any:
    """Convert result dataclasses into JSON-safe structures.

    Enums become their values; infinite floats become ``"inf"`` /
    ``"-inf"`` and NaN becomes ``None``.
    """
    if isinstance(obj, Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, dict):
        return {str(to_jsonable(k)): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    if isinstance(obj, float):
        if math.isnan(obj):
            return None
        if math.isinf(obj):
            return "inf" if obj > 0 else "-inf"
    return obj


def _parse_candles(raw: Any, field_name: str = "candles") -> list[Candle]:
    if not isinstance(raw, list) or not raw:
        raise InvalidInputError(f"'{field_name}' must be a non-empty list of candles")
    candles = []
    for item in raw:
        if not isinstance(item, dict):
            raise InvalidInputError(f"'{field_name}' entries must be objects")
        candles.append(Candle.from_mapping(item))
    return candles


def _number_field(raw: Any, field_name: str, integer: bool = False):
    """Validate an optional numeric body field; ``None`` passes through."""
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise InvalidInputError(f"'{field_name}' must be a number, got {raw!r}")
    if integer:
        if isinstance(raw, float) and not raw.is_integer():
            raise InvalidInputError(f"'{field_name}' must be a whole number, got {raw!r}")
        return int(raw)
    return float(raw)


def _recommendation_payload(rec) -> dict:
    data = to_jsonable(rec)
    data["available"] = rec.available
    return data


# ── Endpoints ────────────────────────────────────────────────────────────


@router.post("/score")
async def post_score(body: dict):
    """Composite recommendation for the latest candle in ``body["candles"]``."""
    rec = engine.score(_parse_candles(body.get("candles")))
    return _recommendation_payload(rec)


@router.post("/divergence")
async def post_divergence(body: dict):
    summary = engine.detect_divergence(_parse_candles(body.get("candles")))
    return to_jsonable(summary)


@router.post("/patterns")
async def post_patterns(body: dict):
    return to_jsonable(engine.detect_patterns(_parse_candles(body.get("candles"))))


@router.post("/breakout")
async def post_breakout(body: dict):
    return to_jsonable(engine.detect_breakout(_parse_candles(body.get("candles"))))


@router.post("/backtest")
async def post_backtest(body: dict):
    """Replay a trigger over ``body["candles"]``.

    Expects ``{"candles": [...], "trigger": {"recommendation_class": ...,
    "signal_status": ..., "min_score": ...}, "hold_period": 24,
    "window_size": 100}``.
    """
    candles = _parse_candles(body.get("candles"))
    trigger_raw = body.get("trigger") or {}
    if not isinstance(trigger_raw, dict):
        raise InvalidInputError("'trigger' must be an object")
    trigger = TriggerCondition(
        recommendation_class=trigger_raw.get("recommendation_class"),
        signal_status=trigger_raw.get("signal_status"),
        min_score=_number_field(trigger_raw.get("min_score"), "trigger.min_score"),
    )
    defaults = BacktestConfig()
    hold_period = _number_field(body.get("hold_period"), "hold_period", integer=True)
    window_size = _number_field(body.get("window_size"), "window_size", integer=True)
    config = BacktestConfig(
        hold_period=defaults.hold_period if hold_period is None else hold_period,
        window_size=defaults.window_size if window_size is None else window_size,
    )
    result = engine.backtest(candles, trigger, config)
    data = to_jsonable(result)
    data["trigger"] = trigger.describe()
    return data


@router.post("/multi-timeframe")
async def post_multi_timeframe(body: dict):
    """Expects ``{"timeframes": {"1h": [...], "4h": [...]}}``."""
    timeframes = body.get("timeframes")
    if not isinstance(timeframes, dict) or not timeframes:
        raise InvalidInputError("'timeframes' must map resolutions to candle lists")
    parsed = {res: _parse_candles(raw, f"timeframes.{res}") for res, raw in timeframes.items()}
    result = engine.analyze_multi_timeframe(parsed)
    data = to_jsonable(result)
    for res, rec in result.recommendations.items():
        data["recommendations"][res]["available"] = rec.available
    return data


@router.get("/analysis/{symbol}/{resolution}")
async def get_analysis(
    symbol: str,
    resolution: str,
    count: Optional[int] = Query(default=None, ge=1, le=1000),
):
    """Fetch candles from the configured provider and run every detector."""
    if _provider is None:
        return {"error": "No market data provider configured"}

    candles = await _provider.fetch_candles(symbol, resolution, count or _candle_count)
    logger.info("Analysing %s %s over %d candles", symbol, resolution, len(candles))

    payload: dict = {
        "symbol": symbol.upper(),
        "resolution": resolution,
        "recommendation": _recommendation_payload(engine.score(candles)),
    }
    for key, fn in (
        ("divergence", engine.detect_divergence),
        ("patterns", engine.detect_patterns),
        ("breakout", engine.detect_breakout),
    ):
        try:
            payload[key] = to_jsonable(fn(candles))
        except InvalidInputError:
            raise
        except ValueError as exc:
            payload[key] = {"error": str(exc)}
    return payload
