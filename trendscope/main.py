"""Trendscope — application entry point.

Boots the FastAPI analysis server and provides the CLI entry point for
scoring, detectors, backtests and multi-timeframe checks.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from trendscope.api.routers import router
from trendscope.errors import (
    ConfigurationError,
    InsufficientDataError,
    InvalidInputError,
)

app = FastAPI(title="Trendscope Analysis API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("trendscope")


@app.exception_handler(InvalidInputError)
@app.exception_handler(InsufficientDataError)
async def _unprocessable(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": str(exc)})


@app.exception_handler(ConfigurationError)
async def _bad_configuration(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.get("/health")
async def health():
    return {"status": "ok"}


def _load_candles(args, config, resolution: str):
    """Candles from ``--csv`` when given, otherwise from Binance."""
    import asyncio

    from trendscope.market.binance_client import BinanceClient
    from trendscope.market.csv_loader import load_candles_csv

    if args.csv:
        return load_candles_csv(args.csv)
    client = BinanceClient(config)
    return asyncio.run(client.fetch_candles(args.symbol, resolution, args.count or config.candle_count))


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the requested analysis."""
    import argparse
    import asyncio

    from trendscope import engine
    from trendscope.backtest.engine import BacktestEngine, TriggerCondition
    from trendscope.cli import report
    from trendscope.config import BacktestConfig, load_config
    from trendscope.errors import TrendscopeError

    parser = argparse.ArgumentParser(description="Trendscope signal engine")
    parser.add_argument(
        "command",
        choices=["score", "divergence", "patterns", "breakout", "backtest", "mtf", "serve"],
    )
    parser.add_argument("--symbol", default="BTC", help="Base asset or pair (default: BTC)")
    parser.add_argument("--resolution", default="1h", help="Candle resolution (default: 1h)")
    parser.add_argument("--csv", help="Read candles from a CSV file instead of Binance")
    parser.add_argument("--count", type=int, help="Candles to fetch per resolution")
    parser.add_argument(
        "--resolutions",
        help="Comma-separated resolutions for mtf (default: DEFAULT_RESOLUTIONS)",
    )
    parser.add_argument("--trigger-class", default=None, help="Backtest trigger class, e.g. BUY")
    parser.add_argument("--trigger-status", default=None, help="Backtest trigger status")
    parser.add_argument("--min-score", type=float, default=None, help="Backtest minimum score")
    parser.add_argument("--hold", type=int, default=24, help="Backtest hold period in candles")
    parser.add_argument(
        "--compare",
        action="store_true",
        help="Backtest the preset triggers side by side",
    )
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "serve":
        import uvicorn

        from trendscope.api.routers import configure_routers
        from trendscope.market.binance_client import BinanceClient

        configure_routers(provider=BinanceClient(config), candle_count=config.candle_count)
        logger.info("Trendscope API listening on port %d", config.api_port)
        uvicorn.run(app, host="0.0.0.0", port=config.api_port, log_level=config.log_level.lower())
        return

    try:
        if args.command == "mtf":
            from trendscope.market.binance_client import BinanceClient

            resolutions = (
                [r.strip() for r in args.resolutions.split(",") if r.strip()]
                if args.resolutions
                else list(config.default_resolutions)
            )
            client = BinanceClient(config)
            candles_by_res = asyncio.run(
                client.fetch_many(args.symbol, resolutions, args.count or config.candle_count)
            )
            report.print_multi_timeframe(engine.analyze_multi_timeframe(candles_by_res))
            return

        candles = _load_candles(args, config, args.resolution)
        if args.command == "score":
            report.print_recommendation(engine.score(candles), label=args.resolution)
        elif args.command == "divergence":
            report.print_divergence(engine.detect_divergence(candles))
        elif args.command == "patterns":
            report.print_patterns(engine.detect_patterns(candles))
        elif args.command == "breakout":
            report.print_breakout(engine.detect_breakout(candles))
        elif args.command == "backtest":
            bt = BacktestEngine(config=BacktestConfig(hold_period=args.hold))
            if args.compare:
                for result in bt.compare_triggers(candles).values():
                    report.print_backtest(result)
            else:
                no_criteria = args.trigger_status is None and args.min_score is None
                trigger = TriggerCondition(
                    recommendation_class=args.trigger_class or ("BUY" if no_criteria else None),
                    signal_status=args.trigger_status,
                    min_score=args.min_score,
                )
                report.print_backtest(bt.run(candles, trigger))
    except TrendscopeError as exc:
        logger.error("%s failed: %s", args.command, exc)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    _run_cli()
