"""priceaction — application entry point.

Boots the FastAPI server and provides the CLI entry point for analyze,
backtest, predict and serve modes.
"""

import logging

from fastapi import FastAPI

from priceaction.api.routers import router

app = FastAPI(title="priceaction API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("priceaction")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from priceaction.config import load_backtest_settings, load_config

    parser = argparse.ArgumentParser(description="Price-action analysis and backtesting")
    parser.add_argument(
        "--mode",
        choices=["analyze", "backtest", "predict", "serve"],
        default="serve",
        help="Run mode (default: serve)",
    )
    parser.add_argument("--ltf", help="Lower-timeframe candle CSV")
    parser.add_argument("--htf", help="Higher-timeframe candle CSV")
    parser.add_argument("--settings", help="Backtest settings JSON")
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    settings = load_backtest_settings(args.settings or config.settings_path)

    if args.mode == "serve":
        _run_server(config, settings)
        return

    if not args.ltf:
        parser.error(f"--ltf is required in {args.mode} mode")
    if args.mode != "analyze" and not args.htf:
        parser.error(f"--htf is required in {args.mode} mode")

    if args.mode == "analyze":
        _run_analyze(args.ltf)
    elif args.mode == "backtest":
        _run_backtest(args.ltf, args.htf, settings)
    else:
        _run_predict(args.ltf, args.htf, settings)


def _run_server(config, settings) -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    from priceaction.advisor.client import AdvisorClient
    from priceaction.api.routers import configure_routers

    advisor = AdvisorClient(config) if config.advisor_enabled else None
    if advisor is None:
        logger.info("ADVISOR_API_KEY not set, /advice endpoints disabled.")
    configure_routers(advisor=advisor, settings=settings)

    logger.info("API available at http://%s:%d", config.api_host, config.api_port)
    uvicorn.run(app, host=config.api_host, port=config.api_port, log_level="info")


def _run_analyze(ltf_path: str) -> None:
    """Print the patterns detected on a candle file."""
    from priceaction.data.csv_loader import load_candles_csv
    from priceaction.strategy.analyzer import MultiTimeframeAnalyzer

    candles = load_candles_csv(ltf_path)
    result = MultiTimeframeAnalyzer().analyze(candles)
    for p in result.patterns:
        flag = " *" if p.is_key_signal else ""
        print(f"{p.candle.time}  {p.name:<24} {p.direction:<8} P{p.priority}{flag}")
    if result.summary is not None:
        print(f"Trend: {result.summary.trend}, RSI: {result.summary.rsi}")
    logger.info(
        "Analysis complete: %d pattern(s), %d trendline(s)",
        len(result.patterns), len(result.trendlines),
    )


def _run_backtest(ltf_path: str, htf_path: str, settings) -> None:
    """Load candles and run a backtest."""
    from priceaction.backtest.engine import BacktestEngine
    from priceaction.cli.report import format_report
    from priceaction.data.csv_loader import load_candles_csv

    ltf = load_candles_csv(ltf_path)
    htf = load_candles_csv(htf_path)
    result = BacktestEngine(settings).run(ltf, htf)
    format_report(result)


def _run_predict(ltf_path: str, htf_path: str, settings) -> None:
    """Load candles and print the current trade plan."""
    from priceaction.backtest.predict import predict_next_move
    from priceaction.cli.report import format_prediction
    from priceaction.data.csv_loader import load_candles_csv

    result = predict_next_move(load_candles_csv(ltf_path), load_candles_csv(htf_path), settings)
    format_prediction(result)


if __name__ == "__main__":
    _run_cli()
