"""API routers — /analyze, /backtest, /predict and /advice endpoints.

No business logic.  Parses candle payloads and delegates to the analyzer,
the backtest and prediction engines, and the advisor client.
"""

import asyncio
import dataclasses
import logging
from typing import Optional

import pandas as pd
from fastapi import APIRouter

from priceaction.advisor.client import AdvisorClient
from priceaction.backtest.engine import run_backtest_async
from priceaction.backtest.predict import predict_next_move
from priceaction.backtest.settings import BacktestSettings
from priceaction.data.csv_loader import frame_to_candles
from priceaction.strategy.analyzer import MultiTimeframeAnalyzer
from priceaction.strategy.models import Candle

logger = logging.getLogger("priceaction.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_advisor: Optional[AdvisorClient] = None  # Set via configure_routers()
_default_settings: BacktestSettings = BacktestSettings()


def configure_routers(
    advisor: Optional[AdvisorClient] = None,
    settings: Optional[BacktestSettings] = None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        advisor: An ``AdvisorClient`` (or duck-type for tests).
        settings: Default backtest settings for requests without overrides.
    """
    global _advisor, _default_settings  # noqa: PLW0603
    _advisor = advisor
    if settings is not None:
        _default_settings = settings


# ── Payload helpers ──────────────────────────────────────────────────────


def parse_candles(raw: list[dict]) -> list[Candle]:
    """Turn a JSON list of candle objects into sorted ``Candle`` values."""
    if not raw:
        return []
    return frame_to_candles(pd.DataFrame(raw))


def _settings_from(body: dict) -> BacktestSettings:
    overrides = body.get("settings") or {}
    if not overrides:
        return _default_settings
    merged = {**_default_settings.to_dict(), **overrides}
    return BacktestSettings.from_dict(merged)


def _error(*errors: str) -> dict:
    return {"status": "error", "errors": list(errors)}


# ── Analysis ─────────────────────────────────────────────────────────────


@router.post("/analyze")
async def analyze(body: dict):
    """Detect patterns, swings and trendlines on one candle series."""
    try:
        candles = parse_candles(body.get("candles", []))
    except ValueError as exc:
        return _error(str(exc))
    result = await asyncio.to_thread(
        MultiTimeframeAnalyzer().analyze, candles, body.get("timeframe"),
    )
    return dataclasses.asdict(result)


@router.post("/analyze/multi")
async def analyze_multi(body: dict):
    """Analyze several timeframes concurrently.

    Body: ``{"series": {"1h": [...], "4h": [...]}}``.
    """
    try:
        series = {
            name: parse_candles(raw) for name, raw in (body.get("series") or {}).items()
        }
    except ValueError as exc:
        return _error(str(exc))
    results = await MultiTimeframeAnalyzer().analyze_timeframes(series)
    return {name: dataclasses.asdict(r) for name, r in results.items()}


# ── Simulation ───────────────────────────────────────────────────────────


@router.post("/backtest")
async def backtest(body: dict):
    """Run a backtest in a worker thread and return the full result."""
    try:
        ltf = parse_candles(body.get("ltf", []))
        htf = parse_candles(body.get("htf", []))
        settings = _settings_from(body)
        result = await run_backtest_async(ltf, htf, settings)
    except (TypeError, ValueError) as exc:
        return _error(str(exc))
    logger.info("Backtest via API: %d trades", result.kpis.total_trades)
    return {"status": "ok", **result.to_dict()}


@router.post("/predict")
async def predict(body: dict):
    """Propose a trade plan for the latest bar."""
    try:
        ltf = parse_candles(body.get("ltf", []))
        htf = parse_candles(body.get("htf", []))
        settings = _settings_from(body)
        result = await asyncio.to_thread(predict_next_move, ltf, htf, settings)
    except (TypeError, ValueError) as exc:
        return _error(str(exc))
    return result.to_dict()


# ── Advisor ──────────────────────────────────────────────────────────────


@router.post("/advice/pattern")
async def advice_pattern(body: dict):
    """Ask the advisor for a plan around the pattern at ``index``."""
    if _advisor is None:
        return _error("Advisor is not configured")
    try:
        candles = parse_candles(body.get("candles", []))
        index = int(body["index"])
    except (KeyError, TypeError, ValueError) as exc:
        return _error(f"Invalid request: {exc}")

    result = await asyncio.to_thread(MultiTimeframeAnalyzer().analyze, candles[: index + 1])
    pattern = next((p for p in result.patterns if p.index == index), None)
    if pattern is None:
        return _error(f"No pattern detected at index {index}")

    reply = await _advisor.get_pattern_strategy(candles, pattern)
    if not reply.ok:
        return _error(reply.error)
    return {"status": "ok", "pattern": dataclasses.asdict(pattern), "text": reply.text}
