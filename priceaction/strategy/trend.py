"""Trend classification — EMA-based bias on three horizons.

Provides:
- ``classify_htf_trend()`` / ``precompute_htf_trend()``: EMA20 vs EMA52
  divergence, the context filter for backtests.
- ``short_term_trend()``: EMA20 monotonic over the last 5 bars, the context
  for pattern detectors.
- ``long_term_trend()``: EMA200 slope over 10 bars, used to flag key
  signals.
"""

from dataclasses import dataclass
from typing import Literal, Optional

from priceaction.strategy.indicators import calculate_ema, last_valid, rsi_status
from priceaction.strategy.models import Candle

HtfTrend = Literal["Uptrend", "Downtrend", "Range"]
Direction = Literal["UP", "DOWN", "RANGE"]

HTF_THRESHOLD = 0.002
LONG_TERM_SLOPE_THRESHOLD = 0.001
LONG_TERM_MIN_BARS = 210


@dataclass(frozen=True)
class TrendState:
    """Trend context available to detectors at one bar."""

    short_term: Direction
    long_term: Direction


@dataclass(frozen=True)
class TimeframeSummary:
    """Per-timeframe trend and momentum snapshot."""

    timeframe: str
    trend: HtfTrend
    rsi: Literal["Overbought", "Oversold", "Neutral"]


def classify_htf_trend(ema_fast: Optional[float], ema_slow: Optional[float]) -> HtfTrend:
    """Uptrend / Downtrend when EMA20 is more than 0.2 % away from EMA52."""
    if ema_fast is None or ema_slow is None or ema_slow == 0:
        return "Range"
    diff = (ema_fast - ema_slow) / ema_slow
    if diff > HTF_THRESHOLD:
        return "Uptrend"
    if diff < -HTF_THRESHOLD:
        return "Downtrend"
    return "Range"


def precompute_htf_trend(candles: list[Candle]) -> list[HtfTrend]:
    """Trend classification for every bar, each using only bars up to it."""
    ema20 = calculate_ema(candles, 20)
    ema52 = calculate_ema(candles, 52)
    return [classify_htf_trend(f, s) for f, s in zip(ema20, ema52)]


def get_trend(candles: list[Candle]) -> HtfTrend:
    """Trend classification of the latest bar."""
    if len(candles) < 52:
        return "Range"
    return classify_htf_trend(
        last_valid(calculate_ema(candles, 20)),
        last_valid(calculate_ema(candles, 52)),
    )


def is_strong_trend(
    ema: list[Optional[float]],
    index: int,
    direction: Literal["up", "down"],
    lookback: int = 5,
) -> bool:
    """EMA strictly rising (or falling) across the last *lookback* bars."""
    start = index - lookback
    if start < 0 or index >= len(ema):
        return False
    window = ema[start : index + 1]
    if any(v is None for v in window):
        return False
    for prev, curr in zip(window, window[1:]):
        if direction == "up" and curr <= prev:
            return False
        if direction == "down" and curr >= prev:
            return False
    return True


def short_term_trend(ema20: list[Optional[float]], index: int) -> Direction:
    if is_strong_trend(ema20, index, "up"):
        return "UP"
    if is_strong_trend(ema20, index, "down"):
        return "DOWN"
    return "RANGE"


def long_term_trend(
    ema200: list[Optional[float]], index: int, lookback: int = 10,
) -> Direction:
    """Average EMA200 slope per bar over *lookback* bars, ±0.1 %/bar.

    Needs more than ``LONG_TERM_MIN_BARS`` bars of history.
    """
    if index < LONG_TERM_MIN_BARS or index >= len(ema200):
        return "RANGE"
    now, then = ema200[index], ema200[index - lookback]
    if now is None or then is None or then == 0:
        return "RANGE"
    slope = (now - then) / then / lookback
    if slope > LONG_TERM_SLOPE_THRESHOLD:
        return "UP"
    if slope < -LONG_TERM_SLOPE_THRESHOLD:
        return "DOWN"
    return "RANGE"


def summarize_timeframe(timeframe: str, candles: list[Candle]) -> TimeframeSummary:
    return TimeframeSummary(
        timeframe=timeframe,
        trend=get_trend(candles),
        rsi=rsi_status(candles),
    )
