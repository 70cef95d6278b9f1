"""Trendline and channel fitting through confirmed swing points.

Lines are fitted as ``price = slope × time + intercept`` with *time* in
unix seconds.  UP lines join swing lows, DOWN lines join swing highs.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from priceaction.strategy.indicators import calculate_atr
from priceaction.strategy.models import Candle, ChannelLine, SwingPoint, TrendLine

logger = logging.getLogger("priceaction.trendlines")

_DAY = 86_400
_WEEK = 7 * _DAY


@dataclass(frozen=True)
class TrendlineSettings:
    """Tolerances used when fitting and de-duplicating lines."""

    touch_atr_ratio: float = 0.3
    max_length: int = 250
    slope_tolerance: float = 0.1
    intercept_tolerance: float = 0.1
    max_lines_per_direction: int = 5
    min_touches: int = 3
    atr_period: int = 14


def fit_trendlines(
    candles: list[Candle],
    swings: list[SwingPoint],
    settings: Optional[TrendlineSettings] = None,
    atr: Optional[list[Optional[float]]] = None,
    timeframe: Optional[str] = None,
) -> list[TrendLine]:
    """Fit, validate, de-duplicate and rank trendlines.

    Args:
        candles: Candle history; only these bars are read.
        swings: Confirmed swing points to build lines from.
        settings: Fitting tolerances (defaults to ``TrendlineSettings()``).
        atr: Pre-computed ATR aligned with *candles* (computed when omitted).
        timeframe: Optional label copied onto each line.

    Returns:
        UP lines followed by DOWN lines, each group sorted by strength then
        duration, at most ``max_lines_per_direction`` per group.
    """
    settings = settings or TrendlineSettings()
    if len(candles) < 2 or len(swings) < settings.min_touches:
        return []
    if atr is None:
        atr = calculate_atr(candles, settings.atr_period)

    fallback = _fallback_tolerance_base(candles, atr)

    def tolerance(index: int) -> float:
        value = atr[index] if index < len(atr) else None
        base = value if value is not None else fallback
        return settings.touch_atr_ratio * base

    result: list[TrendLine] = []
    for line_type, swing_type in (("UP", "low"), ("DOWN", "high")):
        points = sorted(
            (s for s in swings if s.swing_type == swing_type and s.index < len(candles)),
            key=lambda s: s.index,
        )
        candidates = _candidate_lines(candles, points, line_type, tolerance, settings, timeframe)
        kept = _dedupe(candidates, settings)
        result.extend(kept[: settings.max_lines_per_direction])
    logger.debug("Fitted %d trendline(s) from %d swing(s)", len(result), len(swings))
    return result


def _fallback_tolerance_base(candles: list[Candle], atr: list[Optional[float]]) -> float:
    valid = [a for a in atr if a is not None]
    if valid:
        return sum(valid) / len(valid)
    return sum(c.bar_range for c in candles) / len(candles)


def _candidate_lines(candles, points, line_type, tolerance, settings, timeframe):
    lines: list[TrendLine] = []
    for a in range(len(points)):
        for b in range(a + 1, len(points)):
            p1, p2 = points[a], points[b]
            dt = p2.time - p1.time
            if dt <= 0:
                continue
            slope = (p2.price - p1.price) / dt
            if line_type == "UP" and slope <= 0:
                continue
            if line_type == "DOWN" and slope >= 0:
                continue
            intercept = p1.price - slope * p1.time

            touches = tuple(
                s for s in points
                if s is p1 or s is p2
                or abs(s.price - (slope * s.time + intercept)) <= tolerance(s.index)
            )
            if len(touches) < settings.min_touches:
                continue
            if touches[-1].index - touches[0].index > settings.max_length:
                continue

            span = touches[-1].time - touches[0].time
            bonus = (1 if span > _DAY else 0) + (1 if span > _WEEK else 0)
            strength = min(5, len(touches) - 1 + bonus)

            lines.append(TrendLine(
                p1=p1,
                p2=p2,
                touches=touches,
                line_type=line_type,
                slope=slope,
                intercept=intercept,
                strength=strength,
                channel_line=_channel_line(candles, touches, line_type, slope, intercept),
                timeframe=timeframe,
            ))
    return lines


def _channel_line(candles, touches, line_type, slope, intercept) -> Optional[ChannelLine]:
    """Parallel line through the most extreme opposite-side price."""
    window = candles[touches[0].index : touches[-1].index + 1]
    if not window:
        return None
    if line_type == "UP":
        anchor = max(window, key=lambda c: c.high - (slope * c.time + intercept))
        anchor_price = anchor.high
    else:
        anchor = min(window, key=lambda c: c.low - (slope * c.time + intercept))
        anchor_price = anchor.low
    offset = anchor_price - (slope * anchor.time + intercept)
    return ChannelLine(
        slope=slope,
        intercept=intercept + offset,
        anchor_time=anchor.time,
        anchor_price=anchor_price,
    )


def _avg_touch_price(line: TrendLine) -> float:
    return sum(t.price for t in line.touches) / len(line.touches)


def is_same_line(a: TrendLine, b: TrendLine, settings: TrendlineSettings) -> bool:
    """Whether two lines describe the same structure.

    Both lines are compared over the longer one's span: the slope gap
    integrated over that span and the gap between their projected prices at
    its start must each stay under the configured fraction of price.
    """
    longer = a if a.duration >= b.duration else b
    avg_price = (_avg_touch_price(a) + _avg_touch_price(b)) / 2
    if avg_price == 0:
        return False
    span = longer.duration
    start = longer.touches[0].time
    slope_gap = abs(a.slope - b.slope) * span / avg_price
    level_gap = abs(a.price_at(start) - b.price_at(start)) / avg_price
    return slope_gap < settings.slope_tolerance and level_gap < settings.intercept_tolerance


def _dedupe(lines: list[TrendLine], settings: TrendlineSettings) -> list[TrendLine]:
    ranked = sorted(lines, key=lambda ln: (-ln.strength, -ln.duration, ln.start_index))
    kept: list[TrendLine] = []
    for line in ranked:
        if any(is_same_line(line, other, settings) for other in kept):
            continue
        kept.append(line)
    return kept
