"""Price-action pattern detectors — a registry of tagged functions.

Every detector has the signature ``(candles, i, context) -> DetectedPattern
| None`` and reads only ``candles[: i + 1]`` plus the confirmed context
built for bar *i*.  Detectors are grouped in three families:

- **Reversal**: single/multi-bar rejection shapes, scored from a base value
  plus bonuses for swing proximity, volume, wick shape and close location.
- **Trend**: continuation setups that need a strong short-term trend.
- **Range**: trap reversals that only fire while the short-term trend is
  RANGE.

``detect_at()`` runs the whole registry on one bar and keeps the pattern
with the highest priority.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Callable, Optional

from priceaction.strategy.models import (
    BEARISH,
    BULLISH,
    RANGE,
    REVERSAL,
    TREND,
    Candle,
    DetectedPattern,
    PatternStrength,
    SwingPoint,
    TrendLine,
)
from priceaction.strategy.swings import latest_swing
from priceaction.strategy.trend import is_strong_trend


@dataclass(frozen=True)
class PatternContext:
    """Everything a detector may know at bar *i*.

    Indicator series may be longer than ``i + 1``; detectors only index
    positions up to *i*.  ``swings`` and ``trendlines`` hold only what was
    confirmed by bar *i*.
    """

    ema20: list[Optional[float]]
    atr: list[Optional[float]]
    swings: tuple[SwingPoint, ...] = ()
    trendlines: tuple[TrendLine, ...] = ()
    short_term_trend: str = "RANGE"
    long_term_trend: str = "RANGE"


Detector = Callable[[list[Candle], int, PatternContext], Optional[DetectedPattern]]


@dataclass(frozen=True)
class DetectorEntry:
    key: str
    family: str
    detect: Detector = field(compare=False)


PATTERN_DETECTORS: list[DetectorEntry] = []


def register(key: str, family: str) -> Callable[[Detector], Detector]:
    """Decorator adding a detector to ``PATTERN_DETECTORS``."""

    def _wrap(fn: Detector) -> Detector:
        PATTERN_DETECTORS.append(DetectorEntry(key, family, fn))
        return fn

    return _wrap


def get_detector(key: str) -> DetectorEntry:
    """Look up a registered detector by key.

    Raises ``KeyError`` if the key is not registered.
    """
    for entry in PATTERN_DETECTORS:
        if entry.key == key:
            return entry
    raise KeyError(
        f"Unknown pattern detector '{key}'. "
        f"Available: {', '.join(e.key for e in PATTERN_DETECTORS)}"
    )


# ── Scoring helpers ──────────────────────────────────────────────────────

SWING_NEAR_BONUS = 40.0
SWING_CLOSE_BONUS = 20.0
VOLUME_BONUS = 25.0
CLOSE_LOCATION_MAX = 15.0
SHAPE_MAX = 10.0
VOLUME_LOOKBACK = 20
VOLUME_SPIKE_RATIO = 1.5


def priority_from_score(score: float, floor: int = 1) -> int:
    """Bucket a 0–100 score: >75→4, >50→3, >25→2, else 1 (never below *floor*)."""
    if score > 75:
        bucket = 4
    elif score > 50:
        bucket = 3
    elif score > 25:
        bucket = 2
    else:
        bucket = 1
    return max(bucket, floor)


def _swing_proximity(
    price: float, bar_range: float, swings: tuple[SwingPoint, ...], swing_type: str,
) -> float:
    if bar_range <= 0:
        return 0.0
    distances = [abs(price - s.price) for s in swings if s.swing_type == swing_type]
    if not distances:
        return 0.0
    nearest = min(distances)
    if nearest <= 0.5 * bar_range:
        return SWING_NEAR_BONUS
    if nearest <= bar_range:
        return SWING_CLOSE_BONUS
    return 0.0


def _volume_spike(candles: list[Candle], i: int) -> float:
    if i < VOLUME_LOOKBACK:
        return 0.0
    window = candles[i - VOLUME_LOOKBACK : i]
    avg = sum(c.volume for c in window) / VOLUME_LOOKBACK
    if avg > 0 and candles[i].volume > VOLUME_SPIKE_RATIO * avg:
        return VOLUME_BONUS
    return 0.0


def _close_location(candle: Candle, direction: str) -> float:
    rng = candle.bar_range
    if rng <= 0:
        return 0.0
    if direction == BULLISH:
        return CLOSE_LOCATION_MAX * (candle.close - candle.low) / rng
    return CLOSE_LOCATION_MAX * (candle.high - candle.close) / rng


def _wick_shape(wick: float, body: float) -> float:
    if body <= 0:
        return SHAPE_MAX
    return min(SHAPE_MAX, 2.5 * wick / body)


def _score(
    candles: list[Candle],
    i: int,
    ctx: PatternContext,
    direction: str,
    base: float,
    extra: float = 0.0,
    level: Optional[float] = None,
    bar_range: Optional[float] = None,
) -> float:
    """Base + swing proximity + volume + close location, clamped to [0, 100]."""
    candle = candles[i]
    if level is None:
        level = candle.low if direction == BULLISH else candle.high
    rng = candle.bar_range if bar_range is None else bar_range
    swing_type = "low" if direction == BULLISH else "high"
    total = (
        base
        + extra
        + _swing_proximity(level, rng, ctx.swings, swing_type)
        + _volume_spike(candles, i)
        + _close_location(candle, direction)
    )
    return max(0.0, min(100.0, total))


def _make(
    candles: list[Candle],
    i: int,
    name: str,
    family: str,
    direction: str,
    score: float,
    floor: int,
    description: str,
) -> DetectedPattern:
    strength = (
        PatternStrength(long=round(score, 2), short=0.0)
        if direction == BULLISH
        else PatternStrength(long=0.0, short=round(score, 2))
    )
    return DetectedPattern(
        index=i,
        candle=candles[i],
        name=name,
        pattern_type=family,
        direction=direction,
        priority=priority_from_score(score, floor),
        strength=strength,
        description=description,
    )


def _prior_extremes(candles: list[Candle], i: int, lookback: int) -> tuple[float, float]:
    """Highest high and lowest low of the *lookback* bars before *i*."""
    window = candles[max(0, i - lookback) : i]
    if not window:
        return float("-inf"), float("inf")
    return max(c.high for c in window), min(c.low for c in window)


# ── Reversal family ──────────────────────────────────────────────────────


@register("hammer", REVERSAL)
def detect_hammer(candles, i, ctx):
    c = candles[i]
    rng = c.bar_range
    if rng == 0:
        return None
    _, prior_low = _prior_extremes(candles, i, 10)
    if not (
        c.lower_wick >= 2 * c.body
        and c.body / rng < 0.33
        and c.upper_wick / rng < 0.1
        and prior_low > c.low
    ):
        return None
    score = _score(candles, i, ctx, BULLISH, 30, _wick_shape(c.lower_wick, c.body))
    return _make(candles, i, "hammer", REVERSAL, BULLISH, score, 2,
                 "Long lower wick rejecting a new low")


@register("shootingStar", REVERSAL)
def detect_shooting_star(candles, i, ctx):
    c = candles[i]
    rng = c.bar_range
    if rng == 0:
        return None
    prior_high, _ = _prior_extremes(candles, i, 10)
    if not (
        c.upper_wick >= 2 * c.body
        and c.body / rng < 0.33
        and c.lower_wick / rng < 0.1
        and prior_high < c.high
    ):
        return None
    score = _score(candles, i, ctx, BEARISH, 30, _wick_shape(c.upper_wick, c.body))
    return _make(candles, i, "shootingStar", REVERSAL, BEARISH, score, 2,
                 "Long upper wick rejecting a new high")


def _is_bullish_engulfing(curr: Candle, prev: Candle) -> bool:
    return (
        curr.is_bullish
        and not prev.is_bullish
        and curr.close > prev.open
        and curr.open < prev.close
        and curr.body > prev.body
    )


def _is_bearish_engulfing(curr: Candle, prev: Candle) -> bool:
    return (
        not curr.is_bullish
        and prev.is_bullish
        and curr.close < prev.open
        and curr.open > prev.close
        and curr.body > prev.body
    )


@register("bullishEngulfing", REVERSAL)
def detect_bullish_engulfing(candles, i, ctx):
    if i < 1 or not _is_bullish_engulfing(candles[i], candles[i - 1]):
        return None
    c = candles[i]
    strong = 15.0 if c.body > 0.7 * c.bar_range else 0.0
    score = _score(candles, i, ctx, BULLISH, 35, strong)
    return _make(candles, i, "bullishEngulfing", REVERSAL, BULLISH, score, 2,
                 "Bullish body engulfs the previous bearish body")


@register("bearishEngulfing", REVERSAL)
def detect_bearish_engulfing(candles, i, ctx):
    if i < 1 or not _is_bearish_engulfing(candles[i], candles[i - 1]):
        return None
    c = candles[i]
    strong = 15.0 if c.body > 0.7 * c.bar_range else 0.0
    score = _score(candles, i, ctx, BEARISH, 35, strong)
    return _make(candles, i, "bearishEngulfing", REVERSAL, BEARISH, score, 2,
                 "Bearish body engulfs the previous bullish body")


@register("doji", REVERSAL)
def detect_doji(candles, i, ctx):
    """Indecision bar; direction goes to the side with the higher score."""
    c = candles[i]
    rng = c.bar_range
    if rng != 0 and c.body / rng >= 0.1:
        return None
    long_score = _score(candles, i, ctx, BULLISH, 10)
    short_score = _score(candles, i, ctx, BEARISH, 10)
    direction = BULLISH if long_score > short_score else BEARISH
    score = max(long_score, short_score)
    return DetectedPattern(
        index=i,
        candle=c,
        name="doji",
        pattern_type=REVERSAL,
        direction=direction,
        priority=priority_from_score(score),
        strength=PatternStrength(long=round(long_score, 2), short=round(short_score, 2)),
        description="Open and close nearly equal",
    )


@register("morningStar", REVERSAL)
def detect_morning_star(candles, i, ctx):
    if i < 2:
        return None
    c1, c2, c3 = candles[i - 2], candles[i - 1], candles[i]
    if c1.bar_range == 0 or c1.is_bullish or c1.body <= 0.5 * c1.bar_range:
        return None
    if c2.body >= 0.3 * c1.body or not c3.is_bullish:
        return None
    if c3.close <= (c1.open + c1.close) / 2:
        return None
    low = min(c1.low, c2.low, c3.low)
    rng = (c1.bar_range + c2.bar_range + c3.bar_range) / 3
    score = _score(candles, i, ctx, BULLISH, 40, level=low, bar_range=rng)
    return _make(candles, i, "morningStar", REVERSAL, BULLISH, score, 2,
                 "Bearish bar, small pause, bullish recovery past the midpoint")


@register("eveningStar", REVERSAL)
def detect_evening_star(candles, i, ctx):
    if i < 2:
        return None
    c1, c2, c3 = candles[i - 2], candles[i - 1], candles[i]
    if c1.bar_range == 0 or not c1.is_bullish or c1.body <= 0.5 * c1.bar_range:
        return None
    if c2.body >= 0.3 * c1.body or c3.is_bullish or c3.close == c3.open:
        return None
    if c3.close >= (c1.open + c1.close) / 2:
        return None
    high = max(c1.high, c2.high, c3.high)
    rng = (c1.bar_range + c2.bar_range + c3.bar_range) / 3
    score = _score(candles, i, ctx, BEARISH, 40, level=high, bar_range=rng)
    return _make(candles, i, "eveningStar", REVERSAL, BEARISH, score, 2,
                 "Bullish bar, small pause, bearish drop past the midpoint")


@register("outsideBar", REVERSAL)
def detect_outside_bar(candles, i, ctx):
    if i < 1:
        return None
    c, prev = candles[i], candles[i - 1]
    if not (c.high > prev.high and c.low < prev.low):
        return None
    if c.is_bullish:
        score = _score(candles, i, ctx, BULLISH, 25)
        return _make(candles, i, "bullishOutsideBar", REVERSAL, BULLISH, score, 1,
                     "Range expands both ways and closes up")
    score = _score(candles, i, ctx, BEARISH, 25)
    return _make(candles, i, "bearishOutsideBar", REVERSAL, BEARISH, score, 1,
                 "Range expands both ways and closes down")


@register("harami", REVERSAL)
def detect_harami(candles, i, ctx):
    if i < 1:
        return None
    c, prev = candles[i], candles[i - 1]
    inside = c.high < prev.high and c.low > prev.low
    if not inside:
        return None
    if c.is_bullish and not prev.is_bullish and c.close < prev.open and c.open > prev.close:
        score = _score(candles, i, ctx, BULLISH, 15)
        return _make(candles, i, "bullishHarami", REVERSAL, BULLISH, score, 1,
                     "Small bullish body inside the previous bearish bar")
    if not c.is_bullish and prev.is_bullish and c.close > prev.open and c.open < prev.close:
        score = _score(candles, i, ctx, BEARISH, 15)
        return _make(candles, i, "bearishHarami", REVERSAL, BEARISH, score, 1,
                     "Small bearish body inside the previous bullish bar")
    return None


def _is_big(c: Candle) -> bool:
    return c.bar_range > 0 and c.body > 0.6 * c.bar_range


@register("towerBottom", REVERSAL)
def detect_tower_bottom(candles, i, ctx):
    """Big bearish bar, three small bars, then a big bullish bar."""
    if i < 4:
        return None
    first, middle, last = candles[i - 4], candles[i - 3 : i], candles[i]
    if not (_is_big(first) and not first.is_bullish):
        return None
    if not (_is_big(last) and last.is_bullish and last.body >= 0.8 * first.body):
        return None
    if any(m.body >= 0.5 * first.body for m in middle):
        return None
    if last.close <= (first.open + first.close) / 2:
        return None
    low = min(c.low for c in candles[i - 4 : i + 1])
    score = _score(candles, i, ctx, BULLISH, 40, level=low)
    return _make(candles, i, "towerBottom", REVERSAL, BULLISH, score, 2,
                 "Sell-off, pause, and an equally strong rally")


@register("towerTop", REVERSAL)
def detect_tower_top(candles, i, ctx):
    """Big bullish bar, three small bars, then a big bearish bar."""
    if i < 4:
        return None
    first, middle, last = candles[i - 4], candles[i - 3 : i], candles[i]
    if not (_is_big(first) and first.is_bullish):
        return None
    if not (_is_big(last) and not last.is_bullish and last.body >= 0.8 * first.body):
        return None
    if any(m.body >= 0.5 * first.body for m in middle):
        return None
    if last.close >= (first.open + first.close) / 2:
        return None
    high = max(c.high for c in candles[i - 4 : i + 1])
    score = _score(candles, i, ctx, BEARISH, 40, level=high)
    return _make(candles, i, "towerTop", REVERSAL, BEARISH, score, 2,
                 "Rally, pause, and an equally strong sell-off")


# ── Trend family ─────────────────────────────────────────────────────────


@register("emaPullbackBull", TREND)
def detect_ema_pullback_bull(candles, i, ctx):
    ema = ctx.ema20[i]
    if ema is None or ctx.ema20[i - 1] is None or not is_strong_trend(ctx.ema20, i, "up"):
        return None
    c = candles[i]
    if not (c.low <= ema and c.is_bullish):
        return None
    strong = 20.0 if c.body > 0.5 * c.bar_range else 0.0
    score = max(0.0, min(100.0, 50 + strong + _close_location(c, BULLISH)))
    return _make(candles, i, "emaPullbackBull", TREND, BULLISH, score, 3,
                 "Pullback to a rising EMA20 rejected with a bullish bar")


@register("emaPullbackBear", TREND)
def detect_ema_pullback_bear(candles, i, ctx):
    ema = ctx.ema20[i]
    if ema is None or ctx.ema20[i - 1] is None or not is_strong_trend(ctx.ema20, i, "down"):
        return None
    c = candles[i]
    if not (c.high >= ema and c.close < c.open):
        return None
    strong = 20.0 if c.body > 0.5 * c.bar_range else 0.0
    score = max(0.0, min(100.0, 50 + strong + _close_location(c, BEARISH)))
    return _make(candles, i, "emaPullbackBear", TREND, BEARISH, score, 3,
                 "Rally to a falling EMA20 rejected with a bearish bar")


@register("bullishBreakout", TREND)
def detect_bullish_breakout(candles, i, ctx):
    if i < 1 or ctx.ema20[i] is None or not is_strong_trend(ctx.ema20, i, "up"):
        return None
    swing = latest_swing(ctx.swings, "high")
    if swing is None:
        return None
    c, prev = candles[i], candles[i - 1]
    if not (c.close > swing.price and prev.close <= swing.price):
        return None
    strong = 20.0 if c.close > c.open + 0.6 * c.bar_range else 0.0
    score = _score(candles, i, ctx, BULLISH, 45, strong)
    return _make(candles, i, "bullishBreakout", TREND, BULLISH, score, 3,
                 "Close above the latest confirmed swing high in an uptrend")


@register("bearishBreakout", TREND)
def detect_bearish_breakout(candles, i, ctx):
    if i < 1 or ctx.ema20[i] is None or not is_strong_trend(ctx.ema20, i, "down"):
        return None
    swing = latest_swing(ctx.swings, "low")
    if swing is None:
        return None
    c, prev = candles[i], candles[i - 1]
    if not (c.close < swing.price and prev.close >= swing.price):
        return None
    strong = 20.0 if c.close < c.open - 0.6 * c.bar_range else 0.0
    score = _score(candles, i, ctx, BEARISH, 45, strong)
    return _make(candles, i, "bearishBreakout", TREND, BEARISH, score, 3,
                 "Close below the latest confirmed swing low in a downtrend")


def _is_soldier(c: Candle) -> bool:
    rng = c.bar_range
    return rng > 0 and c.is_bullish and (c.high - c.close) / rng < 0.25 and c.body / rng > 0.6


def _is_crow(c: Candle) -> bool:
    rng = c.bar_range
    return (
        rng > 0 and c.close < c.open
        and (c.close - c.low) / rng < 0.25 and c.body / rng > 0.6
    )


@register("threeSoldiers", TREND)
def detect_three_soldiers(candles, i, ctx):
    if i < 2:
        return None
    c1, c2, c3 = candles[i - 2], candles[i - 1], candles[i]
    if not (_is_soldier(c1) and _is_soldier(c2) and _is_soldier(c3)):
        return None
    if not (
        c3.close > c2.close > c1.close
        and c1.open < c2.open < c1.close
        and c2.open < c3.open < c2.close
    ):
        return None
    score = _score(candles, i, ctx, BULLISH, 50)
    return _make(candles, i, "threeSoldiers", TREND, BULLISH, score, 3,
                 "Three strong bullish bars closing progressively higher")


@register("threeCrows", TREND)
def detect_three_crows(candles, i, ctx):
    if i < 2:
        return None
    c1, c2, c3 = candles[i - 2], candles[i - 1], candles[i]
    if not (_is_crow(c1) and _is_crow(c2) and _is_crow(c3)):
        return None
    if not (
        c3.close < c2.close < c1.close
        and c1.close < c2.open < c1.open
        and c2.close < c3.open < c2.open
    ):
        return None
    score = _score(candles, i, ctx, BEARISH, 50)
    return _make(candles, i, "threeCrows", TREND, BEARISH, score, 3,
                 "Three strong bearish bars closing progressively lower")


def _line_tolerance(ctx: PatternContext, i: int, candle: Candle) -> float:
    atr = ctx.atr[i] if i < len(ctx.atr) else None
    return 0.3 * (atr if atr is not None else candle.bar_range)


@register("trendlineBreakout", TREND)
def detect_trendline_breakout(candles, i, ctx):
    """Close through a confirmed trendline after closing on its other side."""
    if i < 1 or not ctx.trendlines:
        return None
    c, prev = candles[i], candles[i - 1]
    best: Optional[DetectedPattern] = None
    for line in ctx.trendlines:
        if line.end_index >= i:
            continue
        now, before = line.price_at(c.time), line.price_at(prev.time)
        if line.line_type == "DOWN" and prev.close <= before and c.close > now:
            score = _score(candles, i, ctx, BULLISH, 40, 8 * line.strength)
            found = _make(candles, i, "trendlineBreakoutBull", TREND, BULLISH, score, 3,
                          "Close above a falling trendline")
        elif line.line_type == "UP" and prev.close >= before and c.close < now:
            score = _score(candles, i, ctx, BEARISH, 40, 8 * line.strength)
            found = _make(candles, i, "trendlineBreakoutBear", TREND, BEARISH, score, 3,
                          "Close below a rising trendline")
        else:
            continue
        if best is None or found.priority > best.priority:
            best = found
    return best


@register("trendlineBounce", TREND)
def detect_trendline_bounce(candles, i, ctx):
    """Bar tags a confirmed trendline and closes back on the trend side."""
    if not ctx.trendlines:
        return None
    c = candles[i]
    tol = _line_tolerance(ctx, i, c)
    best: Optional[DetectedPattern] = None
    for line in ctx.trendlines:
        if line.end_index >= i:
            continue
        level = line.price_at(c.time)
        if (line.line_type == "UP" and c.is_bullish
                and level - tol <= c.low <= level + tol and c.close > level):
            score = _score(candles, i, ctx, BULLISH, 30, 8 * line.strength, level=level)
            found = _make(candles, i, "trendlineBounceBull", TREND, BULLISH, score, 2,
                          "Rejection off a rising trendline")
        elif (line.line_type == "DOWN" and c.close < c.open
                and level - tol <= c.high <= level + tol and c.close < level):
            score = _score(candles, i, ctx, BEARISH, 30, 8 * line.strength, level=level)
            found = _make(candles, i, "trendlineBounceBear", TREND, BEARISH, score, 2,
                          "Rejection off a falling trendline")
        else:
            continue
        if best is None or found.priority > best.priority:
            best = found
    return best


# ── Range family ─────────────────────────────────────────────────────────


@register("failedBullishBreakout", RANGE)
def detect_failed_bullish_breakout(candles, i, ctx):
    if i < 1 or ctx.ema20[i] is None or ctx.short_term_trend != "RANGE":
        return None
    swing = latest_swing(ctx.swings, "high")
    if swing is None:
        return None
    c, prev = candles[i], candles[i - 1]
    if not (prev.high > swing.price and c.close < swing.price and c.close < c.open):
        return None
    engulf = 20.0 if _is_bearish_engulfing(c, prev) else 0.0
    score = _score(candles, i, ctx, BEARISH, 50, engulf, level=prev.high)
    return _make(candles, i, "failedBullishBreakout", RANGE, BEARISH, score, 3,
                 "Break above the range high reversed back inside")


@register("failedBearishBreakout", RANGE)
def detect_failed_bearish_breakout(candles, i, ctx):
    if i < 1 or ctx.ema20[i] is None or ctx.short_term_trend != "RANGE":
        return None
    swing = latest_swing(ctx.swings, "low")
    if swing is None:
        return None
    c, prev = candles[i], candles[i - 1]
    if not (prev.low < swing.price and c.close > swing.price and c.is_bullish):
        return None
    engulf = 20.0 if _is_bullish_engulfing(c, prev) else 0.0
    score = _score(candles, i, ctx, BULLISH, 50, engulf, level=prev.low)
    return _make(candles, i, "failedBearishBreakout", RANGE, BULLISH, score, 3,
                 "Break below the range low reversed back inside")


# ── Dispatch ─────────────────────────────────────────────────────────────


def _is_key_signal(pattern: DetectedPattern, long_term: str) -> bool:
    if pattern.priority < 3:
        return False
    return (pattern.direction == BULLISH and long_term == "UP") or (
        pattern.direction == BEARISH and long_term == "DOWN"
    )


def detect_at(
    candles: list[Candle], i: int, context: PatternContext,
) -> Optional[DetectedPattern]:
    """Run every registered detector on bar *i*; keep the highest priority.

    Ties go to the detector registered first.
    """
    if i < 1 or i >= len(candles):
        return None
    best: Optional[DetectedPattern] = None
    for entry in PATTERN_DETECTORS:
        found = entry.detect(candles, i, context)
        if found is not None and (best is None or found.priority > best.priority):
            best = found
    if best is None:
        return None
    return dataclasses.replace(best, is_key_signal=_is_key_signal(best, context.long_term_trend))
