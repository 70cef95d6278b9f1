"""Swing point detection — pivot-leg local extremes, pure functions.

A candle at index *p* is a swing high when its high is strictly above the
high of every candle within ``pivot_legs`` bars on either side (swing lows
are symmetric).  Because the right-hand legs must exist, a swing at *p* is
only known at index ``p + pivot_legs``.
"""

from priceaction.strategy.models import Candle, SwingPoint


def _check_legs(pivot_legs: int) -> None:
    if pivot_legs < 1:
        raise ValueError(f"pivot_legs must be at least 1, got {pivot_legs}")


def _is_swing_high(candles: list[Candle], p: int, pivot_legs: int) -> bool:
    high = candles[p].high
    for j in range(1, pivot_legs + 1):
        if candles[p - j].high >= high or candles[p + j].high >= high:
            return False
    return True


def _is_swing_low(candles: list[Candle], p: int, pivot_legs: int) -> bool:
    low = candles[p].low
    for j in range(1, pivot_legs + 1):
        if candles[p - j].low <= low or candles[p + j].low <= low:
            return False
    return True


def _swings_at(candles: list[Candle], p: int, pivot_legs: int) -> list[SwingPoint]:
    found: list[SwingPoint] = []
    candle = candles[p]
    if _is_swing_high(candles, p, pivot_legs):
        found.append(SwingPoint(p, candle.time, candle.high, "high"))
    if _is_swing_low(candles, p, pivot_legs):
        found.append(SwingPoint(p, candle.time, candle.low, "low"))
    return found


def find_swing_points(candles: list[Candle], pivot_legs: int = 5) -> list[SwingPoint]:
    """Return every confirmable swing point, ordered by index.

    When a bar is both a swing high and a swing low the high comes first.
    """
    _check_legs(pivot_legs)
    swings: list[SwingPoint] = []
    for p in range(pivot_legs, len(candles) - pivot_legs):
        swings.extend(_swings_at(candles, p, pivot_legs))
    return swings


def confirm_swings_at(
    candles: list[Candle], i: int, pivot_legs: int = 5,
) -> list[SwingPoint]:
    """Swings that become confirmed exactly at bar *i*.

    Only ``candles[: i + 1]`` is read, so this is safe inside a bar-by-bar
    replay.
    """
    _check_legs(pivot_legs)
    p = i - pivot_legs
    if p < pivot_legs or i >= len(candles):
        return []
    return _swings_at(candles, p, pivot_legs)


def latest_swing(
    swings: list[SwingPoint] | tuple[SwingPoint, ...], swing_type: str,
) -> SwingPoint | None:
    """Most recent swing of *swing_type* (``"high"`` or ``"low"``)."""
    for swing in reversed(swings):
        if swing.swing_type == swing_type:
            return swing
    return None
