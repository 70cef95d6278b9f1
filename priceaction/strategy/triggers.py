"""Entry trigger models — pinbar, change of character, fair-value gap.

Each trigger reads only candles up to the bar it evaluates.
"""

from dataclasses import dataclass
from typing import Literal, Optional

from priceaction.strategy.models import Candle

Side = Literal["bullish", "bearish"]


@dataclass(frozen=True)
class Imbalance:
    """A three-candle fair-value gap currently being retested."""

    start_price: float
    end_price: float
    index: int  # middle candle of the gap
    direction: Side


def is_pinbar(candle: Candle, min_wick_body_ratio: float = 2.0) -> Optional[Side]:
    """Classify a rejection candle.

    Bullish: lower wick at least *min_wick_body_ratio* × body with the upper
    wick under 30 % of the range.  Bearish is symmetric.  Candles with zero
    range or zero body are never pinbars.
    """
    body = candle.body
    total = candle.bar_range
    if total == 0 or body == 0:
        return None
    if candle.lower_wick / body >= min_wick_body_ratio and candle.upper_wick / total < 0.3:
        return "bullish"
    if candle.upper_wick / body >= min_wick_body_ratio and candle.lower_wick / total < 0.3:
        return "bearish"
    return None


def find_choch(candles: list[Candle], index: int, lookback: int = 5) -> Optional[Side]:
    """Change of character at *index*.

    Bullish when the prior *lookback* bars made successively lower lows and
    the current close breaks above their highest high; bearish mirrors it.
    """
    if index < lookback * 2 or index >= len(candles):
        return None

    prior = candles[index - lookback : index]
    last = candles[index]

    falling = all(b.low <= a.low for a, b in zip(prior, prior[1:]))
    rising = all(b.high >= a.high for a, b in zip(prior, prior[1:]))

    if falling and last.close > max(c.high for c in prior):
        return "bullish"
    if rising and last.close < min(c.low for c in prior):
        return "bearish"
    return None


def find_imbalance(
    candles: list[Candle], index: int, lookback: int = 10,
) -> Optional[Imbalance]:
    """Most recent fair-value gap within *lookback* bars that bar *index* trades into."""
    if index < 2 or index >= len(candles):
        return None

    current = candles[index]
    for i in range(index, max(2, index - lookback) - 1, -1):
        first, third = candles[i - 2], candles[i]
        if third.low > first.high:
            if current.low <= third.low and current.high >= first.high:
                return Imbalance(first.high, third.low, i - 1, "bullish")
        if third.high < first.low:
            if current.high >= third.high and current.low <= first.low:
                return Imbalance(third.high, first.low, i - 1, "bearish")
    return None
