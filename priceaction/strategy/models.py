"""Strategy data models — typed representations for candles and analysis outputs."""

from dataclasses import dataclass
from typing import Literal, Optional


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar. ``time`` is the bar open in unix seconds."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    is_closed: bool = True

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def bar_range(self) -> float:
        return self.high - self.low

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low


@dataclass(frozen=True)
class MacdValue:
    """One MACD reading: line, signal line and histogram."""

    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class SwingPoint:
    """A confirmed local extreme."""

    index: int
    time: int
    price: float
    swing_type: Literal["high", "low"]


# ── Trendlines ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChannelLine:
    """Parallel line drawn through the most extreme opposite-side price."""

    slope: float
    intercept: float
    anchor_time: int
    anchor_price: float

    def price_at(self, time: int) -> float:
        return self.slope * time + self.intercept


@dataclass(frozen=True)
class TrendLine:
    """A line through at least three swing points of the same type.

    ``slope`` is expressed in price per second so that ``price_at`` works
    directly on candle timestamps.
    """

    p1: SwingPoint
    p2: SwingPoint
    touches: tuple[SwingPoint, ...]
    line_type: Literal["UP", "DOWN"]
    slope: float
    intercept: float
    strength: int
    channel_line: Optional[ChannelLine] = None
    timeframe: Optional[str] = None

    def price_at(self, time: int) -> float:
        return self.slope * time + self.intercept

    @property
    def start_index(self) -> int:
        return self.touches[0].index

    @property
    def end_index(self) -> int:
        return self.touches[-1].index

    @property
    def duration(self) -> int:
        """Seconds between the first and last touch."""
        return self.touches[-1].time - self.touches[0].time


# ── Support / resistance zones ───────────────────────────────────────────


@dataclass(frozen=True)
class ScoreDetails:
    """Weighted contribution of each factor to a zone's score."""

    sr_score: float
    fib_score: float
    macd_score: float


@dataclass(frozen=True)
class ZoneConfluence:
    """Which confluence factors fired for a zone."""

    fib_level: Optional[float] = None
    macd_divergence: bool = False
    macd_zero_cross: Optional[Literal["bullish", "bearish"]] = None
    macd_extreme: Optional[Literal["overbought", "oversold"]] = None

    @property
    def has_fib(self) -> bool:
        return self.fib_level is not None


@dataclass(frozen=True)
class SRZone:
    """A support or resistance price band."""

    start_price: float
    end_price: float
    zone_type: Literal["support", "resistance"]
    touches: int
    score: float
    score_details: ScoreDetails
    confluence: ZoneConfluence

    def contains(self, price: float) -> bool:
        return self.start_price <= price <= self.end_price


# ── Patterns ─────────────────────────────────────────────────────────────

REVERSAL = "Reversal"
TREND = "Trend"
RANGE = "Range"

BULLISH = "Bullish"
BEARISH = "Bearish"


@dataclass(frozen=True)
class PatternStrength:
    """Directional strength scores, each within [0, 100]."""

    long: float
    short: float


@dataclass(frozen=True)
class DetectedPattern:
    """A price-action signal emitted for one bar."""

    index: int
    candle: Candle
    name: str
    pattern_type: Literal["Reversal", "Trend", "Range"]
    direction: Literal["Bullish", "Bearish"]
    priority: int
    strength: PatternStrength
    is_key_signal: bool = False
    description: str = ""
