"""Support/Resistance zone detection on the higher timeframe — pure functions.

Swing points of the same side are clustered into price bands, then each
band is scored from its touch count, Fibonacci confluence and MACD
behaviour at the touches.
"""

from dataclasses import dataclass
from typing import Literal, Optional

from priceaction.strategy.indicators import calculate_macd
from priceaction.strategy.models import (
    Candle,
    MacdValue,
    ScoreDetails,
    SRZone,
    SwingPoint,
    ZoneConfluence,
)
from priceaction.strategy.swings import find_swing_points

FIB_LEVELS = (0.382, 0.5, 0.618, 0.786)
_GOLDEN_LEVELS = (0.5, 0.618)


@dataclass(frozen=True)
class ZoneSettings:
    """Weights and heuristic tolerances for zone scoring."""

    sr_weight: float = 1.0
    fib_weight: float = 0.5
    macd_weight: float = 0.5
    zone_score_threshold: float = 2.0
    use_macd_divergence: bool = True
    cluster_tolerance_pct: float = 1.5
    major_pivot_legs: int = 20
    zone_pivot_legs: int = 5
    macd_extreme_ratio: float = 0.85
    divergence_lookback: int = 30


@dataclass(frozen=True)
class FibLevel:
    level: float
    price: float


# ── Fibonacci ────────────────────────────────────────────────────────────


def find_fib_levels(swings: list[SwingPoint], recent: int = 5) -> list[FibLevel]:
    """Retracement levels of the most recent significant move.

    The move spans the highest and lowest of the last *recent* swings.  If
    the high came after the low the move is up and levels are measured down
    from the high; otherwise up from the low.
    """
    window = swings[-recent:]
    if len(window) < 2:
        return []

    high_point = max(window, key=lambda s: s.price)
    low_point = min(window, key=lambda s: s.price)
    move = high_point.price - low_point.price
    if move == 0:
        return []

    upward = high_point.time > low_point.time
    return [
        FibLevel(
            level=level,
            price=high_point.price - move * level if upward else low_point.price + move * level,
        )
        for level in FIB_LEVELS
    ]


# ── MACD helpers ─────────────────────────────────────────────────────────


def find_macd_zero_crosses(
    macd: list[Optional[MacdValue]],
) -> list[tuple[int, Literal["bullish", "bearish"]]]:
    """Histogram zero-line crosses as ``(index, direction)`` pairs."""
    crosses: list[tuple[int, Literal["bullish", "bearish"]]] = []
    for i in range(1, len(macd)):
        prev, curr = macd[i - 1], macd[i]
        if prev is None or curr is None:
            continue
        if prev.histogram < 0 <= curr.histogram:
            crosses.append((i, "bullish"))
        elif prev.histogram > 0 >= curr.histogram:
            crosses.append((i, "bearish"))
    return crosses


def find_macd_divergence(
    candles: list[Candle],
    macd: list[Optional[MacdValue]],
    index: int,
    lookback: int = 30,
) -> Optional[Literal["bullish", "bearish"]]:
    """Regular divergence between price and MACD histogram ending at *index*.

    Looks back *lookback* bars for the two most recent 2-bar fractal highs
    (bearish: higher price high, lower histogram) and lows (bullish: lower
    price low, higher histogram).  Needs ``2 × lookback`` bars of history.
    """
    if index < lookback * 2 or index >= len(candles):
        return None

    prices = candles[index - lookback : index + 1]
    hist = macd[index - lookback : index + 1]

    def _fractals(is_high: bool) -> list[int]:
        found: list[int] = []
        for j in range(lookback - 2, 1, -1):
            value = prices[j].high if is_high else prices[j].low
            neighbours = [prices[j + d] for d in (-2, -1, 1, 2)]
            if is_high and all(value > n.high for n in neighbours):
                found.append(j)
            elif not is_high and all(value < n.low for n in neighbours):
                found.append(j)
            if len(found) == 2:
                break
        return found

    highs = _fractals(is_high=True)
    if len(highs) == 2:
        recent, older = highs
        if hist[recent] is not None and hist[older] is not None:
            if (prices[recent].high > prices[older].high
                    and hist[recent].histogram < hist[older].histogram):
                return "bearish"

    lows = _fractals(is_high=False)
    if len(lows) == 2:
        recent, older = lows
        if hist[recent] is not None and hist[older] is not None:
            if (prices[recent].low < prices[older].low
                    and hist[recent].histogram > hist[older].histogram):
                return "bullish"

    return None


# ── Clustering ───────────────────────────────────────────────────────────


def _cluster_swings(
    swings: list[SwingPoint], tolerance_pct: float,
) -> list[tuple[str, list[SwingPoint]]]:
    """Group same-side swings within *tolerance_pct* of a cluster's average."""
    clusters: list[tuple[str, list[SwingPoint]]] = []
    tolerance = tolerance_pct / 100.0
    for point in swings:
        zone_type = "resistance" if point.swing_type == "high" else "support"
        for ctype, members in clusters:
            if ctype != zone_type:
                continue
            avg = sum(m.price for m in members) / len(members)
            if avg != 0 and abs(point.price - avg) / avg < tolerance:
                members.append(point)
                break
        else:
            clusters.append((zone_type, [point]))
    return clusters


def _score_zone(
    zone_type: str,
    members: list[SwingPoint],
    candles: list[Candle],
    macd: list[Optional[MacdValue]],
    fib_levels: list[FibLevel],
    extremes: Optional[tuple[float, float]],
    settings: ZoneSettings,
) -> SRZone:
    prices = [m.price for m in members]
    start, end = min(prices), max(prices)

    fib_score = 0.0
    fib_level: Optional[float] = None
    for fib in fib_levels:
        if start <= fib.price <= end:
            fib_score = 1.0 if fib.level in _GOLDEN_LEVELS else 0.5
            fib_level = fib.level
            break

    macd_score = 0.0
    divergence = False
    zero_cross = None
    extreme = None

    if settings.use_macd_divergence:
        latest = max(members, key=lambda m: m.index)
        found = find_macd_divergence(candles, macd, latest.index, settings.divergence_lookback)
        if (found == "bullish" and zone_type == "support") or (
            found == "bearish" and zone_type == "resistance"
        ):
            macd_score += 1.5
            divergence = True

    for member in members:
        curr = macd[member.index]
        if curr is None:
            continue
        prev = macd[member.index - 1] if member.index > 0 else None
        if prev is not None:
            if zone_type == "support" and prev.histogram < 0 <= curr.histogram:
                macd_score += 1.0
                zero_cross = "bullish"
            elif zone_type == "resistance" and prev.histogram > 0 >= curr.histogram:
                macd_score += 1.0
                zero_cross = "bearish"
        if extremes is not None:
            overbought, oversold = extremes
            if zone_type == "resistance" and curr.histogram >= overbought:
                macd_score += 0.75
                extreme = "overbought"
            elif zone_type == "support" and curr.histogram <= oversold:
                macd_score += 0.75
                extreme = "oversold"

    details = ScoreDetails(
        sr_score=len(members) * settings.sr_weight,
        fib_score=fib_score * settings.fib_weight,
        macd_score=macd_score * settings.macd_weight,
    )
    return SRZone(
        start_price=start,
        end_price=end,
        zone_type=zone_type,
        touches=len(members),
        score=details.sr_score + details.fib_score + details.macd_score,
        score_details=details,
        confluence=ZoneConfluence(
            fib_level=fib_level,
            macd_divergence=divergence,
            macd_zero_cross=zero_cross,
            macd_extreme=extreme,
        ),
    )


def identify_zones(
    candles: list[Candle], settings: Optional[ZoneSettings] = None,
) -> list[SRZone]:
    """Detect and score support/resistance zones.

    Args:
        candles: Higher-timeframe candles.  Only these bars are read, so
            passing a closed prefix gives a lookahead-free zone set.
        settings: Weights and tolerances (defaults to ``ZoneSettings()``).

    Returns:
        Zones scoring at least ``zone_score_threshold``, in the order their
        first swing appeared.
    """
    settings = settings or ZoneSettings()
    if not candles:
        return []

    major = find_swing_points(candles, settings.major_pivot_legs)
    fib_levels = find_fib_levels(major)
    macd = calculate_macd(candles)
    swings = find_swing_points(candles, settings.zone_pivot_legs)

    hist = [m.histogram for m in macd if m is not None]
    extremes = None
    if hist:
        extremes = (
            max(hist) * settings.macd_extreme_ratio,
            min(hist) * settings.macd_extreme_ratio,
        )

    zones = [
        _score_zone(zone_type, members, candles, macd, fib_levels, extremes, settings)
        for zone_type, members in _cluster_swings(swings, settings.cluster_tolerance_pct)
    ]
    return [z for z in zones if z.score >= settings.zone_score_threshold]


def describe_zone(zone: SRZone) -> str:
    """Human-readable zone summary used in trade reasons."""
    parts: list[str] = []
    conf = zone.confluence
    if conf.has_fib:
        parts.append(f"fib {conf.fib_level:.3f}")
    if conf.macd_divergence:
        parts.append("MACD divergence")
    if conf.macd_zero_cross:
        parts.append(f"MACD {conf.macd_zero_cross} zero-cross")
    if conf.macd_extreme:
        parts.append(f"MACD {conf.macd_extreme}")
    text = f"{zone.zone_type} zone {zone.start_price:.5g}-{zone.end_price:.5g}"
    if parts:
        text += f" [{', '.join(parts)}]"
    return text
