"""Zone-confluence entry logic shared by the backtest and prediction engines."""

from dataclasses import dataclass
from typing import Literal, Optional

from priceaction.backtest.settings import BacktestSettings
from priceaction.strategy.models import Candle, SRZone
from priceaction.strategy.sr_zones import describe_zone
from priceaction.strategy.triggers import find_choch, find_imbalance, is_pinbar


@dataclass(frozen=True)
class EntrySignal:
    """A zone-confirmed trigger on one LTF bar.

    ``stop_loss`` is the tightest structural stop among the models that
    fired; ``anchor_price`` is the signal bar's extreme on the stop side.
    """

    index: int
    direction: Literal["LONG", "SHORT"]
    zone: SRZone
    models: tuple[str, ...]
    stop_loss: float
    anchor_price: float
    reason: str

    @property
    def model(self) -> str:
        return self.models[0]


def find_active_zone(
    zones: list[SRZone], zone_type: str, price: float,
) -> Optional[SRZone]:
    """First zone of *zone_type* whose band contains *price*."""
    for zone in zones:
        if zone.zone_type == zone_type and zone.contains(price):
            return zone
    return None


def build_reason(htf_trend: str, zone: SRZone, models: list[str]) -> str:
    """E.g. ``"Uptrend HTF, support zone 99.3-99.9 [fib 0.618]: bullish pinbar"``."""
    return f"{htf_trend} HTF, {describe_zone(zone)}: {', '.join(models)}"


def find_entry_signal(
    candles: list[Candle],
    i: int,
    zones: list[SRZone],
    htf_trend: str,
    atr_value: float,
    settings: BacktestSettings,
) -> Optional[EntrySignal]:
    """Evaluate the trigger models at bar *i* inside an active zone.

    A support zone is checked first; when it is active and longs are
    allowed, the resistance side is not considered for this bar.
    """
    if htf_trend == "Range" and not settings.allow_range_trading:
        return None

    candle = candles[i]
    can_long = htf_trend in ("Uptrend", "Range") if settings.follow_htf_trend else True
    can_short = htf_trend in ("Downtrend", "Range") if settings.follow_htf_trend else True
    pad = atr_value * settings.atr_multiplier

    support = find_active_zone(zones, "support", candle.close)
    resistance = find_active_zone(zones, "resistance", candle.close)

    models: list[str] = []
    stops: list[float] = []

    if support is not None and can_long:
        zone, direction, side = support, "LONG", "bullish"
        if settings.use_pinbar and is_pinbar(candle) == side:
            models.append(f"{side} pinbar")
            stops.append(candle.low - pad)
        if settings.use_choch and find_choch(candles, i) == side:
            models.append(f"{side} CHoCH")
            stops.append(candle.close - pad)
        if settings.use_smc:
            gap = find_imbalance(candles, i)
            if gap is not None and gap.direction == side:
                models.append(f"{side} FVG retest")
                stops.append(candle.low - pad)
        stop = min(stops) if stops else None
        anchor = candle.low
    elif resistance is not None and can_short:
        zone, direction, side = resistance, "SHORT", "bearish"
        if settings.use_pinbar and is_pinbar(candle) == side:
            models.append(f"{side} pinbar")
            stops.append(candle.high + pad)
        if settings.use_choch and find_choch(candles, i) == side:
            models.append(f"{side} CHoCH")
            stops.append(candle.close + pad)
        if settings.use_smc:
            gap = find_imbalance(candles, i)
            if gap is not None and gap.direction == side:
                models.append(f"{side} FVG retest")
                stops.append(candle.high + pad)
        stop = max(stops) if stops else None
        anchor = candle.high
    else:
        return None

    if stop is None:
        return None

    return EntrySignal(
        index=i,
        direction=direction,
        zone=zone,
        models=tuple(models),
        stop_loss=stop,
        anchor_price=anchor,
        reason=build_reason(htf_trend, zone, models),
    )
