"""Prediction engine — "is there a valid trade right now?".

Reuses the backtest entry logic on the last few LTF bars and re-prices the
newest signal against the current close.  Never opens a position.
"""

import logging
from bisect import bisect_right
from typing import Optional

from priceaction.backtest.engine import bar_interval
from priceaction.backtest.models import PredictionResult
from priceaction.backtest.settings import BacktestSettings
from priceaction.backtest.signals import find_entry_signal
from priceaction.strategy.indicators import calculate_atr
from priceaction.strategy.models import Candle
from priceaction.strategy.sr_zones import identify_zones
from priceaction.strategy.trend import precompute_htf_trend

logger = logging.getLogger("priceaction.predict")

LOOKBACK = 3
MAX_ANCHOR_DISTANCE_ATR = 1.5


def _skip(reason: str, zones=()) -> PredictionResult:
    logger.info("No trade: %s", reason)
    return PredictionResult(status="SKIP_SIGNAL", reason=reason, sr_zones=tuple(zones))


def predict_next_move(
    ltf_candles: list[Candle],
    htf_candles: list[Candle],
    settings: Optional[BacktestSettings] = None,
) -> PredictionResult:
    """Propose a trade plan from the most recent bars, or explain why not.

    Signals from the last ``LOOKBACK`` bars are checked newest first.  A
    signal is stale when the current price has crossed its structural stop
    or run more than 1.5 ATR past the signal bar's anchor.
    """
    settings = settings or BacktestSettings()
    settings.validate()

    n = len(ltf_candles)
    if n < settings.atr_period + LOOKBACK:
        return _skip("Not enough LTF data.")

    atr = calculate_atr(ltf_candles, settings.atr_period)
    current_atr = atr[-1]
    if current_atr is None:
        return _skip("ATR is not available for the latest candle.")

    latest = ltf_candles[-1]
    htf_close_times = [c.time + bar_interval(htf_candles) for c in htf_candles]
    j = bisect_right(htf_close_times, latest.time + bar_interval(ltf_candles)) - 1
    closed_htf = htf_candles[: j + 1]
    zones = identify_zones(closed_htf, settings.zone_settings())
    htf_trend = precompute_htf_trend(closed_htf)[-1] if closed_htf else "Range"

    if htf_trend == "Range" and not settings.allow_range_trading:
        return _skip("Trading in range is disabled.", zones)

    entry = latest.close
    for i in range(n - 1, n - 1 - LOOKBACK, -1):
        atr_value = atr[i]
        if atr_value is None:
            continue
        signal = find_entry_signal(ltf_candles, i, zones, htf_trend, atr_value, settings)
        if signal is None:
            continue

        max_distance = current_atr * MAX_ANCHOR_DISTANCE_ATR
        if signal.direction == "LONG":
            stop = signal.anchor_price - current_atr * settings.atr_multiplier
            if entry > signal.anchor_price + max_distance or entry < stop:
                logger.debug("Stale LONG signal at bar %d", i)
                continue
        else:
            stop = signal.anchor_price + current_atr * settings.atr_multiplier
            if entry < signal.anchor_price - max_distance or entry > stop:
                logger.debug("Stale SHORT signal at bar %d", i)
                continue

        risk = abs(entry - stop)
        if risk == 0:
            continue
        if signal.direction == "LONG":
            take_profit = entry + risk * settings.min_risk_reward
        else:
            take_profit = entry - risk * settings.min_risk_reward

        logger.info("Trade plan: %s @ %.5f (%s)", signal.direction, entry, signal.model)
        return PredictionResult(
            status="PLAN_TRADE",
            reason=signal.reason,
            direction=signal.direction,
            entry_price=entry,
            stop_loss=stop,
            take_profit=take_profit,
            risk_reward=settings.min_risk_reward,
            model=signal.model,
            signal_index=i,
            sr_zones=tuple(zones),
        )

    return _skip("No valid entry signal found in recent candles.", zones)
