"""Backtest engine — replays LTF candles against HTF zones and trend.

Iterates the lower timeframe chronologically.  Zones and trend come only
from higher-timeframe candles that had closed by each LTF bar, entries are
triggered by the zone-confluence models, and every open position is run
through liquidation, stop and target checks.  No real orders are placed.
"""

import asyncio
import logging
import threading
from bisect import bisect_right
from typing import Optional

import numpy as np

from priceaction.backtest.models import (
    BacktestResult,
    EntryEvent,
    EquityPoint,
    ExitEvent,
    ExitReason,
    Position,
    TradeLogEvent,
    ZoneScore,
)
from priceaction.backtest.settings import BacktestSettings
from priceaction.backtest.signals import EntrySignal, find_entry_signal
from priceaction.backtest.stats import calculate_kpis
from priceaction.risk.drawdown import DrawdownTracker
from priceaction.risk.position_sizer import calculate_position_size
from priceaction.risk.sl_tp import liquidation_price, percent_levels, structural_levels
from priceaction.strategy.indicators import calculate_atr
from priceaction.strategy.models import Candle, SRZone
from priceaction.strategy.sr_zones import identify_zones
from priceaction.strategy.trend import precompute_htf_trend

logger = logging.getLogger("priceaction.backtest")


class BacktestCancelled(Exception):
    """Raised when a run is cancelled through its cancel event."""


def bar_interval(candles: list[Candle]) -> int:
    """Median spacing between bars in seconds (0 with fewer than two bars)."""
    if len(candles) < 2:
        return 0
    diffs = np.diff(np.asarray([c.time for c in candles], dtype=np.int64))
    return int(np.median(diffs))


# ── Position lifecycle ───────────────────────────────────────────────────


def check_exit(position: Position, candle: Candle) -> Optional[tuple[float, ExitReason]]:
    """Check if *candle* closes *position*.

    Returns ``(exit_price, reason)`` or ``None``.  Liquidation is checked
    first, then stop-loss, then take-profit; when several are hit in the
    same bar the earlier one wins.  Exits fill at the breached level.
    """
    if position.direction == "LONG":
        if candle.low <= position.liquidation_price:
            return position.liquidation_price, "LIQUIDATION"
        if candle.low <= position.stop_loss:
            return position.stop_loss, "STOP_LOSS"
        if candle.high >= position.take_profit:
            return position.take_profit, "TAKE_PROFIT"
    else:
        if candle.high >= position.liquidation_price:
            return position.liquidation_price, "LIQUIDATION"
        if candle.high >= position.stop_loss:
            return position.stop_loss, "STOP_LOSS"
        if candle.low <= position.take_profit:
            return position.take_profit, "TAKE_PROFIT"
    return None


def open_position(
    signal: EntrySignal,
    candle: Candle,
    equity: float,
    settings: BacktestSettings,
) -> Optional[tuple[Position, EntryEvent]]:
    """Size and open a position at the close of *candle*.

    Returns ``None`` (and logs a warning) when the stop sits on the entry,
    since zero risk per unit cannot be sized.
    """
    entry = candle.close
    if settings.use_atr_position_sizing:
        levels = structural_levels(entry, signal.direction, signal.stop_loss, settings.min_risk_reward)
        rr = settings.min_risk_reward
    else:
        levels = percent_levels(entry, signal.direction, settings.stop_loss_pct, settings.take_profit_pct)
        rr = settings.take_profit_pct / settings.stop_loss_pct

    if levels.risk_per_unit == 0:
        logger.warning("Skipping %s entry at %s: zero risk per unit", signal.direction, candle.time)
        return None

    size = calculate_position_size(
        equity,
        entry,
        levels.stop_loss,
        risk_pct=settings.risk_per_trade_pct,
        position_size_pct=settings.position_size_pct,
        leverage=settings.leverage,
    )
    liq = liquidation_price(entry, signal.direction, settings.leverage)
    position = Position(
        direction=signal.direction,
        entry_price=entry,
        size_in_base=size,
        size_in_quote=size * entry,
        stop_loss=levels.stop_loss,
        take_profit=levels.take_profit,
        liquidation_price=liq,
        entry_time=candle.time,
    )
    zone = signal.zone
    event = EntryEvent(
        direction=signal.direction,
        time=candle.time,
        price=entry,
        size=size,
        equity=equity,
        reason=signal.reason,
        model=signal.model,
        stop_loss=levels.stop_loss,
        take_profit=levels.take_profit,
        leverage=settings.leverage,
        liquidation_price=liq,
        risk_reward=rr,
        zone_score=ZoneScore(
            total=zone.score,
            sr=zone.score_details.sr_score,
            fib=zone.score_details.fib_score,
            macd=zone.score_details.macd_score,
        ),
    )
    return position, event


def close_position(
    position: Position,
    exit_price: float,
    time: int,
    reason: ExitReason,
    equity: float,
    settings: BacktestSettings,
) -> tuple[float, ExitEvent]:
    """Realize *position* at *exit_price*.

    Commission is charged on entry and exit notional.  Returns the new
    equity and the EXIT event.
    """
    gross = position.unrealized_pnl(exit_price)
    commission = (
        position.size_in_quote + position.size_in_base * exit_price
    ) * (settings.commission_rate / 100.0)
    net = gross - commission
    new_equity = equity + net
    event = ExitEvent(
        direction=position.direction,
        time=time,
        price=exit_price,
        size=position.size_in_base,
        equity=new_equity,
        profit=net,
        profit_pct=net / equity * 100.0 if equity else 0.0,
        reason=reason,
    )
    return new_equity, event


# ── Engine ───────────────────────────────────────────────────────────────


class BacktestEngine:
    """Simulates the zone-confluence strategy on historical candles.

    Args:
        settings: Engine configuration (validated on each run).
        cancel_event: Optional event checked at every bar boundary.
    """

    def __init__(
        self,
        settings: Optional[BacktestSettings] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._settings = settings or BacktestSettings()
        self._cancel_event = cancel_event

    # ── Public API ───────────────────────────────────────────────────────

    def run(self, ltf_candles: list[Candle], htf_candles: list[Candle]) -> BacktestResult:
        """Execute a full backtest.

        Args:
            ltf_candles: Lower-timeframe candles iterated bar by bar.
            htf_candles: Higher-timeframe candles for zones and trend.

        Returns:
            ``BacktestResult`` with KPIs, equity curve, trade log and the
            zones of the full HTF series.

        Raises:
            ValueError: If the settings are invalid.
            BacktestCancelled: If the cancel event is set mid-run.
        """
        settings = self._settings
        settings.validate()
        zone_settings = settings.zone_settings()

        htf_interval = bar_interval(htf_candles)
        ltf_interval = bar_interval(ltf_candles)
        htf_close_times = [c.time + htf_interval for c in htf_candles]
        htf_trend = precompute_htf_trend(htf_candles)
        ltf_atr = calculate_atr(ltf_candles, settings.atr_period)

        equity = settings.initial_capital
        tracker = DrawdownTracker(equity)
        position: Optional[Position] = None
        trade_log: list[TradeLogEvent] = []
        equity_curve: list[EquityPoint] = []
        pnls: list[float] = []

        zones: list[SRZone] = []
        closed_htf = 0
        last = len(ltf_candles) - 1

        for i in range(1, len(ltf_candles)):
            if self._cancel_event is not None and self._cancel_event.is_set():
                raise BacktestCancelled(f"Backtest cancelled at bar {i}")

            candle = ltf_candles[i]
            exited = False

            # 1 — Manage the open position
            if position is not None:
                hit = check_exit(position, candle)
                if hit is not None:
                    price, reason = hit
                    equity, event = close_position(position, price, candle.time, reason, equity, settings)
                    trade_log.append(event)
                    pnls.append(event.profit)
                    logger.debug("EXIT %s %s @ %.5f pnl=%.2f", event.direction, reason, price, event.profit)
                    position = None
                    exited = True

            # 2 — Look for an entry (never on the final bar)
            if position is None and not exited and i < last:
                atr_value = ltf_atr[i]
                j = bisect_right(htf_close_times, candle.time + ltf_interval) - 1
                if atr_value is not None and j >= 0:
                    if j + 1 != closed_htf:
                        closed_htf = j + 1
                        zones = identify_zones(htf_candles[:closed_htf], zone_settings)
                    signal = find_entry_signal(ltf_candles, i, zones, htf_trend[j], atr_value, settings)
                    if signal is not None:
                        opened = open_position(signal, candle, equity, settings)
                        if opened is not None:
                            position, event = opened
                            trade_log.append(event)
                            logger.debug("ENTRY %s @ %.5f (%s)", event.direction, event.price, event.reason)

            # 3 — Force-close on the last bar
            if position is not None and i == last:
                equity, event = close_position(position, candle.close, candle.time, "END_OF_DATA", equity, settings)
                trade_log.append(event)
                pnls.append(event.profit)
                position = None

            # 4 — Mark to market
            unrealized = position.unrealized_pnl(candle.close) if position is not None else 0.0
            tracker.update(equity + unrealized)
            equity_curve.append(EquityPoint(candle.time, equity))

            if position is None and equity <= 0:
                logger.warning("Account wiped out at bar %d (equity %.2f); no further entries", i, equity)
                break

        kpis = calculate_kpis(
            pnls,
            settings.initial_capital,
            max_drawdown=tracker.max_drawdown,
            max_drawdown_pct=tracker.max_drawdown_pct,
        )
        logger.info(
            "Backtest complete: %d trades, net profit %.2f, win rate %.1f%%",
            kpis.total_trades, kpis.net_profit, kpis.win_rate * 100,
        )
        return BacktestResult(
            kpis=kpis,
            equity_curve=tuple(equity_curve),
            trade_log=tuple(trade_log),
            sr_zones=tuple(identify_zones(htf_candles, zone_settings)),
            final_equity=equity,
        )


async def run_backtest_async(
    ltf_candles: list[Candle],
    htf_candles: list[Candle],
    settings: Optional[BacktestSettings] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BacktestResult:
    """Run a backtest in a worker thread so the event loop stays free."""
    engine = BacktestEngine(settings, cancel_event)
    return await asyncio.to_thread(engine.run, ltf_candles, htf_candles)
