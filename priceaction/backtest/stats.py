"""Backtest statistics — pure functions for trade-series analysis."""

import math
from typing import Optional

import numpy as np

from priceaction.backtest.models import BacktestKPIs


def calculate_kpis(
    pnls: list[float],
    initial_capital: float,
    max_drawdown: float = 0.0,
    max_drawdown_pct: float = 0.0,
) -> BacktestKPIs:
    """Compute summary statistics from realized net PnL per closed trade.

    A trade with ``pnl > 0`` is a winner; everything else counts as a loss.
    ``profit_factor`` is ``None`` when there are no losing amounts.
    ``expectancy = win_rate × avg_win − (1 − win_rate) × avg_loss`` with a
    missing side counted as zero.
    """
    net_profit = float(sum(pnls))
    net_profit_pct = net_profit / initial_capital * 100.0 if initial_capital else 0.0

    if not pnls:
        return BacktestKPIs(
            net_profit=net_profit,
            net_profit_pct=net_profit_pct,
            total_trades=0,
            winning_trades=0,
            losing_trades=0,
            win_rate=0.0,
            profit_factor=None,
            max_drawdown=max_drawdown,
            max_drawdown_pct=max_drawdown_pct,
            avg_trade_pnl=0.0,
            avg_win=None,
            avg_loss=None,
            expectancy=0.0,
            sharpe_ratio=0.0,
        )

    total = len(pnls)
    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p <= 0]
    win_rate = len(winners) / total

    gross_profit = sum(winners)
    gross_loss = abs(sum(losers))
    profit_factor: Optional[float] = (
        gross_profit / gross_loss if gross_loss > 0 else None
    )

    avg_win = gross_profit / len(winners) if winners else None
    avg_loss = gross_loss / len(losers) if losers else None
    expectancy = win_rate * (avg_win or 0.0) - (1 - win_rate) * (avg_loss or 0.0)

    return BacktestKPIs(
        net_profit=net_profit,
        net_profit_pct=net_profit_pct,
        total_trades=total,
        winning_trades=len(winners),
        losing_trades=len(losers),
        win_rate=round(win_rate, 4),
        profit_factor=round(profit_factor, 4) if profit_factor is not None else None,
        max_drawdown=max_drawdown,
        max_drawdown_pct=max_drawdown_pct,
        avg_trade_pnl=net_profit / total,
        avg_win=avg_win,
        avg_loss=avg_loss,
        expectancy=expectancy,
        sharpe_ratio=round(_sharpe(pnls), 4),
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(pnls: list[float]) -> float:
    """Annualised Sharpe ratio from a per-trade PnL series.

    Uses sample standard deviation (n − 1).  Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    if len(pnls) < 2:
        return 0.0
    arr = np.asarray(pnls, dtype=float)
    std = float(arr.std(ddof=1))
    if std == 0:
        return 0.0
    return float(arr.mean()) / std * math.sqrt(252)


def max_drawdown_from_pnls(pnls: list[float]) -> float:
    """Largest peak-to-trough decline of the cumulative PnL curve."""
    if not pnls:
        return 0.0
    curve = np.concatenate(([0.0], np.cumsum(np.asarray(pnls, dtype=float))))
    peaks = np.maximum.accumulate(curve)
    return float((peaks - curve).max())
