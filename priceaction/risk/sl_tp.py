"""Stop-loss, take-profit and liquidation levels — pure math, no I/O.

Structural approach (default):
    The stop comes from the trigger model (wick extreme ± ATR multiple).
    TP sits ``min_risk_reward`` risk-units beyond the entry.

Percent bracket:
    Stop and target are fixed percentages away from the entry.
"""

from dataclasses import dataclass
from typing import Literal

TradeDirection = Literal["LONG", "SHORT"]


@dataclass(frozen=True)
class RiskLevels:
    """Computed exit levels for a trade."""

    stop_loss: float
    take_profit: float
    risk_per_unit: float


def _check_direction(direction: str) -> None:
    if direction not in ("LONG", "SHORT"):
        raise ValueError(f"direction must be 'LONG' or 'SHORT', got '{direction}'")


def structural_levels(
    entry_price: float,
    direction: TradeDirection,
    stop_loss: float,
    min_risk_reward: float,
) -> RiskLevels:
    """Keep the structural stop and project TP at ``risk × min_risk_reward``."""
    _check_direction(direction)
    risk = abs(entry_price - stop_loss)
    if direction == "LONG":
        tp = entry_price + risk * min_risk_reward
    else:
        tp = entry_price - risk * min_risk_reward
    return RiskLevels(stop_loss=stop_loss, take_profit=tp, risk_per_unit=risk)


def percent_levels(
    entry_price: float,
    direction: TradeDirection,
    stop_loss_pct: float,
    take_profit_pct: float,
) -> RiskLevels:
    """Stop and target a fixed percentage from the entry.

    E.g. a LONG at 100 with 2 % / 4 % gives SL 98 and TP 104.
    """
    _check_direction(direction)
    if direction == "LONG":
        sl = entry_price * (1 - stop_loss_pct / 100.0)
        tp = entry_price * (1 + take_profit_pct / 100.0)
    else:
        sl = entry_price * (1 + stop_loss_pct / 100.0)
        tp = entry_price * (1 - take_profit_pct / 100.0)
    return RiskLevels(stop_loss=sl, take_profit=tp, risk_per_unit=abs(entry_price - sl))


def liquidation_price(entry_price: float, direction: TradeDirection, leverage: float) -> float:
    """Price at which the margin is wiped out.

    ``entry × (1 − 1/leverage)`` for longs, ``entry × (1 + 1/leverage)`` for
    shorts.  At leverage 1 a long can only be liquidated at zero.
    """
    _check_direction(direction)
    if leverage < 1:
        raise ValueError(f"leverage must be at least 1, got {leverage}")
    if direction == "LONG":
        return entry_price * (1 - 1 / leverage)
    return entry_price * (1 + 1 / leverage)
