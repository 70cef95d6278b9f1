"""Position sizing — pure math, no I/O.

Two modes:
- **fixed**: a fixed percent of equity (times leverage) as notional.
- **risk-based**: a percent of equity at risk between entry and stop.

Either way the notional is capped at ``equity × leverage``.
"""

from typing import Optional


def calculate_position_size(
    equity: float,
    entry_price: float,
    stop_loss: float,
    risk_pct: Optional[float] = None,
    position_size_pct: Optional[float] = None,
    leverage: float = 1.0,
) -> float:
    """Calculate position size in base units.

    Formula (risk-based)::

        risk_amount   = equity × (risk_pct / 100)
        risk_per_unit = |entry_price − stop_loss|
        size          = risk_amount / risk_per_unit

    Formula (fixed)::

        size = equity × (position_size_pct / 100) × leverage / entry_price

    Args:
        equity: Current account equity.
        entry_price: Planned fill price.
        stop_loss: Stop-loss price.
        risk_pct: Percent of equity to risk (risk-based mode).
        position_size_pct: Percent of equity to commit (fixed mode, wins
            over *risk_pct* when set).
        leverage: Account leverage, at least 1.

    Returns:
        Position size in base units (always positive).

    Raises:
        ValueError: If any input is non-positive or neither sizing mode is
            given.
    """
    if equity <= 0:
        raise ValueError(f"equity must be positive, got {equity}")
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")
    if leverage < 1:
        raise ValueError(f"leverage must be at least 1, got {leverage}")
    risk_per_unit = abs(entry_price - stop_loss)
    if risk_per_unit <= 0:
        raise ValueError("stop_loss must differ from entry_price")

    if position_size_pct is not None:
        if position_size_pct <= 0:
            raise ValueError(f"position_size_pct must be positive, got {position_size_pct}")
        size = equity * (position_size_pct / 100.0) * leverage / entry_price
    elif risk_pct is not None:
        if risk_pct <= 0:
            raise ValueError(f"risk_pct must be positive, got {risk_pct}")
        size = equity * (risk_pct / 100.0) / risk_per_unit
    else:
        raise ValueError("either risk_pct or position_size_pct is required")

    max_size = equity * leverage / entry_price
    return min(size, max_size)
