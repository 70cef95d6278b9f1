"""Drawdown tracking — pure math, no I/O.

The backtest feeds mark-to-market equity (realized plus unrealized PnL)
after every bar, so open-position losses count towards the drawdown.
"""


class DrawdownTracker:
    """High-water mark and deepest peak-to-trough decline of an equity series.

    Args:
        initial_equity: Starting account equity, also the first peak.
    """

    def __init__(self, initial_equity: float) -> None:
        if initial_equity <= 0:
            raise ValueError(
                f"initial_equity must be positive, got {initial_equity}"
            )
        self._peak = initial_equity
        self._equity = initial_equity
        self._worst = 0.0
        self._worst_pct = 0.0

    def update(self, equity: float) -> None:
        """Record the equity at the close of a bar."""
        self._equity = equity
        self._peak = max(self._peak, equity)
        decline = self._peak - equity
        self._worst = max(self._worst, decline)
        self._worst_pct = max(self._worst_pct, decline / self._peak * 100.0)

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def peak_equity(self) -> float:
        return self._peak

    @property
    def current_equity(self) -> float:
        return self._equity

    @property
    def drawdown_pct(self) -> float:
        """Decline of the latest equity from the peak, in percent."""
        return (self._peak - self._equity) / self._peak * 100.0

    @property
    def max_drawdown(self) -> float:
        """Largest peak-to-trough decline in currency units."""
        return self._worst

    @property
    def max_drawdown_pct(self) -> float:
        """Largest decline as a percentage of the peak it fell from."""
        return self._worst_pct
