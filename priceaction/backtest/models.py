"""Backtest data models — positions, trade log events, KPIs and results."""

import dataclasses
from dataclasses import dataclass
from typing import Literal, Optional, Union

from priceaction.strategy.models import SRZone

ExitReason = Literal["STOP_LOSS", "TAKE_PROFIT", "LIQUIDATION", "END_OF_DATA"]


@dataclass(frozen=True)
class Position:
    """An open simulated position.  Lives between an ENTRY and its EXIT."""

    direction: Literal["LONG", "SHORT"]
    entry_price: float
    size_in_base: float
    size_in_quote: float
    stop_loss: float
    take_profit: float
    liquidation_price: float
    entry_time: int

    def unrealized_pnl(self, price: float) -> float:
        if self.direction == "LONG":
            return (price - self.entry_price) * self.size_in_base
        return (self.entry_price - price) * self.size_in_base


@dataclass(frozen=True)
class ZoneScore:
    total: float
    sr: float
    fib: float
    macd: float


@dataclass(frozen=True)
class EntryEvent:
    direction: Literal["LONG", "SHORT"]
    time: int
    price: float
    size: float
    equity: float
    reason: str
    model: str
    stop_loss: float
    take_profit: float
    leverage: float
    liquidation_price: float
    risk_reward: float
    zone_score: Optional[ZoneScore] = None
    event_type: Literal["ENTRY"] = "ENTRY"


@dataclass(frozen=True)
class ExitEvent:
    direction: Literal["LONG", "SHORT"]
    time: int
    price: float
    size: float
    equity: float
    profit: float
    profit_pct: float
    reason: ExitReason
    event_type: Literal["EXIT"] = "EXIT"


TradeLogEvent = Union[EntryEvent, ExitEvent]


@dataclass(frozen=True)
class EquityPoint:
    time: int
    equity: float


@dataclass(frozen=True)
class BacktestKPIs:
    net_profit: float
    net_profit_pct: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    profit_factor: Optional[float]
    max_drawdown: float
    max_drawdown_pct: float
    avg_trade_pnl: float
    avg_win: Optional[float]
    avg_loss: Optional[float]
    expectancy: float
    sharpe_ratio: float


@dataclass(frozen=True)
class BacktestResult:
    kpis: BacktestKPIs
    equity_curve: tuple[EquityPoint, ...]
    trade_log: tuple[TradeLogEvent, ...]
    sr_zones: tuple[SRZone, ...]
    final_equity: float

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class PredictionResult:
    """A trade plan for the latest bar, or a reason for skipping."""

    status: Literal["PLAN_TRADE", "SKIP_SIGNAL"]
    reason: str
    direction: Optional[Literal["LONG", "SHORT"]] = None
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    risk_reward: Optional[float] = None
    model: Optional[str] = None
    signal_index: Optional[int] = None
    sr_zones: tuple[SRZone, ...] = ()

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)
