"""Strategy-advisor data models."""

from dataclasses import dataclass
from typing import Literal, Optional

MarketType = Literal["SPOT", "FUTURES"]
RiskAppetite = Literal["Conservative", "Moderate", "Aggressive"]


@dataclass(frozen=True)
class AdvisorReply:
    """Free-text advice, or a displayable error when the call failed."""

    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class TradingDecision:
    """Structured decision returned by the advisor model."""

    decision: Literal["LONG", "SHORT", "WAIT"]
    reasoning: str
    entry_price: str
    stop_loss: float
    take_profit_levels: tuple[float, ...]
    confidence_score: int  # 1–10
    risk_warning: str


@dataclass(frozen=True)
class DecisionReply:
    decision: Optional[TradingDecision] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DecisionRequest:
    """Market parameters for a multi-timeframe trading decision."""

    symbol: str
    market_type: MarketType = "SPOT"
    risk_appetite: RiskAppetite = "Moderate"
    position_size: float = 100.0
    leverage: float = 1.0
