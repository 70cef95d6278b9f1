"""Backtest settings — typed, validated configuration for the engine."""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Optional

from priceaction.strategy.sr_zones import ZoneSettings

logger = logging.getLogger("priceaction.settings")

# camelCase keys accepted from JSON settings files / API bodies
_CAMEL_KEYS: dict[str, str] = {
    "initialCapital": "initial_capital",
    "commissionRate": "commission_rate",
    "stopLoss": "stop_loss_pct",
    "stopLossPct": "stop_loss_pct",
    "takeProfit": "take_profit_pct",
    "takeProfitPct": "take_profit_pct",
    "positionSizePercent": "position_size_pct",
    "riskPerTradePercent": "risk_per_trade_pct",
    "useAtrPositionSizing": "use_atr_position_sizing",
    "atrPeriod": "atr_period",
    "atrMultiplier": "atr_multiplier",
    "followHtfTrend": "follow_htf_trend",
    "allowRangeTrading": "allow_range_trading",
    "usePinbar": "use_pinbar",
    "useCHOCH": "use_choch",
    "useSMC": "use_smc",
    "useMacdDivergence": "use_macd_divergence",
    "srWeight": "sr_weight",
    "fibWeight": "fib_weight",
    "macdWeight": "macd_weight",
    "zoneScoreThreshold": "zone_score_threshold",
    "minRiskReward": "min_risk_reward",
    "zoneClusterTolerancePct": "zone_cluster_tolerance_pct",
    "majorPivotLegs": "major_pivot_legs",
    "zonePivotLegs": "zone_pivot_legs",
    "macdExtremeRatio": "macd_extreme_ratio",
    "divergenceLookback": "divergence_lookback",
}


@dataclass(frozen=True)
class BacktestSettings:
    """Engine configuration.

    ``use_atr_position_sizing`` selects the exit model: ``True`` keeps the
    trigger's structural (ATR-padded) stop with a risk-multiple target,
    ``False`` uses the fixed ``stop_loss_pct`` / ``take_profit_pct``
    bracket.  ``position_size_pct`` switches sizing from risk-based to a
    fixed share of equity.
    """

    initial_capital: float = 1000.0
    commission_rate: float = 0.1  # percent per leg
    stop_loss_pct: float = 2.0
    take_profit_pct: float = 4.0
    leverage: float = 10.0
    position_size_pct: Optional[float] = None
    risk_per_trade_pct: float = 10.0
    use_atr_position_sizing: bool = True
    atr_period: int = 14
    atr_multiplier: float = 2.0
    follow_htf_trend: bool = True
    allow_range_trading: bool = True
    use_pinbar: bool = True
    use_choch: bool = True
    use_smc: bool = True
    use_macd_divergence: bool = True
    sr_weight: float = 1.0
    fib_weight: float = 0.5
    macd_weight: float = 0.5
    zone_score_threshold: float = 2.0
    min_risk_reward: float = 2.0
    # zone heuristics
    zone_cluster_tolerance_pct: float = 1.5
    major_pivot_legs: int = 20
    zone_pivot_legs: int = 5
    macd_extreme_ratio: float = 0.85
    divergence_lookback: int = 30

    def validate(self) -> None:
        """Raise ``ValueError`` describing the first invalid field."""
        if self.initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {self.initial_capital}")
        if self.leverage < 1:
            raise ValueError(f"leverage must be at least 1, got {self.leverage}")
        if self.commission_rate < 0:
            raise ValueError(f"commission_rate must be non-negative, got {self.commission_rate}")
        if self.risk_per_trade_pct <= 0:
            raise ValueError(f"risk_per_trade_pct must be positive, got {self.risk_per_trade_pct}")
        if self.position_size_pct is not None and self.position_size_pct <= 0:
            raise ValueError(f"position_size_pct must be positive, got {self.position_size_pct}")
        if self.stop_loss_pct <= 0 or self.take_profit_pct <= 0:
            raise ValueError("stop_loss_pct and take_profit_pct must be positive")
        if self.stop_loss_pct >= 100:
            raise ValueError(f"stop_loss_pct must be below 100, got {self.stop_loss_pct}")
        if not self.use_atr_position_sizing and self.stop_loss_pct >= 100.0 / self.leverage:
            raise ValueError(
                f"stop_loss_pct {self.stop_loss_pct} lies beyond the liquidation distance "
                f"at {self.leverage}x leverage ({100.0 / self.leverage:.2f}%)"
            )
        if self.atr_period <= 0:
            raise ValueError(f"atr_period must be positive, got {self.atr_period}")
        if self.atr_multiplier < 0:
            raise ValueError(f"atr_multiplier must be non-negative, got {self.atr_multiplier}")
        if self.min_risk_reward <= 0:
            raise ValueError(f"min_risk_reward must be positive, got {self.min_risk_reward}")

    def zone_settings(self) -> ZoneSettings:
        return ZoneSettings(
            sr_weight=self.sr_weight,
            fib_weight=self.fib_weight,
            macd_weight=self.macd_weight,
            zone_score_threshold=self.zone_score_threshold,
            use_macd_divergence=self.use_macd_divergence,
            cluster_tolerance_pct=self.zone_cluster_tolerance_pct,
            major_pivot_legs=self.major_pivot_legs,
            zone_pivot_legs=self.zone_pivot_legs,
            macd_extreme_ratio=self.macd_extreme_ratio,
            divergence_lookback=self.divergence_lookback,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacktestSettings":
        """Build settings from camelCase or snake_case keys.

        Unknown keys are logged and ignored.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_KEYS.get(key, key)
            if name not in known:
                logger.warning("Ignoring unknown backtest setting '%s'", key)
                continue
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)
