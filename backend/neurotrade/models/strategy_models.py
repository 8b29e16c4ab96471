"""Strategy parameters, backtest results and regime memory records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class StrategyParams:
    # RSI
    rsi_period: int = 14
    rsi_overbought: float = 70        # ranging sell
    rsi_oversold: float = 30          # ranging buy

    # Adaptive trend thresholds: buy dips below / sell rallies above
    rsi_trend_buy_threshold: float = 45
    rsi_trend_sell_threshold: float = 55

    # EMA trend
    ema_short: int = 9
    ema_long: int = 21

    # ADX (trend strength)
    adx_period: int = 14
    adx_threshold: float = 25

    # Risk management, fractions of entry price
    stop_loss: float = 0.02
    take_profit: float = 0.04

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StrategyParams":
        """Build params from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


DEFAULT_STRATEGY = StrategyParams()


@dataclass(frozen=True)
class BacktestResult:
    net_profit: float = 0.0
    win_rate: float = 0.0          # percent
    trade_count: int = 0
    profit_factor: float = 0.0
    max_drawdown: float = 0.0      # fraction of peak equity
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0     # not computed, always 0
    avg_win: float = 0.0
    avg_loss: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OptimizationResult:
    params: StrategyParams
    result: BacktestResult
    fitness: float


@dataclass(frozen=True)
class RegimeMemoryEntry:
    params: StrategyParams
    analysis: Optional[Dict[str, Any]]
    score: float
    timestamp: int          # epoch ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "params": self.params.to_dict(),
            "analysis": self.analysis,
            "score": self.score,
            "timestamp": self.timestamp,
        }
