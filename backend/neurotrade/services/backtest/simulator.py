"""
Deterministic long-only backtest of the adaptive signal rules.

Each bar: signal from the prefix ending at the bar, intrabar SL/TP check for an
open position (stop-loss wins when both are touched), signal exit at close,
entry at close on BUY, then mark-to-market. Any open position is force-closed
at the final close.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from neurotrade.models.market_models import Candle, MarketRegime, SignalType
from neurotrade.models.strategy_models import BacktestResult, StrategyParams
from neurotrade.services.strategy.adaptive_signal import generate_signal

STARTING_BALANCE = 10_000.0
FEE_RATE = 0.0006                   # taker fee, charged on entry and exit
WARMUP_EXTRA_BARS = 20
ANNUAL_FACTOR = math.sqrt(365 * 24 * 60)   # 1m bars
SHARPE_CLAMP = 5.0
MIN_STD_DEV = 1e-8
NO_LOSS_PROFIT_FACTOR = 10.0


@dataclass(frozen=True)
class SimTrade:
    entry_time: int
    exit_time: int
    entry_price: float
    exit_price: float
    pnl: float
    exit_type: str          # "SL" | "TP" | "SIGNAL" | "END"

    @property
    def win(self) -> bool:
        return self.pnl > 0


@dataclass
class _Position:
    entry_time: int
    entry_price: float
    amount: float
    cost_basis: float


@dataclass
class BacktestReport:
    result: BacktestResult
    trades: List[SimTrade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)


def warmup_period(params: StrategyParams) -> int:
    return max(params.rsi_period, params.ema_long, params.adx_period) + WARMUP_EXTRA_BARS


def _sharpe(equity_curve: Sequence[float]) -> float:
    returns = [
        (equity_curve[i] - equity_curve[i - 1]) / equity_curve[i - 1]
        for i in range(1, len(equity_curve))
    ]
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    std = math.sqrt(variance)
    if std <= MIN_STD_DEV:
        return 0.0
    sharpe = (mean / std) * ANNUAL_FACTOR
    return max(-SHARPE_CLAMP, min(SHARPE_CLAMP, sharpe))


def simulate(
    candles: Sequence[Candle],
    params: StrategyParams,
    regime: MarketRegime,
    *,
    starting_balance: float = STARTING_BALANCE,
    fee_rate: float = FEE_RATE,
) -> BacktestReport:
    """Full replay keeping the trade list and equity curve."""
    warmup = warmup_period(params)
    if len(candles) <= warmup:
        return BacktestReport(result=BacktestResult())

    balance = starting_balance
    position: Optional[_Position] = None

    trades: List[SimTrade] = []
    wins = 0
    gross_profit = 0.0
    gross_loss = 0.0
    peak_equity = starting_balance
    max_drawdown = 0.0
    equity_curve: List[float] = []

    def close_position(pos: _Position, exit_price: float, exit_time: int, exit_type: str) -> float:
        nonlocal wins, gross_profit, gross_loss
        gross_exit = pos.amount * exit_price
        net_exit = gross_exit - gross_exit * fee_rate
        pnl = net_exit - pos.cost_basis
        if pnl > 0:
            wins += 1
            gross_profit += pnl
        else:
            gross_loss += abs(pnl)
        trades.append(
            SimTrade(
                entry_time=pos.entry_time,
                exit_time=exit_time,
                entry_price=pos.entry_price,
                exit_price=exit_price,
                pnl=pnl,
                exit_type=exit_type,
            )
        )
        return net_exit

    for i in range(warmup, len(candles)):
        candle = candles[i]
        signal = generate_signal(candles[: i + 1], params, regime)

        if position is not None:
            stop_loss_price = position.entry_price * (1 - params.stop_loss)
            take_profit_price = position.entry_price * (1 + params.take_profit)

            exit_price: Optional[float] = None
            exit_type = ""
            # Both touched in one bar: assume the stop filled first
            if candle.low <= stop_loss_price:
                exit_price, exit_type = stop_loss_price, "SL"
            elif candle.high >= take_profit_price:
                exit_price, exit_type = take_profit_price, "TP"
            elif signal.type == SignalType.SELL:
                exit_price, exit_type = candle.close, "SIGNAL"

            if exit_price is not None:
                balance = close_position(position, exit_price, candle.time, exit_type)
                position = None

        if position is None and signal.type == SignalType.BUY:
            entry_fee = balance * fee_rate
            position = _Position(
                entry_time=candle.time,
                entry_price=candle.close,
                amount=(balance - entry_fee) / candle.close,
                cost_basis=balance,
            )

        equity = balance
        if position is not None:
            value = position.amount * candle.close
            equity = value - value * fee_rate
        equity_curve.append(equity)

        if equity > peak_equity:
            peak_equity = equity
        drawdown = (peak_equity - equity) / peak_equity
        if drawdown > max_drawdown:
            max_drawdown = drawdown

    if position is not None:
        last = candles[-1]
        balance = close_position(position, last.close, last.time, "END")
        position = None

    trade_count = len(trades)
    losses = trade_count - wins

    if gross_loss == 0:
        profit_factor = NO_LOSS_PROFIT_FACTOR if gross_profit > 0 else 0.0
    else:
        profit_factor = gross_profit / gross_loss

    result = BacktestResult(
        net_profit=balance - starting_balance,
        win_rate=(wins / trade_count) * 100 if trade_count > 0 else 0.0,
        trade_count=trade_count,
        profit_factor=profit_factor,
        max_drawdown=max_drawdown,
        sharpe_ratio=_sharpe(equity_curve),
        sortino_ratio=0.0,
        avg_win=gross_profit / wins if wins > 0 else 0.0,
        avg_loss=gross_loss / losses if losses > 0 else 0.0,
    )
    return BacktestReport(result=result, trades=trades, equity_curve=equity_curve)


def run_backtest(
    candles: Sequence[Candle],
    params: StrategyParams,
    regime: MarketRegime,
    *,
    starting_balance: float = STARTING_BALANCE,
    fee_rate: float = FEE_RATE,
) -> BacktestResult:
    return simulate(
        candles,
        params,
        regime,
        starting_balance=starting_balance,
        fee_rate=fee_rate,
    ).result
