"""
Backtest of the adaptive strategy over a candle file or a simulated history.

Usage:
  python -m neurotrade.app.backtest --candles data/btc_1m.json [--regime TRENDING_UP]
  python -m neurotrade.app.backtest --simulate 600 --symbol SOL

The regime is detected from the full history unless given explicitly; params
come from the ``strategy`` section of the config.
"""

from __future__ import annotations

import argparse
import random
from pathlib import Path
from typing import List, Optional

from neurotrade.infrastructure.logging.logging import configure_logging, get_logger
from neurotrade.infrastructure.utils.config import NeuroTradeConfig, load_config
from neurotrade.infrastructure.utils.timeutils import ms_to_iso
from neurotrade.models.market_models import Candle, MarketRegime
from neurotrade.services.backtest.simulator import BacktestReport, simulate
from neurotrade.services.market.history import load_candles
from neurotrade.services.market.regime import detect_regime
from neurotrade.services.market.simulated_feed import BASE_PRICES, DEFAULT_BASE_PRICE, generate_history

log = get_logger("backtest")


def resolve_candles(
    candles_path: Optional[Path],
    simulate_count: Optional[int],
    symbol: str,
    seed: Optional[int] = None,
) -> List[Candle]:
    """Candles from a file when given, otherwise a seeded synthetic history."""
    if candles_path is not None:
        return load_candles(candles_path)
    count = simulate_count or 300
    start = BASE_PRICES.get(symbol.upper(), DEFAULT_BASE_PRICE)
    return generate_history(count, start, rng=random.Random(seed))


def print_report(symbol: str, regime: MarketRegime, report: BacktestReport, title: str = "BACKTEST") -> None:
    r = report.result
    print("\n" + "=" * 60)
    print(f"{title} - {symbol} ({regime.value})")
    print("=" * 60)
    print(f"  Trades:        {r.trade_count}")
    print(f"  Win rate:      {r.win_rate:.2f}%")
    print(f"  Net profit:    {r.net_profit:+.2f}")
    print(f"  Profit factor: {r.profit_factor:.2f}")
    print(f"  Max drawdown:  {r.max_drawdown * 100:.2f}%")
    print(f"  Sharpe:        {r.sharpe_ratio:.2f}")
    print(f"  Avg win/loss:  {r.avg_win:.2f} / {r.avg_loss:.2f}")
    print("=" * 60)
    if report.trades:
        print("\nLast 10 trades:")
        for t in report.trades[-10:]:
            res = "WIN" if t.win else "LOSS"
            print(
                f"  {ms_to_iso(t.entry_time)[:19]} -> {ms_to_iso(t.exit_time)[:19]} "
                f"entry={t.entry_price:.4f} exit={t.exit_price:.4f} [{t.exit_type}] {res} pnl={t.pnl:+.2f}"
            )
    print()


def run_backtest_cli(
    config: NeuroTradeConfig,
    candles: List[Candle],
    symbol: str,
    regime: Optional[MarketRegime] = None,
) -> BacktestReport:
    if regime is None:
        regime = detect_regime(candles).regime
    params = config.strategy.to_params()
    log.info("backtest_start", symbol=symbol, candles=len(candles), regime=regime.value)
    report = simulate(
        candles,
        params,
        regime,
        starting_balance=config.backtest.starting_balance,
        fee_rate=config.backtest.fee_rate,
    )
    log.info("backtest_done", symbol=symbol, trades=report.result.trade_count, net_profit=round(report.result.net_profit, 2))
    print_report(symbol, regime, report)
    return report


def add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--candles", type=Path, default=None, help="Candle file (.json or .csv)")
    source.add_argument("--simulate", type=int, default=None, metavar="N", help="Use N simulated 1m candles")
    parser.add_argument("--symbol", default="BTC", help="Asset label (and simulated base price)")
    parser.add_argument("--regime", choices=[r.value for r in MarketRegime], default=None, help="Force a regime")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed for simulated history")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Backtest the adaptive strategy")
    add_source_arguments(parser)
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config.log_level, json_logs=False)
    candles = resolve_candles(args.candles, args.simulate, args.symbol, args.seed)
    regime = MarketRegime(args.regime) if args.regime else None
    run_backtest_cli(config, candles, args.symbol.upper(), regime)


if __name__ == "__main__":
    main()
