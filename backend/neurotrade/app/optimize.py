"""
Genetic optimization of strategy params over a candle file or simulated history.

Usage:
  python -m neurotrade.app.optimize --candles data/eth_1m.csv [--workers 4] [--seed 7]
  python -m neurotrade.app.optimize --simulate 400 --symbol DOGE --store

With ``--store`` the winner is offered to regime memory (config ``memory`` backend).
"""

from __future__ import annotations

import argparse
import asyncio
import random
from concurrent.futures import Executor, ProcessPoolExecutor
from pathlib import Path
from typing import List, Optional

from neurotrade.app.backtest import add_source_arguments, print_report, resolve_candles
from neurotrade.infrastructure.logging.logging import configure_logging, get_logger
from neurotrade.infrastructure.storage.sqlite_repository import SQLiteRepository
from neurotrade.infrastructure.utils.config import NeuroTradeConfig, load_config
from neurotrade.models.market_models import Candle, MarketRegime
from neurotrade.models.strategy_models import OptimizationResult
from neurotrade.services.backtest.simulator import simulate
from neurotrade.services.market.regime import detect_regime
from neurotrade.services.memory.regime_memory import build_memory
from neurotrade.services.optimization.genetic import run_optimization

log = get_logger("optimize")


def _print_progress(generation: int, best_fitness: float, net_profit: float) -> None:
    print(f"  gen {generation:>3}: best fitness={best_fitness:.4f} top net={net_profit:+.2f}")


async def run_optimize_cli(
    config: NeuroTradeConfig,
    candles: List[Candle],
    symbol: str,
    regime: Optional[MarketRegime] = None,
    *,
    workers: Optional[int] = None,
    seed: Optional[int] = None,
    store: bool = False,
) -> OptimizationResult:
    if regime is None:
        regime = detect_regime(candles).regime
    workers = config.optimizer.workers if workers is None else workers
    seed = config.optimizer.seed if seed is None else seed
    baseline = config.strategy.to_params()

    executor: Optional[Executor] = ProcessPoolExecutor(max_workers=workers) if workers > 0 else None
    try:
        best = await run_optimization(
            candles,
            regime,
            baseline=baseline,
            population_size=config.optimizer.population_size,
            generations=config.optimizer.generations,
            rng=random.Random(seed),
            executor=executor,
            on_progress=_print_progress,
            starting_balance=config.backtest.starting_balance,
            fee_rate=config.backtest.fee_rate,
        )
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    report = simulate(
        candles,
        best.params,
        regime,
        starting_balance=config.backtest.starting_balance,
        fee_rate=config.backtest.fee_rate,
    )
    print_report(symbol, regime, report, title="OPTIMIZED")
    print("Best params:")
    for name, value in best.params.to_dict().items():
        marker = "" if getattr(baseline, name) == value else f"  (was {getattr(baseline, name)})"
        print(f"  {name:<24} {value}{marker}")
    print(f"  fitness                  {best.fitness:.4f}\n")

    if store:
        repo = SQLiteRepository(Path(config.database.sqlite_path)) if config.memory.backend == "sqlite" else None
        try:
            memory = build_memory(config.memory.backend, repo, staleness_seconds=config.memory.staleness_seconds)
            analysis = {"regime": regime.value, "fitness": best.fitness, "backtest": best.result.to_dict()}
            decision = await memory.offer(symbol, regime, best.params, analysis, best.result.net_profit)
            print(f"Memory: {decision.value}")
        finally:
            if repo is not None:
                repo.close()

    return best


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Optimize strategy params with a genetic search")
    add_source_arguments(parser)
    parser.add_argument("--workers", type=int, default=None, help="Process pool size (0 = inline)")
    parser.add_argument("--store", action="store_true", help="Offer the winner to regime memory")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config.log_level, json_logs=False)
    candles = resolve_candles(args.candles, args.simulate, args.symbol, args.seed)
    regime = MarketRegime(args.regime) if args.regime else None
    asyncio.run(
        run_optimize_cli(
            config,
            candles,
            args.symbol.upper(),
            regime,
            workers=args.workers,
            seed=args.seed,
            store=args.store,
        )
    )


if __name__ == "__main__":
    main()
