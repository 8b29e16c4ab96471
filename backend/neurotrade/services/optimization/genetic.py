"""Genetic search over StrategyParams, scored by backtest fitness."""

from __future__ import annotations

import asyncio
import random
from concurrent.futures import Executor
from dataclasses import dataclass, fields, replace
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence

from neurotrade.infrastructure.logging.logging import get_logger
from neurotrade.models.market_models import Candle, MarketRegime
from neurotrade.models.strategy_models import (
    DEFAULT_STRATEGY,
    BacktestResult,
    OptimizationResult,
    StrategyParams,
)
from neurotrade.services.backtest.simulator import FEE_RATE, STARTING_BALANCE, run_backtest

log = get_logger("optimizer")

POPULATION_SIZE = 20
GENERATIONS = 10
MUTATION_PROBABILITY = 0.8     # per child
GENE_MUTATION_RATE = 0.5       # per gene, once a child mutates
NO_TRADE_FITNESS = -1000.0
LOW_TRADE_COUNT = 5
LOW_TRADE_PENALTY = 0.2
PROFIT_FACTOR_CAP = 3.0

MIN_RSI_SPREAD = 10            # oversold stays at least this far below overbought
MIN_EMA_SPREAD = 5
MIN_TP_SL_SPREAD = 0.01

ProgressCallback = Callable[[int, float, float], None]


@dataclass(frozen=True)
class Gene:
    init_low: float
    init_high: float
    floor: float
    ceiling: float
    step: float                 # additive step, or multiplicative factor delta when relative
    integer: bool = True
    relative: bool = False
    mutable: bool = True


GENES: Dict[str, Gene] = {
    "rsi_period": Gene(7, 17, 2, 50, 1),
    "rsi_overbought": Gene(65, 80, 51, 99, 2),
    "rsi_oversold": Gene(20, 35, 1, 89, 2),
    "rsi_trend_buy_threshold": Gene(40, 60, 30, 70, 2),
    "rsi_trend_sell_threshold": Gene(40, 60, 30, 70, 2),
    "ema_short": Gene(5, 15, 2, 100, 1),
    "ema_long": Gene(20, 50, 7, 200, 1),
    "adx_period": Gene(14, 14, 14, 14, 0, mutable=False),
    "adx_threshold": Gene(25, 25, 25, 25, 0, mutable=False),
    "stop_loss": Gene(0.01, 0.05, 0.005, 0.2, 0.1, integer=False, relative=True),
    "take_profit": Gene(0.02, 0.10, 0.015, 0.5, 0.1, integer=False, relative=True),
}


def fitness(r: BacktestResult) -> float:
    """Profit weighted by capped profit factor and win rate; few-trade runs are penalized."""
    if r.trade_count == 0:
        return NO_TRADE_FITNESS
    penalty = LOW_TRADE_PENALTY if r.trade_count < LOW_TRADE_COUNT else 1.0
    pf_score = min(r.profit_factor, PROFIT_FACTOR_CAP)
    return r.net_profit * pf_score * (r.win_rate / 50) * penalty


def repair(params: StrategyParams) -> StrategyParams:
    """Clamp every gene into its hard limits and re-apply the cross-gene invariants."""
    values = params.to_dict()
    for name, gene in GENES.items():
        v = min(gene.ceiling, max(gene.floor, float(values[name])))
        values[name] = int(round(v)) if gene.integer else v

    values["rsi_oversold"] = min(values["rsi_oversold"], values["rsi_overbought"] - MIN_RSI_SPREAD)
    values["ema_long"] = max(values["ema_long"], values["ema_short"] + MIN_EMA_SPREAD)
    values["take_profit"] = max(values["take_profit"], values["stop_loss"] + MIN_TP_SL_SPREAD)
    return StrategyParams(**values)


def random_params(rng: random.Random) -> StrategyParams:
    values = {}
    for name, gene in GENES.items():
        if gene.integer:
            values[name] = rng.randint(int(gene.init_low), int(gene.init_high))
        else:
            values[name] = rng.uniform(gene.init_low, gene.init_high)
    return repair(StrategyParams(**values))


def crossover(parent1: StrategyParams, parent2: StrategyParams, rng: random.Random) -> StrategyParams:
    child = {
        f.name: getattr(parent1 if rng.random() < 0.5 else parent2, f.name)
        for f in fields(StrategyParams)
    }
    return repair(StrategyParams(**child))


def mutate(params: StrategyParams, rng: random.Random) -> StrategyParams:
    changes = {}
    for name, gene in GENES.items():
        if not gene.mutable or rng.random() >= GENE_MUTATION_RATE:
            continue
        up = rng.random() < 0.5
        current = getattr(params, name)
        if gene.relative:
            changes[name] = current * ((1 + gene.step) if up else (1 - gene.step))
        else:
            changes[name] = current + (gene.step if up else -gene.step)
    return repair(replace(params, **changes))


async def _evaluate(
    population: Sequence[StrategyParams],
    evaluate: Callable[[StrategyParams], BacktestResult],
    executor: Optional[Executor],
) -> List[BacktestResult]:
    """Backtest a whole generation; returns only once every individual has finished."""
    if executor is None:
        return [evaluate(p) for p in population]
    loop = asyncio.get_running_loop()
    futures = [loop.run_in_executor(executor, evaluate, p) for p in population]
    return list(await asyncio.gather(*futures))


async def run_optimization(
    candles: Sequence[Candle],
    regime: MarketRegime,
    seed_params: Optional[StrategyParams] = None,
    *,
    baseline: StrategyParams = DEFAULT_STRATEGY,
    population_size: int = POPULATION_SIZE,
    generations: int = GENERATIONS,
    rng: Optional[random.Random] = None,
    executor: Optional[Executor] = None,
    on_progress: Optional[ProgressCallback] = None,
    starting_balance: float = STARTING_BALANCE,
    fee_rate: float = FEE_RATE,
) -> OptimizationResult:
    """
    Evolve a population seeded with the baseline (and the optional external seed)
    and return the best-ever individual. The global best starts as the baseline's
    own backtest, so the result never scores below it.
    """
    if population_size < 2:
        raise ValueError("population_size must be >= 2")
    if generations < 1:
        raise ValueError("generations must be >= 1")

    rng = rng or random.Random()
    candles = list(candles)
    evaluate = partial(
        run_backtest,
        candles,
        regime=regime,
        starting_balance=starting_balance,
        fee_rate=fee_rate,
    )

    population: List[StrategyParams] = [baseline]
    if seed_params is not None:
        population.append(repair(seed_params))
    while len(population) < population_size:
        population.append(random_params(rng))

    baseline_result = evaluate(baseline)
    best = OptimizationResult(baseline, baseline_result, fitness(baseline_result))
    log.info(
        "optimization_start",
        regime=regime.value,
        candles=len(candles),
        population=population_size,
        generations=generations,
        seeded=seed_params is not None,
        parallel=executor is not None,
        baseline_fitness=round(best.fitness, 4),
    )

    half = population_size // 2
    for gen in range(generations):
        results = await _evaluate(population, evaluate, executor)

        scored = sorted(
            ((p, r, fitness(r)) for p, r in zip(population, results)),
            key=lambda item: item[2],
            reverse=True,
        )
        top_params, top_result, top_fitness = scored[0]
        if top_fitness > best.fitness:
            best = OptimizationResult(top_params, top_result, top_fitness)

        log.debug(
            "generation_done",
            generation=gen + 1,
            top_fitness=round(top_fitness, 4),
            best_fitness=round(best.fitness, 4),
            top_net_profit=round(top_result.net_profit, 2),
        )
        if on_progress is not None:
            on_progress(gen + 1, best.fitness, top_result.net_profit)

        survivors = [p for p, _, _ in scored[:half]]
        next_gen = list(survivors)
        while len(next_gen) < population_size:
            p1 = rng.choice(survivors)
            p2 = rng.choice(survivors)
            child = crossover(p1, p2, rng)
            if rng.random() < MUTATION_PROBABILITY:
                child = mutate(child, rng)
            next_gen.append(child)
        population = next_gen

        # let other tasks on the loop run between generations
        await asyncio.sleep(0)

    log.info(
        "optimization_done",
        regime=regime.value,
        best_fitness=round(best.fitness, 4),
        net_profit=round(best.result.net_profit, 2),
        trades=best.result.trade_count,
    )
    return best
