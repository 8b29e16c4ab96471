"""
Unit tests for services/optimization/genetic.py
"""
import asyncio
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from neurotrade.models.market_models import MarketRegime
from neurotrade.models.strategy_models import DEFAULT_STRATEGY, BacktestResult, StrategyParams
from neurotrade.services.backtest.simulator import run_backtest
from neurotrade.services.optimization.genetic import (
    GENES,
    NO_TRADE_FITNESS,
    crossover,
    fitness,
    mutate,
    random_params,
    repair,
    run_optimization,
)


def assert_legal(p: StrategyParams) -> None:
    assert p.rsi_oversold < p.rsi_overbought
    assert p.rsi_oversold <= p.rsi_overbought - 10
    assert p.ema_short < p.ema_long
    assert p.ema_long >= p.ema_short + 5
    assert p.take_profit > p.stop_loss
    assert p.take_profit >= p.stop_loss + 0.01 - 1e-12
    for name, gene in GENES.items():
        value = getattr(p, name)
        if name not in ("rsi_oversold", "ema_long", "take_profit"):
            assert gene.floor <= value <= gene.ceiling


class TestFitness:
    def test_no_trades(self):
        assert fitness(BacktestResult()) == NO_TRADE_FITNESS

    def test_profit_factor_capped(self):
        r = BacktestResult(net_profit=100.0, win_rate=50.0, trade_count=10, profit_factor=5.0)
        assert fitness(r) == pytest.approx(300.0)

    def test_few_trades_penalized(self):
        r = BacktestResult(net_profit=100.0, win_rate=100.0, trade_count=2, profit_factor=2.0)
        assert fitness(r) == pytest.approx(100.0 * 2.0 * 2.0 * 0.2)

    def test_losing_run_is_negative(self):
        r = BacktestResult(net_profit=-50.0, win_rate=40.0, trade_count=8, profit_factor=0.5)
        assert fitness(r) < 0


class TestOperators:
    def test_repair_enforces_invariants(self):
        broken = replace(
            DEFAULT_STRATEGY,
            rsi_overbought=60,
            rsi_oversold=58,
            ema_short=30,
            ema_long=20,
            stop_loss=0.05,
            take_profit=0.03,
        )
        fixed = repair(broken)
        assert fixed.rsi_oversold == 50
        assert fixed.ema_long == 35
        assert fixed.take_profit == pytest.approx(0.06)
        assert_legal(fixed)

    def test_repair_clamps_to_limits(self):
        fixed = repair(replace(DEFAULT_STRATEGY, rsi_period=500, stop_loss=0.0001, adx_period=3))
        assert fixed.rsi_period == 50
        assert fixed.stop_loss == 0.005
        assert fixed.adx_period == 14

    def test_repair_keeps_defaults(self):
        assert repair(DEFAULT_STRATEGY) == DEFAULT_STRATEGY

    def test_random_crossover_mutation_stay_legal(self):
        rng = random.Random(1234)
        population = [random_params(rng) for _ in range(30)]
        for p in population:
            assert_legal(p)
            assert 7 <= p.rsi_period <= 17
            assert 0.01 <= p.stop_loss <= 0.05
        for _ in range(200):
            child = crossover(rng.choice(population), rng.choice(population), rng)
            assert_legal(child)
            assert_legal(mutate(child, rng))

    def test_crossover_takes_genes_from_parents(self):
        rng = random.Random(5)
        a = random_params(rng)
        b = random_params(rng)
        child = crossover(a, b, rng)
        for name in ("rsi_period", "rsi_trend_buy_threshold", "ema_short", "stop_loss"):
            assert getattr(child, name) in (getattr(a, name), getattr(b, name))

    def test_mutation_leaves_fixed_genes(self):
        rng = random.Random(9)
        p = DEFAULT_STRATEGY
        for _ in range(50):
            p = mutate(p, rng)
            assert p.adx_period == 14
            assert p.adx_threshold == 25


class TestRunOptimization:
    def test_never_worse_than_baseline(self, small_v_candles):
        regime = MarketRegime.TRENDING_UP
        best = asyncio.run(
            run_optimization(small_v_candles, regime, population_size=4, generations=2, rng=random.Random(3))
        )
        baseline = fitness(run_backtest(small_v_candles, DEFAULT_STRATEGY, regime))
        assert best.fitness >= baseline
        assert best.fitness == pytest.approx(fitness(best.result))
        assert_legal(best.params)

    def test_seeded_runs_are_reproducible(self, small_v_candles):
        def run():
            return asyncio.run(
                run_optimization(
                    small_v_candles,
                    MarketRegime.RANGING,
                    population_size=4,
                    generations=2,
                    rng=random.Random(42),
                )
            )

        assert run() == run()

    def test_executor_matches_inline(self, small_v_candles):
        kwargs = dict(population_size=4, generations=2)
        inline = asyncio.run(
            run_optimization(small_v_candles, MarketRegime.RANGING, rng=random.Random(11), **kwargs)
        )
        with ThreadPoolExecutor(max_workers=2) as pool:
            parallel = asyncio.run(
                run_optimization(
                    small_v_candles, MarketRegime.RANGING, rng=random.Random(11), executor=pool, **kwargs
                )
            )
        assert parallel == inline

    def test_external_seed_is_sanitized(self, small_v_candles):
        seed = replace(DEFAULT_STRATEGY, ema_short=40, ema_long=10)
        best = asyncio.run(
            run_optimization(
                small_v_candles,
                MarketRegime.RANGING,
                seed,
                population_size=3,
                generations=1,
                rng=random.Random(0),
            )
        )
        assert_legal(best.params)

    def test_progress_callback(self, small_v_candles):
        calls = []
        asyncio.run(
            run_optimization(
                small_v_candles,
                MarketRegime.RANGING,
                population_size=2,
                generations=3,
                rng=random.Random(1),
                on_progress=lambda gen, best, net: calls.append(gen),
            )
        )
        assert calls == [1, 2, 3]

    def test_rejects_degenerate_settings(self, small_v_candles):
        with pytest.raises(ValueError):
            asyncio.run(run_optimization(small_v_candles, MarketRegime.RANGING, population_size=1))
        with pytest.raises(ValueError):
            asyncio.run(run_optimization(small_v_candles, MarketRegime.RANGING, generations=0))
