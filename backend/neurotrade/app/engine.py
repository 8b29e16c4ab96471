"""Adaptive strategy engine loop.

Per asset and per cycle: fetch -> merge -> regime -> signal -> (optimize -> memory).
Assets run concurrently; a failing asset is logged and skipped for that cycle.
"""

from __future__ import annotations

import asyncio
import random
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from neurotrade.api.state import AppState, set_state
from neurotrade.infrastructure.logging.logging import asset_context, configure_logging, get_logger
from neurotrade.infrastructure.storage.sqlite_repository import SQLiteRepository
from neurotrade.infrastructure.utils.config import NeuroTradeConfig, load_config
from neurotrade.infrastructure.utils.timeutils import now_ms
from neurotrade.models.market_models import MarketRegime, TradeSignal
from neurotrade.models.strategy_models import OptimizationResult, StrategyParams
from neurotrade.services.market.candle_store import CandleStore
from neurotrade.services.market.regime import detect_regime
from neurotrade.services.market.simulated_feed import CandleFeed, SimulatedFeed
from neurotrade.services.memory.regime_memory import RegimeMemory, build_memory
from neurotrade.services.optimization.advisory import (
    Advisor,
    HeuristicAdvisor,
    parse_advisory,
    seed_from_advisory,
)
from neurotrade.services.optimization.genetic import run_optimization
from neurotrade.services.strategy.adaptive_signal import build_trade_signal, generate_signal

log = get_logger("engine")


@dataclass
class AssetState:
    symbol: str
    strategy: StrategyParams
    regime: MarketRegime = MarketRegime.UNKNOWN
    regime_reason: str = ""
    last_signal: Optional[TradeSignal] = None
    last_optimized_ms: Optional[int] = None
    analysis: Optional[Dict[str, Any]] = None
    cycles: int = 0
    failures: int = 0


@dataclass
class AssetEngine:
    config: NeuroTradeConfig
    feed: CandleFeed
    memory: RegimeMemory
    store: CandleStore
    repo: Optional[SQLiteRepository] = None
    advisor: Optional[Advisor] = None
    executor: Optional[Executor] = None
    rng: random.Random = field(default_factory=random.Random)

    states: Dict[str, AssetState] = field(default_factory=dict)

    def state_for(self, symbol: str) -> AssetState:
        if symbol not in self.states:
            self.states[symbol] = AssetState(symbol=symbol, strategy=self.config.strategy.to_params())
        return self.states[symbol]

    def _optimization_due(self, state: AssetState, candle_count: int, now: int) -> bool:
        if candle_count < self.config.optimizer.min_candles:
            return False
        if state.last_optimized_ms is None:
            return True
        return now - state.last_optimized_ms >= self.config.optimizer.reoptimize_after_seconds * 1000

    async def _warm_start(self, state: AssetState, regime: MarketRegime) -> StrategyParams:
        """Best-known params for the regime, or the configured defaults when memory is empty."""
        entry = await self.memory.get(state.symbol, regime)
        if entry is None:
            return self.config.strategy.to_params()
        if entry.params != state.strategy:
            log.info("warm_start_from_memory", regime=regime.value, score=round(entry.score, 4))
        return entry.params

    async def _advisory_seed(self, state: AssetState, candles: List[Any]) -> tuple[Optional[StrategyParams], Optional[Dict[str, Any]]]:
        if self.advisor is None:
            return None, None
        advisory = parse_advisory(await self.advisor.advise(state.symbol, candles, state.strategy))
        if advisory is None:
            return None, None
        if advisory.regime is not None and advisory.regime != state.regime:
            log.info("advisory_regime_mismatch", advised=advisory.regime.value, detected=state.regime.value)
        return seed_from_advisory(advisory, state.strategy), advisory.model_dump(mode="json")

    async def _optimize(self, state: AssetState, candles: List[Any], now: int) -> OptimizationResult:
        seed, advisory = await self._advisory_seed(state, candles)
        opt = self.config.optimizer
        best = await run_optimization(
            candles,
            state.regime,
            seed,
            baseline=state.strategy,
            population_size=opt.population_size,
            generations=opt.generations,
            rng=self.rng,
            executor=self.executor,
            starting_balance=self.config.backtest.starting_balance,
            fee_rate=self.config.backtest.fee_rate,
        )
        analysis = {
            "regime": state.regime.value,
            "reason": state.regime_reason,
            "fitness": best.fitness,
            "backtest": best.result.to_dict(),
            "advisory": advisory,
            "optimized_at": now,
        }
        decision = await self.memory.offer(
            state.symbol, state.regime, best.params, analysis, best.result.net_profit, now=now
        )
        state.strategy = best.params
        state.analysis = analysis
        state.last_optimized_ms = now
        log.info(
            "asset_optimized",
            decision=decision.value,
            net_profit=round(best.result.net_profit, 2),
            trades=best.result.trade_count,
            win_rate=round(best.result.win_rate, 2),
        )
        return best

    async def process_asset(self, symbol: str) -> AssetState:
        """One full cycle for one asset. Exceptions propagate to the caller."""
        state = self.state_for(symbol)
        now = now_ms()

        batch = await self.feed.fetch(symbol, self.config.engine.fetch_limit)
        candles = await self.store.append(symbol, batch)

        classification = detect_regime(candles)
        state.regime = classification.regime
        state.regime_reason = classification.reason

        with asset_context(symbol, regime=state.regime.value):
            state.strategy = await self._warm_start(state, state.regime)

            decision = generate_signal(candles, state.strategy, state.regime)
            signal = build_trade_signal(symbol, candles, decision, state.regime)
            if signal is not None:
                state.last_signal = signal
                log.info("signal", type=signal.type.value, price=signal.price, reason=signal.reason)
                if self.repo is not None:
                    await asyncio.to_thread(self.repo.insert_signal, signal)

            if self._optimization_due(state, len(candles), now):
                await self._optimize(state, candles, now)

        state.cycles += 1
        return state

    async def _guarded(self, symbol: str) -> None:
        try:
            await self.process_asset(symbol)
        except Exception as e:
            self.state_for(symbol).failures += 1
            log.error("asset_cycle_failed", symbol=symbol, error=str(e), error_type=type(e).__name__)

    async def run_cycle(self) -> None:
        await asyncio.gather(*(self._guarded(s) for s in self.config.engine.symbols))

    async def run(self, max_cycles: Optional[int] = None) -> None:
        cycle = 0
        while max_cycles is None or cycle < max_cycles:
            await self.run_cycle()
            cycle += 1
            log.debug("cycle_done", cycle=cycle)
            if max_cycles is not None and cycle >= max_cycles:
                break
            await asyncio.sleep(self.config.engine.poll_interval_seconds)


async def run_engine(config_path: Optional[Path] = None, *, feed: Optional[CandleFeed] = None) -> None:
    config = load_config(config_path)
    configure_logging(config.log_level)
    log.info(
        "engine_start",
        symbols=config.engine.symbols,
        memory_backend=config.memory.backend,
        workers=config.optimizer.workers,
    )

    repo = SQLiteRepository(Path(config.database.sqlite_path))
    memory = build_memory(config.memory.backend, repo, staleness_seconds=config.memory.staleness_seconds)
    set_state(AppState(memory=memory, repo=repo, config=config))

    rng = random.Random(config.optimizer.seed)
    executor: Optional[Executor] = (
        ProcessPoolExecutor(max_workers=config.optimizer.workers) if config.optimizer.workers > 0 else None
    )
    engine = AssetEngine(
        config=config,
        feed=feed or SimulatedFeed(seed=config.optimizer.seed, history_length=config.engine.max_history),
        memory=memory,
        store=CandleStore(max_history=config.engine.max_history),
        repo=repo,
        advisor=HeuristicAdvisor(random.Random(config.optimizer.seed)),
        executor=executor,
        rng=rng,
    )
    try:
        await engine.run(config.engine.max_cycles)
    except asyncio.CancelledError:
        log.info("engine_cancelled")
        raise
    finally:
        if executor is not None:
            executor.shutdown(wait=True)
        repo.close()
        log.info("engine_stopped")
