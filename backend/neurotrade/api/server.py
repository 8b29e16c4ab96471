# neurotrade/api/server.py
from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from neurotrade.api.state import AppState, get_state, set_state
from neurotrade.infrastructure.logging.logging import get_logger
from neurotrade.infrastructure.storage.sqlite_repository import SQLiteRepository
from neurotrade.infrastructure.utils.config import StrategyDefaultsConfig, get_config
from neurotrade.models.market_models import Candle, MarketRegime
from neurotrade.models.strategy_models import DEFAULT_STRATEGY, StrategyParams
from neurotrade.services.backtest.simulator import FEE_RATE, STARTING_BALANCE, simulate
from neurotrade.services.market.regime import detect_regime
from neurotrade.services.memory.regime_memory import build_memory
from neurotrade.services.strategy.adaptive_signal import build_trade_signal, generate_signal

JsonDict = Dict[str, Any]

log = get_logger("api")

app = FastAPI(title="NeuroTrade Strategy Engine API", version="0.1.0")


# CORS (dashboard)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _init_state() -> None:
    """Standalone API process: build memory/repo from config unless the engine already did."""
    try:
        get_state()
        return
    except RuntimeError:
        pass
    config = get_config()
    repo = SQLiteRepository(Path(config.database.sqlite_path))
    memory = build_memory(config.memory.backend, repo, staleness_seconds=config.memory.staleness_seconds)
    set_state(AppState(memory=memory, repo=repo, config=config))
    log.info("api_state_initialized", memory_backend=config.memory.backend)


# --------- Schemas ---------
class CandlePayload(BaseModel):
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class AnalysisRequest(BaseModel):
    symbol: Optional[str] = None
    candles: List[CandlePayload] = Field(default_factory=list)
    params: Optional[StrategyDefaultsConfig] = None
    regime: Optional[MarketRegime] = None

    @field_validator("candles")
    @classmethod
    def validate_order(cls, v: List[CandlePayload]) -> List[CandlePayload]:
        for prev, cur in zip(v, v[1:]):
            if cur.time <= prev.time:
                raise ValueError("candles must be sorted by strictly increasing time")
        return v

    def to_candles(self) -> List[Candle]:
        return [Candle(**c.model_dump()) for c in self.candles]

    def to_params(self) -> StrategyParams:
        return self.params.to_params() if self.params is not None else DEFAULT_STRATEGY

    def resolve_regime(self, candles: List[Candle]) -> tuple[MarketRegime, str]:
        if self.regime is not None:
            return self.regime, "Provided by caller"
        classification = detect_regime(candles)
        return classification.regime, classification.reason


def _backtest_settings() -> tuple[float, float]:
    try:
        cfg = get_state().config.backtest
    except RuntimeError:
        return STARTING_BALANCE, FEE_RATE
    return cfg.starting_balance, cfg.fee_rate


# --------- Routes ---------
@app.get("/health")
def health():
    return {"ok": True}


@app.post("/regime")
def regime(payload: AnalysisRequest):
    classification = detect_regime(payload.to_candles())
    return {
        "symbol": payload.symbol,
        "regime": classification.regime.value,
        "reason": classification.reason,
    }


@app.post("/signal")
def signal(payload: AnalysisRequest):
    candles = payload.to_candles()
    params = payload.to_params()
    current_regime, regime_reason = payload.resolve_regime(candles)
    decision = generate_signal(candles, params, current_regime)
    trade = build_trade_signal(payload.symbol, candles, decision, current_regime) if payload.symbol else None
    return {
        "symbol": payload.symbol,
        "regime": current_regime.value,
        "regime_reason": regime_reason,
        "type": decision.type.value,
        "reason": decision.reason,
        "signal": trade.to_dict() if trade else None,
    }


@app.post("/backtest")
def backtest(payload: AnalysisRequest):
    candles = payload.to_candles()
    params = payload.to_params()
    current_regime, _ = payload.resolve_regime(candles)
    starting_balance, fee_rate = _backtest_settings()
    report = simulate(candles, params, current_regime, starting_balance=starting_balance, fee_rate=fee_rate)
    return {
        "symbol": payload.symbol,
        "regime": current_regime.value,
        "params": params.to_dict(),
        "result": report.result.to_dict(),
        "trades": [asdict(t) for t in report.trades],
    }


@app.get("/memory/{symbol}/{regime}")
async def memory_entry(symbol: str, regime: MarketRegime):
    s = get_state()
    entry = await s.memory.get(symbol.upper(), regime)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No memory for {symbol.upper()} in {regime.value}")
    return {"symbol": symbol.upper(), "regime": regime.value, **entry.to_dict()}


@app.get("/signals")
def signals(limit: int = Query(default=200, ge=1, le=5000), symbol: Optional[str] = None) -> List[JsonDict]:
    s = get_state()
    if s.repo is None:
        return []
    return s.repo.list_signals(limit=limit, symbol=symbol.upper() if symbol else None)
