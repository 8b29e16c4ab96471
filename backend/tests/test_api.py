"""
HTTP tests for api/server.py using FastAPI's TestClient
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from neurotrade.api.server import app
from neurotrade.api.state import AppState, set_state
from neurotrade.infrastructure.storage.sqlite_repository import SQLiteRepository
from neurotrade.infrastructure.utils.config import NeuroTradeConfig
from neurotrade.models.market_models import MarketRegime, SignalType, TradeSignal
from neurotrade.models.strategy_models import DEFAULT_STRATEGY
from neurotrade.services.memory.regime_memory import RegimeMemory


@pytest.fixture
def state(tmp_path):
    repo = SQLiteRepository(tmp_path / "api.db")
    s = AppState(memory=RegimeMemory(), repo=repo, config=NeuroTradeConfig())
    set_state(s)
    yield s
    set_state(None)
    repo.close()


@pytest.fixture
def client(state):
    return TestClient(app)


def payload(candles, **extra):
    return {"candles": [c.to_dict() for c in candles], **extra}


class TestAnalysisEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"ok": True}

    def test_regime_short_history(self, client, short_candles):
        body = client.post("/regime", json=payload(short_candles, symbol="BTC")).json()
        assert body == {"symbol": "BTC", "regime": "UNKNOWN", "reason": "Insufficient data"}

    def test_regime_trending(self, client, uptrend_candles):
        body = client.post("/regime", json=payload(uptrend_candles)).json()
        assert body["regime"] == "TRENDING_UP"

    def test_signal_squeeze(self, client, flat_candles):
        resp = client.post("/signal", json=payload(flat_candles, symbol="ETH"))
        assert resp.status_code == 200
        body = resp.json()
        assert body["regime"] == "RANGING"
        assert body["type"] == "HOLD"
        assert body["reason"] == "Market Squeeze (Low Volatility)"
        assert body["signal"] is None

    def test_signal_with_given_regime(self, client, uptrend_candles):
        body = client.post(
            "/signal", json=payload(uptrend_candles[:113], symbol="SOL", regime="TRENDING_UP")
        ).json()
        assert body["regime"] == "TRENDING_UP"
        assert body["regime_reason"] == "Provided by caller"
        assert body["type"] == "BUY"
        assert body["signal"]["symbol"] == "SOL"
        assert body["signal"]["price"] == uptrend_candles[112].close

    def test_backtest_defaults(self, client, uptrend_candles):
        body = client.post("/backtest", json=payload(uptrend_candles, regime="TRENDING_UP")).json()
        assert body["params"] == DEFAULT_STRATEGY.to_dict()
        assert body["result"]["net_profit"] > 0
        assert body["result"]["profit_factor"] == 10.0
        assert body["trades"][0]["exit_type"] == "TP"

    def test_backtest_flat(self, client, flat_candles):
        body = client.post("/backtest", json=payload(flat_candles)).json()
        assert body["regime"] == "RANGING"
        assert body["result"]["trade_count"] == 0
        assert body["trades"] == []

    def test_backtest_custom_params(self, client, flat_candles):
        params = {**DEFAULT_STRATEGY.to_dict(), "ema_short": 5, "ema_long": 30}
        body = client.post("/backtest", json=payload(flat_candles, params=params)).json()
        assert body["params"]["ema_long"] == 30


class TestValidation:
    def test_invalid_params_rejected(self, client, flat_candles):
        params = {"ema_short": 30, "ema_long": 20}
        assert client.post("/backtest", json=payload(flat_candles, params=params)).status_code == 422

    def test_unsorted_candles_rejected(self, client, flat_candles):
        candles = list(reversed(flat_candles))
        assert client.post("/regime", json=payload(candles)).status_code == 422

    def test_unknown_regime_rejected(self, client, flat_candles):
        assert client.post("/signal", json=payload(flat_candles, regime="SIDEWAYS")).status_code == 422


class TestMemoryAndJournal:
    def test_memory_missing(self, client):
        assert client.get("/memory/BTC/RANGING").status_code == 404

    def test_memory_invalid_regime(self, client):
        assert client.get("/memory/BTC/SIDEWAYS").status_code == 422

    def test_memory_entry(self, client, state):
        asyncio.run(state.memory.offer("BTC", MarketRegime.RANGING, DEFAULT_STRATEGY, {"note": "x"}, 42.0, now=1000))
        resp = client.get("/memory/btc/RANGING")
        assert resp.status_code == 200
        body = resp.json()
        assert body["symbol"] == "BTC"
        assert body["score"] == 42.0
        assert body["timestamp"] == 1000
        assert body["analysis"] == {"note": "x"}
        assert body["params"]["ema_long"] == 21

    def test_signals_journal(self, client, state):
        for i, kind in enumerate((SignalType.BUY, SignalType.SELL)):
            state.repo.insert_signal(
                TradeSignal(
                    id=f"s{i}",
                    type=kind,
                    price=100.0 + i,
                    timestamp=1000 + i,
                    reason="test",
                    symbol="BTC",
                    regime_at_creation=MarketRegime.RANGING,
                )
            )
        body = client.get("/signals", params={"limit": 1}).json()
        assert [s["id"] for s in body] == ["s1"]
        assert body[0]["type"] == "SELL"
        assert body[0]["regime_at_creation"] == "RANGING"
        assert client.get("/signals", params={"symbol": "eth"}).json() == []
