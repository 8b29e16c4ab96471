"""Synthetic 1m candle feed (random walk) used when no live market feed is wired."""

from __future__ import annotations

import random
from typing import Dict, List, Optional, Protocol

from neurotrade.infrastructure.logging.logging import get_logger
from neurotrade.infrastructure.utils.timeutils import now_ms
from neurotrade.models.market_models import Candle

log = get_logger("simulated_feed")

CANDLE_MS = 60 * 1000
VOLATILITY = 0.0008          # 0.08% per minute

BASE_PRICES: Dict[str, float] = {
    "BTC": 94500.0,
    "ETH": 3100.0,
    "SOL": 240.0,
    "DOGE": 0.38,
    "XRP": 1.10,
    "ADA": 0.75,
}
DEFAULT_BASE_PRICE = 100.0


class CandleFeed(Protocol):
    async def fetch(self, symbol: str, limit: int) -> List[Candle]:
        ...


def generate_history(
    length: int,
    start_price: float,
    *,
    end_time_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> List[Candle]:
    """Random walk with occasional trend persistence, strictly 1 minute apart."""
    rng = rng or random.Random()
    end_time_ms = now_ms() if end_time_ms is None else end_time_ms
    time = end_time_ms - (end_time_ms % CANDLE_MS) - length * CANDLE_MS
    price = float(start_price)

    candles: List[Candle] = []
    for _ in range(length):
        volatility = price * VOLATILITY
        change = (rng.random() - 0.5) * volatility
        open_ = price
        close = price + change
        high = max(open_, close) + rng.random() * volatility * 0.5
        low = min(open_, close) - rng.random() * volatility * 0.5

        # trend persistence
        price += change * 2 if rng.random() > 0.90 else change

        candles.append(
            Candle(
                time=time,
                open=open_,
                high=high,
                low=low,
                close=close,
                volume=float(rng.randint(100, 1099)),
            )
        )
        time += CANDLE_MS
    return candles


def next_candle(last: Candle, rng: Optional[random.Random] = None) -> Candle:
    """Next live bar; centered slightly above 0.5 for a faint bullish drift."""
    rng = rng or random.Random()
    volatility = last.close * VOLATILITY
    change = (rng.random() - 0.48) * volatility
    open_ = last.close
    close = open_ + change
    return Candle(
        time=last.time + CANDLE_MS,
        open=open_,
        high=max(open_, close) + rng.random() * volatility * 0.4,
        low=min(open_, close) - rng.random() * volatility * 0.4,
        close=close,
        volume=float(rng.randint(50, 1549)),
    )


class SimulatedFeed:
    """Serves a full history on first fetch, then 1-2 new candles per fetch."""

    def __init__(self, *, seed: Optional[int] = None, history_length: int = 300) -> None:
        self._rng = random.Random(seed)
        self._history_length = history_length
        self._tips: Dict[str, Candle] = {}

    async def fetch(self, symbol: str, limit: int) -> List[Candle]:
        tip = self._tips.get(symbol)
        if tip is None:
            start = BASE_PRICES.get(symbol.upper(), DEFAULT_BASE_PRICE)
            history = generate_history(max(limit, self._history_length), start, rng=self._rng)
            self._tips[symbol] = history[-1]
            log.info("simulated_history_generated", symbol=symbol, candles=len(history))
            return history

        out: List[Candle] = []
        current = tip
        for _ in range(self._rng.randint(1, 2)):
            current = next_candle(current, self._rng)
            out.append(current)
        self._tips[symbol] = current
        return out
