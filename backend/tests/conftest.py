"""
Shared pytest fixtures: synthetic candle series with known regimes.
"""
from typing import List, Sequence

import pytest

from neurotrade.models.market_models import Candle

START_MS = 1_700_000_000_000
MINUTE_MS = 60_000


def make_candles(
    closes: Sequence[float],
    *,
    wick: float = 0.05,
    volume: float = 100.0,
    start: int = START_MS,
) -> List[Candle]:
    """One 1m candle per close; open == close, symmetric wicks."""
    return [
        Candle(
            time=start + i * MINUTE_MS,
            open=c,
            high=c + wick,
            low=c - wick,
            close=c,
            volume=volume,
        )
        for i, c in enumerate(closes)
    ]


def v_shape_closes(down: int = 100, up: int = 200, start: float = 110.0, step: float = 0.1) -> List[float]:
    """Steady decline for ``down`` bars, then a steady rise for ``up`` bars."""
    bottom = start - step * down
    return [start - step * i for i in range(down)] + [bottom + step * i for i in range(up)]


@pytest.fixture(autouse=True)
def _clean_config_env(monkeypatch):
    for name in ("LOG_LEVEL", "MEMORY__BACKEND", "DATABASE__SQLITE_PATH", "OPTIMIZER__WORKERS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def flat_candles() -> List[Candle]:
    """60 identical candles: no range, no trend, Bollinger squeeze."""
    return make_candles([100.0] * 60, wick=0.0)


@pytest.fixture
def short_candles() -> List[Candle]:
    return make_candles([100.0 + i * 0.1 for i in range(30)])


@pytest.fixture
def uptrend_candles() -> List[Candle]:
    """300 candles: decline to 100 then a steady climb to ~120 (ADX near 100 at the end)."""
    return make_candles(v_shape_closes())


@pytest.fixture
def downtrend_candles() -> List[Candle]:
    return make_candles([110.0 - 0.1 * i for i in range(100)])


@pytest.fixture
def small_v_candles() -> List[Candle]:
    """Short V for optimizer runs; keeps each backtest cheap."""
    return make_candles(v_shape_closes(down=60, up=60, start=106.0))
