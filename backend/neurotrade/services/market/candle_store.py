"""Per-asset candle series with gap detection and live-update merge."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from neurotrade.infrastructure.logging.logging import get_logger
from neurotrade.models.market_models import Candle

log = get_logger("candle_store")

GAP_THRESHOLD_MS = 60 * 60 * 1000   # 60 minutes


def merge_candles(
    existing: Sequence[Candle],
    new_candles: Sequence[Candle],
    gap_threshold_ms: int = GAP_THRESHOLD_MS,
) -> List[Candle]:
    """Merge a fetched batch into an existing series.

    - New batch starting more than ``gap_threshold_ms`` after the last stored
      candle: the stored series is stale (reconnection gap), keep only the batch.
    - Otherwise a batch candle sharing the stored last timestamp replaces that
      candle in place (live update of the forming bar; the last such one wins)
      and strictly newer candles are appended.
    """
    if not existing:
        return list(new_candles)
    if not new_candles:
        return list(existing)

    last_time = existing[-1].time
    if new_candles[0].time - last_time > gap_threshold_ms:
        return list(new_candles)

    merged = list(existing)
    for candle in new_candles:
        if candle.time == last_time:
            merged[-1] = candle
    merged.extend(c for c in new_candles if c.time > last_time)
    return merged


@dataclass
class CandleStore:
    """Holds one append-only series per asset; appends for an asset are serialized."""

    max_history: int = 300
    gap_threshold_ms: int = GAP_THRESHOLD_MS

    _series: Dict[str, List[Candle]] = field(default_factory=dict)
    _locks: Dict[str, asyncio.Lock] = field(default_factory=lambda: defaultdict(asyncio.Lock))

    def get(self, symbol: str) -> List[Candle]:
        return list(self._series.get(symbol, []))

    def symbols(self) -> List[str]:
        return sorted(self._series)

    async def append(self, symbol: str, batch: Sequence[Candle]) -> List[Candle]:
        """Merge ``batch`` into the asset's series and return a snapshot of it."""
        async with self._locks[symbol]:
            current = self._series.get(symbol, [])
            merged = merge_candles(current, batch, self.gap_threshold_ms)
            if current and batch and batch[0].time - current[-1].time > self.gap_threshold_ms:
                log.info(
                    "series_replaced_after_gap",
                    symbol=symbol,
                    last_time=current[-1].time,
                    first_new_time=batch[0].time,
                )
            if len(merged) > self.max_history:
                merged = merged[-self.max_history :]
            self._series[symbol] = merged
            return list(merged)
