"""Best-known strategy parameters per (asset, regime).

The update policy is a pure function (``resolve_update``); storage sits behind
a small async backend interface (in-process dict or SQLite). Read-modify-write
on a key is serialized with one asyncio.Lock per key.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Tuple

from neurotrade.infrastructure.logging.logging import get_logger
from neurotrade.infrastructure.storage.sqlite_repository import SQLiteRepository
from neurotrade.infrastructure.utils.timeutils import now_ms
from neurotrade.models.market_models import MarketRegime
from neurotrade.models.strategy_models import RegimeMemoryEntry, StrategyParams

log = get_logger("regime_memory")

STALENESS_MS = 60 * 60 * 1000   # 1 hour

MemoryKey = Tuple[str, str]


class MemoryDecision(str, Enum):
    CREATE = "CREATE"
    IMPROVE = "IMPROVE"
    REFRESH_STALE = "REFRESH_STALE"
    DISCARD = "DISCARD"

    @property
    def writes(self) -> bool:
        return self is not MemoryDecision.DISCARD


def resolve_update(
    existing: Optional[RegimeMemoryEntry],
    candidate: RegimeMemoryEntry,
    *,
    now_ms: int,
    staleness_ms: int = STALENESS_MS,
) -> MemoryDecision:
    """Write when empty, when the score ties or beats the stored one, or when the stored entry is stale."""
    if existing is None:
        return MemoryDecision.CREATE
    if candidate.score >= existing.score:
        return MemoryDecision.IMPROVE
    if now_ms - existing.timestamp > staleness_ms:
        return MemoryDecision.REFRESH_STALE
    return MemoryDecision.DISCARD


def _regime_key(regime: Any) -> str:
    return regime.value if isinstance(regime, MarketRegime) else str(regime)


class MemoryBackend(Protocol):
    async def load(self, symbol: str, regime: str) -> Optional[RegimeMemoryEntry]:
        ...

    async def store(self, symbol: str, regime: str, entry: RegimeMemoryEntry) -> None:
        ...


class InMemoryBackend:
    def __init__(self) -> None:
        self._entries: Dict[MemoryKey, RegimeMemoryEntry] = {}

    async def load(self, symbol: str, regime: str) -> Optional[RegimeMemoryEntry]:
        return self._entries.get((symbol, regime))

    async def store(self, symbol: str, regime: str, entry: RegimeMemoryEntry) -> None:
        self._entries[(symbol, regime)] = entry


class SQLiteMemoryBackend:
    """Runs the blocking repository calls on a worker thread."""

    def __init__(self, repo: SQLiteRepository) -> None:
        self._repo = repo

    async def load(self, symbol: str, regime: str) -> Optional[RegimeMemoryEntry]:
        return await asyncio.to_thread(self._repo.get_memory, symbol, regime)

    async def store(self, symbol: str, regime: str, entry: RegimeMemoryEntry) -> None:
        await asyncio.to_thread(self._repo.upsert_memory, symbol, regime, entry)


class MemorySlot:
    """Handle for one key while its lock is held."""

    def __init__(self, backend: MemoryBackend, symbol: str, regime: str) -> None:
        self._backend = backend
        self.symbol = symbol
        self.regime = regime

    async def read(self) -> Optional[RegimeMemoryEntry]:
        return await self._backend.load(self.symbol, self.regime)

    async def write(self, entry: RegimeMemoryEntry) -> None:
        await self._backend.store(self.symbol, self.regime, entry)


class RegimeMemory:
    def __init__(self, backend: Optional[MemoryBackend] = None, *, staleness_ms: int = STALENESS_MS) -> None:
        self._backend: MemoryBackend = backend if backend is not None else InMemoryBackend()
        self._staleness_ms = staleness_ms
        self._locks: Dict[MemoryKey, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def acquire(self, symbol: str, regime: Any) -> AsyncIterator[MemorySlot]:
        key = (symbol, _regime_key(regime))
        async with self._locks[key]:
            yield MemorySlot(self._backend, *key)

    async def get(self, symbol: str, regime: Any) -> Optional[RegimeMemoryEntry]:
        return await self._backend.load(symbol, _regime_key(regime))

    async def offer(
        self,
        symbol: str,
        regime: Any,
        params: StrategyParams,
        analysis: Optional[Dict[str, Any]],
        score: float,
        *,
        now: Optional[int] = None,
    ) -> MemoryDecision:
        """Apply the update policy to a candidate and persist it if it wins."""
        now = now_ms() if now is None else now
        candidate = RegimeMemoryEntry(params=params, analysis=analysis, score=float(score), timestamp=now)

        async with self.acquire(symbol, regime) as slot:
            existing = await slot.read()
            decision = resolve_update(existing, candidate, now_ms=now, staleness_ms=self._staleness_ms)
            if decision.writes:
                await slot.write(candidate)

        log.info(
            "memory_offer",
            symbol=symbol,
            regime=slot.regime,
            decision=decision.value,
            score=round(candidate.score, 4),
            previous_score=round(existing.score, 4) if existing else None,
        )
        return decision


def build_memory(backend: str, repo: Optional[SQLiteRepository] = None, *, staleness_seconds: int = 3600) -> RegimeMemory:
    """Factory used by the engine and API from the ``memory`` config section."""
    if backend == "sqlite":
        if repo is None:
            raise ValueError("sqlite memory backend requires a repository")
        return RegimeMemory(SQLiteMemoryBackend(repo), staleness_ms=staleness_seconds * 1000)
    if backend == "memory":
        return RegimeMemory(InMemoryBackend(), staleness_ms=staleness_seconds * 1000)
    raise ValueError(f"Unknown memory backend: {backend}")
