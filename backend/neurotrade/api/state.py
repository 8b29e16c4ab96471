# neurotrade/api/state.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from neurotrade.infrastructure.storage.sqlite_repository import SQLiteRepository
from neurotrade.infrastructure.utils.config import NeuroTradeConfig
from neurotrade.services.memory.regime_memory import RegimeMemory


@dataclass
class AppState:
    memory: RegimeMemory
    repo: Optional[SQLiteRepository]
    config: NeuroTradeConfig


_state: Optional[AppState] = None


def set_state(state: Optional[AppState]) -> None:
    global _state
    _state = state


def get_state() -> AppState:
    if _state is None:
        raise RuntimeError("API state not initialized. Start the engine first (or call set_state).")
    return _state
