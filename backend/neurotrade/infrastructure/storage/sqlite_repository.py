"""SQLite repository for regime memory and the signal journal."""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from neurotrade.models.market_models import TradeSignal
from neurotrade.models.strategy_models import RegimeMemoryEntry, StrategyParams


JsonDict = Dict[str, Any]


class SQLiteRepository:
    """Blocking repository; async callers go through ``asyncio.to_thread``."""

    def __init__(self, db_path: Path) -> None:
        self._path = db_path
        if self._path.as_posix() != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path.as_posix(), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS regime_memory (
              symbol TEXT NOT NULL,
              regime TEXT NOT NULL,
              params_json TEXT NOT NULL,
              analysis_json TEXT,
              score REAL NOT NULL,
              timestamp INTEGER NOT NULL,
              PRIMARY KEY (symbol, regime)
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS signals (
              id TEXT PRIMARY KEY,
              symbol TEXT NOT NULL,
              type TEXT NOT NULL,
              price REAL NOT NULL,
              timestamp INTEGER NOT NULL,
              reason TEXT NOT NULL,
              regime TEXT
            );
            """
        )
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # regime memory

    def get_memory(self, symbol: str, regime: str) -> Optional[RegimeMemoryEntry]:
        with self._lock:
            row = self._conn.execute(
                "SELECT params_json, analysis_json, score, timestamp FROM regime_memory WHERE symbol = ? AND regime = ?",
                (symbol, regime),
            ).fetchone()
        if row is None:
            return None
        analysis = json.loads(row["analysis_json"]) if row["analysis_json"] else None
        return RegimeMemoryEntry(
            params=StrategyParams.from_dict(json.loads(row["params_json"])),
            analysis=analysis,
            score=float(row["score"]),
            timestamp=int(row["timestamp"]),
        )

    def upsert_memory(self, symbol: str, regime: str, entry: RegimeMemoryEntry) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO regime_memory(symbol, regime, params_json, analysis_json, score, timestamp)
                VALUES(?,?,?,?,?,?)
                ON CONFLICT(symbol, regime) DO UPDATE SET
                  params_json = excluded.params_json,
                  analysis_json = excluded.analysis_json,
                  score = excluded.score,
                  timestamp = excluded.timestamp
                """,
                (
                    symbol,
                    regime,
                    json.dumps(entry.params.to_dict()),
                    json.dumps(entry.analysis) if entry.analysis is not None else None,
                    entry.score,
                    entry.timestamp,
                ),
            )
            self._conn.commit()

    def list_memory(self) -> List[JsonDict]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT symbol, regime, score, timestamp FROM regime_memory ORDER BY symbol, regime"
            ).fetchall()
        return [dict(r) for r in rows]

    # signal journal

    def insert_signal(self, signal: TradeSignal) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO signals(id, symbol, type, price, timestamp, reason, regime) VALUES(?,?,?,?,?,?,?)",
                (
                    signal.id,
                    signal.symbol,
                    signal.type.value,
                    signal.price,
                    signal.timestamp,
                    signal.reason,
                    signal.regime_at_creation.value if signal.regime_at_creation else None,
                ),
            )
            self._conn.commit()

    def list_signals(self, limit: int = 200, symbol: Optional[str] = None) -> List[JsonDict]:
        query = "SELECT id, symbol, type, price, timestamp, reason, regime FROM signals"
        args: List[Any] = []
        if symbol:
            query += " WHERE symbol = ?"
            args.append(symbol)
        query += " ORDER BY timestamp DESC LIMIT ?"
        args.append(limit)
        with self._lock:
            rows = self._conn.execute(query, args).fetchall()
        return [
            {
                "id": r["id"],
                "symbol": r["symbol"],
                "type": r["type"],
                "price": r["price"],
                "timestamp": r["timestamp"],
                "reason": r["reason"],
                "regime_at_creation": r["regime"],
            }
            for r in rows
        ]
