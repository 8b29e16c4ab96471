"""Load candle history from JSON / CSV files for backtests and optimization runs."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any, Iterable, List, Mapping

from neurotrade.infrastructure.logging.logging import get_logger
from neurotrade.models.market_models import Candle

log = get_logger("history")


def candles_from_rows(rows: Iterable[Any]) -> List[Candle]:
    """
    Accepts dict rows ({time, open, high, low, close, volume} or short keys) or
    exchange kline arrays ([time, open, high, low, close, volume, ...]).
    Output is sorted by time with duplicate timestamps collapsed (last wins).
    """
    by_time = {}
    for row in rows:
        if isinstance(row, Mapping):
            candle = Candle.from_mapping(row)
        elif isinstance(row, (list, tuple)) and len(row) >= 6:
            candle = Candle(
                time=int(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
            )
        else:
            raise ValueError(f"Unsupported candle row: {row!r}")
        by_time[candle.time] = candle
    return [by_time[t] for t in sorted(by_time)]


def load_candles(path: Path) -> List[Candle]:
    if not path.exists():
        raise FileNotFoundError(f"Candle file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, Mapping):
            data = data.get("candles") or []
        candles = candles_from_rows(data)
    elif suffix == ".csv":
        with open(path, "r", encoding="utf-8", newline="") as f:
            candles = candles_from_rows(csv.DictReader(f))
    else:
        raise ValueError(f"Unsupported candle file type: {suffix} (use .json or .csv)")

    log.info("history_loaded", path=str(path), candles=len(candles))
    return candles
