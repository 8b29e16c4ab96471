"""Market domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class MarketRegime(str, Enum):
    TRENDING_UP = "TRENDING_UP"
    TRENDING_DOWN = "TRENDING_DOWN"
    RANGING = "RANGING"
    VOLATILE = "VOLATILE"
    UNKNOWN = "UNKNOWN"


class SignalType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class Candle:
    time: int               # epoch ms, candle open
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Candle":
        """Build a candle from a dict using either long or short OHLCV keys."""
        def pick(*keys: str, default: Any = None) -> Any:
            for k in keys:
                if k in data and data[k] is not None:
                    return data[k]
            return default

        time = pick("time", "t", "epoch")
        if time is None:
            raise ValueError("candle is missing its timestamp")
        close = pick("close", "c")
        if close is None:
            raise ValueError("candle is missing its close")
        close = float(close)
        return cls(
            time=int(time),
            open=float(pick("open", "o", default=close)),
            high=float(pick("high", "h", default=close)),
            low=float(pick("low", "l", default=close)),
            close=close,
            volume=float(pick("volume", "v", default=0.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class RegimeClassification:
    regime: MarketRegime
    reason: str


@dataclass(frozen=True)
class SignalDecision:
    type: SignalType
    reason: str


@dataclass(frozen=True)
class TradeSignal:
    id: str
    type: SignalType
    price: float
    timestamp: int
    reason: str
    symbol: str
    regime_at_creation: Optional[MarketRegime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "price": self.price,
            "timestamp": self.timestamp,
            "reason": self.reason,
            "symbol": self.symbol,
            "regime_at_creation": self.regime_at_creation.value if self.regime_at_creation else None,
        }
