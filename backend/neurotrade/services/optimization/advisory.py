"""External advisory suggestions (regime guess + seed params), treated as untrusted input."""

from __future__ import annotations

import random
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from neurotrade.infrastructure.logging.logging import get_logger
from neurotrade.models.market_models import Candle, MarketRegime
from neurotrade.models.strategy_models import StrategyParams
from neurotrade.services.market.regime import detect_regime
from neurotrade.services.optimization.genetic import repair

log = get_logger("advisory")

_PARAM_ALIASES = {
    "rsiPeriod": "rsi_period",
    "rsiOverbought": "rsi_overbought",
    "rsiOversold": "rsi_oversold",
    "rsiTrendBuyThreshold": "rsi_trend_buy_threshold",
    "rsiTrendSellThreshold": "rsi_trend_sell_threshold",
    "emaShort": "ema_short",
    "emaLong": "ema_long",
    "adxPeriod": "adx_period",
    "adxThreshold": "adx_threshold",
    "stopLoss": "stop_loss",
    "takeProfit": "take_profit",
}


class Advisory(BaseModel):
    """Regime guess and parameter suggestion from an advisory service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    regime: Optional[MarketRegime] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = Field(default="")
    suggested_params: Dict[str, float] = Field(default_factory=dict, alias="suggestedParams")

    @field_validator("suggested_params", mode="before")
    @classmethod
    def normalize_param_keys(cls, v: Any) -> Dict[str, Any]:
        if not isinstance(v, Mapping):
            return {}
        known = set(_PARAM_ALIASES.values())
        out: Dict[str, Any] = {}
        for key, value in v.items():
            name = _PARAM_ALIASES.get(str(key), str(key))
            if name in known and isinstance(value, (int, float)) and not isinstance(value, bool):
                out[name] = value
        return out


class Advisor(Protocol):
    async def advise(
        self,
        symbol: str,
        candles: Sequence[Candle],
        current: StrategyParams,
    ) -> Optional[Mapping[str, Any]]:
        ...


def parse_advisory(payload: Optional[Mapping[str, Any]]) -> Optional[Advisory]:
    """Validate a raw advisory payload; invalid payloads are logged and dropped."""
    if payload is None:
        return None
    try:
        return Advisory.model_validate(dict(payload))
    except ValidationError as e:
        log.warning("advisory_rejected", errors=e.error_count(), error=str(e))
        return None


def seed_from_advisory(advisory: Advisory, current: StrategyParams) -> StrategyParams:
    """Overlay the suggestion on the current params, then clamp into legal bounds."""
    merged = {**current.to_dict(), **advisory.suggested_params}
    return repair(StrategyParams.from_dict(merged))


HIGH_VOLATILITY_SYMBOLS = frozenset({"DOGE", "SOL", "XRP"})


class HeuristicAdvisor:
    """Offline advisor used when no model service is configured.

    Guesses a regime from the detector, nudges RSI/EMA settings at random
    and widens SL/TP on the high-volatility assets.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    async def advise(
        self,
        symbol: str,
        candles: Sequence[Candle],
        current: StrategyParams,
    ) -> Optional[Mapping[str, Any]]:
        regime = detect_regime(candles).regime
        high_vol = symbol.upper() in HIGH_VOLATILITY_SYMBOLS
        rng = self._rng
        suggested = {
            "rsiPeriod": rng.randint(10, 15),
            "rsiOverbought": 70 + rng.randint(0, 4),
            "rsiOversold": 30 - rng.randint(0, 4),
            "rsiTrendBuyThreshold": 55 if regime == MarketRegime.TRENDING_UP else 45,
            "rsiTrendSellThreshold": 45 if regime == MarketRegime.TRENDING_DOWN else 55,
            "emaShort": rng.randint(7, 11),
            "emaLong": rng.randint(20, 29),
            "stopLoss": 0.04 if high_vol else 0.02,
            "takeProfit": 0.08 if high_vol else 0.04,
        }
        return {
            "regime": regime.value,
            "confidence": round(0.75 + rng.random() * 0.20, 2),
            "reasoning": f"Heuristic settings for {symbol} in a {regime.value.lower()} market.",
            "suggestedParams": suggested,
        }
