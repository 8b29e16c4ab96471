"""Market regime classification (trending / ranging / volatile) from 1m candles."""

from __future__ import annotations

from typing import Sequence

from neurotrade.models.market_models import Candle, MarketRegime, RegimeClassification
from neurotrade.services.market.indicators import adx, sma

MIN_CANDLES = 50
ADX_PERIOD = 14
SMA_PERIOD = 50
RANGE_LOOKBACK = 15
VOLATILE_RANGE = 0.025   # 2.5% high/low range over the lookback
TREND_ADX = 20.0


def detect_regime(candles: Sequence[Candle]) -> RegimeClassification:
    """
    Classify the market in strict priority order:
    volatility first (recent range), then trend strength (ADX) with direction
    from price vs SMA50, otherwise ranging.
    """
    if len(candles) < MIN_CANDLES:
        return RegimeClassification(MarketRegime.UNKNOWN, "Insufficient data")

    current_adx = adx(candles, ADX_PERIOD)[-1]

    closes = [c.close for c in candles]
    current_sma = sma(closes, SMA_PERIOD)[-1]
    current_price = closes[-1]

    recent = candles[-RANGE_LOOKBACK:]
    high = max(c.high for c in recent)
    low = min(c.low for c in recent)
    percent_range = (high - low) / low if low > 0 else 0.0

    if percent_range > VOLATILE_RANGE:
        return RegimeClassification(
            MarketRegime.VOLATILE,
            f"High Volatility detected ({percent_range * 100:.1f}% range)",
        )

    if current_adx > TREND_ADX:
        above = current_sma is not None and current_price > current_sma
        regime = MarketRegime.TRENDING_UP if above else MarketRegime.TRENDING_DOWN
        return RegimeClassification(
            regime,
            f"Strong Trend (ADX: {current_adx:.1f} > {TREND_ADX:.0f}). "
            f"Price {'above' if above else 'below'} SMA{SMA_PERIOD}.",
        )

    return RegimeClassification(
        MarketRegime.RANGING,
        f"Choppy/Sideways Market (ADX: {current_adx:.1f} <= {TREND_ADX:.0f}).",
    )
