"""Regime-adaptive signal rules (trend pullback, mean reversion, momentum, EMA cross)."""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from neurotrade.models.market_models import (
    Candle,
    MarketRegime,
    SignalDecision,
    SignalType,
    TradeSignal,
)
from neurotrade.models.strategy_models import StrategyParams
from neurotrade.services.market.indicators import bollinger_bands, ema, rsi, sma

MIN_CANDLES = 50
VOLUME_PERIOD = 20
BB_PERIOD = 20
BB_STD_DEV = 2.0
SQUEEZE_BANDWIDTH = 0.0015
MIN_AVG_VOLUME = 1.0
FALLBACK_AVG_VOLUME = 100.0
CROSS_MIN_REL_VOLUME = 0.5
BREAKOUT_REL_VOLUME = 1.2


def _hold(reason: str = "") -> SignalDecision:
    return SignalDecision(SignalType.HOLD, reason)


def generate_signal(
    candles: Sequence[Candle],
    params: StrategyParams,
    regime: MarketRegime,
) -> SignalDecision:
    """
    Rules per regime (first match wins):
    - TRENDING_UP: buy RSI pullbacks that hook up while EMA structure is bullish
    - TRENDING_DOWN: sell RSI rallies that hook down while EMA structure is bearish
    - RANGING: mean reversion on RSI hooks out of oversold/overbought
    - VOLATILE: momentum breakouts away from the short EMA on surging volume
    Fallback for any regime: golden/death EMA cross confirmed by slope and volume.
    A Bollinger squeeze blocks everything except in VOLATILE.
    """
    if len(candles) < MIN_CANDLES:
        return _hold("Insufficient data")

    closes = [c.close for c in candles]
    volumes = [c.volume for c in candles]
    price = closes[-1]

    rsi_arr = rsi(closes, params.rsi_period)
    cur_rsi = rsi_arr[-1]
    prev_rsi = rsi_arr[-2]

    ema_short_arr = ema(closes, params.ema_short)
    ema_long_arr = ema(closes, params.ema_long)
    ema_short, prev_ema_short = ema_short_arr[-1], ema_short_arr[-2]
    ema_long, prev_ema_long = ema_long_arr[-1], ema_long_arr[-2]

    # Relative volume; tiny averages are replaced to avoid blowups
    avg_volume = sma(volumes[-VOLUME_PERIOD:], VOLUME_PERIOD)[-1] or 0.0
    safe_avg_volume = FALLBACK_AVG_VOLUME if avg_volume < MIN_AVG_VOLUME else avg_volume
    rel_volume = volumes[-1] / safe_avg_volume
    has_volume_support = rel_volume >= CROSS_MIN_REL_VOLUME

    band = bollinger_bands(closes[-BB_PERIOD:], BB_PERIOD, BB_STD_DEV)[-1]
    bandwidth = band.bandwidth if band is not None else 0.0
    is_squeezing = bandwidth < SQUEEZE_BANDWIDTH

    if is_squeezing and regime != MarketRegime.VOLATILE:
        return _hold("Market Squeeze (Low Volatility)")

    long_trend_up = ema_long > prev_ema_long
    long_trend_down = ema_long < prev_ema_long

    rsi_fmt = f"{cur_rsi:.1f}"
    vol_fmt = f"{rel_volume:.2f}"

    if regime == MarketRegime.TRENDING_UP:
        if (
            cur_rsi < params.rsi_trend_buy_threshold
            and price > ema_long
            and long_trend_up
            and ema_short > ema_long
            and cur_rsi > prev_rsi
        ):
            return SignalDecision(
                SignalType.BUY,
                f"Trend Pullback Buy: RSI {rsi_fmt} < {params.rsi_trend_buy_threshold}.",
            )

    elif regime == MarketRegime.TRENDING_DOWN:
        if (
            cur_rsi > params.rsi_trend_sell_threshold
            and price < ema_long
            and long_trend_down
            and ema_short < ema_long
            and cur_rsi < prev_rsi
        ):
            return SignalDecision(
                SignalType.SELL,
                f"Trend Rally Sell: RSI {rsi_fmt} > {params.rsi_trend_sell_threshold}.",
            )

    elif regime == MarketRegime.RANGING:
        if prev_rsi < params.rsi_oversold and cur_rsi > prev_rsi and cur_rsi > params.rsi_oversold:
            return SignalDecision(
                SignalType.BUY,
                f"Mean Reversion Buy: RSI {rsi_fmt} hooking up from Oversold.",
            )
        if prev_rsi > params.rsi_overbought and cur_rsi < prev_rsi and cur_rsi < params.rsi_overbought:
            return SignalDecision(
                SignalType.SELL,
                f"Mean Reversion Sell: RSI {rsi_fmt} hooking down from Overbought.",
            )

    elif regime == MarketRegime.VOLATILE:
        if price > ema_short and 60 < cur_rsi < 85 and rel_volume > BREAKOUT_REL_VOLUME:
            return SignalDecision(
                SignalType.BUY,
                f"Momentum Breakout: Price > EMA. Surge Vol {vol_fmt}x.",
            )
        if price < ema_short and 15 < cur_rsi < 40 and rel_volume > BREAKOUT_REL_VOLUME:
            return SignalDecision(
                SignalType.SELL,
                f"Momentum Breakdown: Price < EMA. Surge Vol {vol_fmt}x.",
            )

    if not is_squeezing:
        if (
            prev_ema_short <= prev_ema_long
            and ema_short > ema_long
            and has_volume_support
            and long_trend_up
        ):
            return SignalDecision(
                SignalType.BUY,
                f"Golden Cross: EMA{params.ema_short} crossed EMA{params.ema_long}.",
            )
        if (
            prev_ema_short >= prev_ema_long
            and ema_short < ema_long
            and has_volume_support
            and long_trend_down
        ):
            return SignalDecision(
                SignalType.SELL,
                f"Death Cross: EMA{params.ema_short} crossed below EMA{params.ema_long}.",
            )

    return _hold()


def build_trade_signal(
    symbol: str,
    candles: Sequence[Candle],
    decision: SignalDecision,
    regime: Optional[MarketRegime] = None,
) -> Optional[TradeSignal]:
    """Turn an actionable decision into an immutable TradeSignal at the last close."""
    if decision.type == SignalType.HOLD or not candles:
        return None
    last = candles[-1]
    return TradeSignal(
        id=str(uuid.uuid4()),
        type=decision.type,
        price=float(last.close),
        timestamp=int(last.time),
        reason=decision.reason,
        symbol=symbol,
        regime_at_creation=regime,
    )
