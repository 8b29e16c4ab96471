"""Series indicators (SMA, EMA, RSI, Bollinger, ADX) with warm-up handling.

Every function returns a list aligned with its input. Entries that need more
history than is available are ``None`` (SMA, Bollinger), a neutral 50 (RSI)
or 0 (ADX).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from neurotrade.models.market_models import Candle


def _ema(prev: Optional[float], value: float, period: int) -> float:
    alpha = 2.0 / (period + 1.0)
    return value if prev is None else (alpha * value + (1 - alpha) * prev)


def sma(values: Sequence[float], period: int) -> List[Optional[float]]:
    out: List[Optional[float]] = []
    for i in range(len(values)):
        if i < period - 1:
            out.append(None)
            continue
        out.append(sum(values[i - period + 1 : i + 1]) / period)
    return out


def ema(values: Sequence[float], period: int) -> List[float]:
    """EMA seeded with the first value (no warm-up gap)."""
    out: List[float] = []
    prev: Optional[float] = None
    for v in values:
        prev = _ema(prev, float(v), period)
        out.append(prev)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0.0:
        return 100.0
    return 100.0 - (100.0 / (1.0 + avg_gain / avg_loss))


def rsi(values: Sequence[float], period: int) -> List[float]:
    """RSI with Wilder smoothing. Indices before the first full window are 50."""
    n = len(values)
    out = [50.0] * n
    if n <= period:
        return out

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        diff = values[i] - values[i - 1]
        if diff >= 0:
            gains += diff
        else:
            losses -= diff

    avg_gain = gains / period
    avg_loss = losses / period
    out[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, n):
        diff = values[i] - values[i - 1]
        gain = diff if diff > 0 else 0.0
        loss = -diff if diff < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        out[i] = _rsi_value(avg_gain, avg_loss)

    return out


@dataclass(frozen=True)
class BollingerBand:
    middle: float
    upper: float
    lower: float
    bandwidth: float


def bollinger_bands(
    values: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> List[Optional[BollingerBand]]:
    means = sma(values, period)
    out: List[Optional[BollingerBand]] = []
    for i, mean in enumerate(means):
        if mean is None:
            out.append(None)
            continue
        window = values[i - period + 1 : i + 1]
        variance = sum((v - mean) ** 2 for v in window) / period
        sd = math.sqrt(variance)
        upper = mean + sd * std_dev
        lower = mean - sd * std_dev
        bandwidth = (upper - lower) / mean if mean > 0 else 0.0
        out.append(BollingerBand(middle=mean, upper=upper, lower=lower, bandwidth=bandwidth))
    return out


def _wilder_smooth(data: Sequence[float], period: int) -> List[float]:
    """Mean of the first ``period`` values, then Wilder recursion. Earlier slots are 0."""
    out = [0.0] * len(data)
    running = 0.0
    for i, v in enumerate(data):
        if i < period:
            running += v
            if i == period - 1:
                out[i] = running / period
        else:
            out[i] = (out[i - 1] * (period - 1) + v) / period
    return out


def adx(candles: Sequence[Candle], period: int) -> List[float]:
    n = len(candles)
    if n < period * 2:
        return [0.0] * n

    plus_dm = [0.0]
    minus_dm = [0.0]
    tr = [0.0]
    for i in range(1, n):
        cur, prev = candles[i], candles[i - 1]
        up_move = cur.high - prev.high
        down_move = prev.low - cur.low
        plus_dm.append(up_move if (up_move > down_move and up_move > 0) else 0.0)
        minus_dm.append(down_move if (down_move > up_move and down_move > 0) else 0.0)
        tr.append(
            max(
                cur.high - cur.low,
                abs(cur.high - prev.close),
                abs(cur.low - prev.close),
            )
        )

    smooth_tr = _wilder_smooth(tr, period)
    smooth_plus = _wilder_smooth(plus_dm, period)
    smooth_minus = _wilder_smooth(minus_dm, period)

    dx: List[float] = []
    for i in range(n):
        if smooth_tr[i] == 0.0:
            dx.append(0.0)
            continue
        plus_di = 100.0 * smooth_plus[i] / smooth_tr[i]
        minus_di = 100.0 * smooth_minus[i] / smooth_tr[i]
        di_sum = plus_di + minus_di
        dx.append(0.0 if di_sum == 0 else 100.0 * abs(plus_di - minus_di) / di_sum)

    return _wilder_smooth(dx, period)
