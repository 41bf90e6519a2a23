"""
Stochastic Oscillator series.

%K = 100 * (Close - Lowest Low) / (Highest High - Lowest Low) over k_period;
%D = SMA(%K, d_period). A point exists once %D is defined.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from tradeloop.indicators.moving_averages import sma
from tradeloop.types import Kline


@dataclass(frozen=True)
class StochasticPoint:
    k: float
    d: float


def compute_stochastic_series(
    klines: Sequence[Kline],
    k_period: int = 14,
    d_period: int = 3,
) -> list[StochasticPoint]:
    """
    Calculate %K/%D for every kline after the warm-up period.

    Returns:
        ``len(klines) - k_period - d_period + 2`` points.

    Raises:
        ValueError: If insufficient klines or invalid periods
    """
    if k_period < 1 or d_period < 1:
        raise ValueError(f"periods must be >= 1, got k_period={k_period}, d_period={d_period}")

    min_klines = k_period + d_period - 1
    if len(klines) < min_klines:
        raise ValueError(
            f"need at least {min_klines} klines for Stochastic({k_period},{d_period}), got {len(klines)}"
        )

    k_values: list[float] = []
    for end in range(k_period, len(klines) + 1):
        window = klines[end - k_period : end]
        highest = max(k.high for k in window)
        lowest = min(k.low for k in window)
        close = window[-1].close
        k_values.append(50.0 if highest == lowest else 100.0 * (close - lowest) / (highest - lowest))

    d_values = sma(k_values, d_period)
    return [StochasticPoint(k=k, d=d) for k, d in zip(k_values[d_period - 1 :], d_values)]


def interpret_stochastic(point: StochasticPoint, oversold: float = 20.0, overbought: float = 80.0) -> str:
    if point.k > overbought and point.d > overbought:
        return f"Overbought (%K and %D above {overbought:.0f})"
    if point.k < oversold and point.d < oversold:
        return f"Oversold (%K and %D below {oversold:.0f})"
    if point.k > point.d:
        return "Neutral, %K above %D (bullish bias)"
    if point.k < point.d:
        return "Neutral, %K below %D (bearish bias)"
    return "Neutral"
