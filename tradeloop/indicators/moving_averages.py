"""
Simple and exponential moving averages over close prices.

Both series start at input index ``period - 1`` so they hold
``len(values) - period + 1`` points.
"""

from __future__ import annotations

from typing import Sequence

from tradeloop.types import Kline


def sma(values: Sequence[float], period: int) -> list[float]:
    """Rolling arithmetic mean of ``values``."""
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(values) < period:
        raise ValueError(f"need at least {period} values for SMA({period}), got {len(values)}")

    out: list[float] = []
    window = sum(values[:period])
    out.append(window / period)
    for i in range(period, len(values)):
        window += values[i] - values[i - period]
        out.append(window / period)
    return out


def ema(values: Sequence[float], period: int) -> list[float]:
    """Exponential moving average seeded with the SMA of the first ``period`` values."""
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(values) < period:
        raise ValueError(f"need at least {period} values for EMA({period}), got {len(values)}")

    multiplier = 2.0 / (period + 1)
    current = sum(values[:period]) / period
    out = [current]
    for i in range(period, len(values)):
        current = (values[i] - current) * multiplier + current
        out.append(current)
    return out


def compute_sma_series(klines: Sequence[Kline], period: int = 20) -> list[float]:
    return sma([k.close for k in klines], period)


def compute_ema_series(klines: Sequence[Kline], period: int = 20) -> list[float]:
    return ema([k.close for k in klines], period)


def interpret_price_vs_average(price: float, average: float, label: str) -> str:
    if average == 0:
        return f"{label} unavailable"
    diff_pct = (price - average) / average * 100.0
    side = "above" if diff_pct >= 0 else "below"
    return f"Price is {abs(diff_pct):.2f}% {side} {label}"
