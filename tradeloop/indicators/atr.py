"""
ATR (Average True Range) series.

True Range = max(high - low, |high - prev_close|, |low - prev_close|),
smoothed with Wilder's method. The first ATR belongs to kline index ``period``.
"""

from __future__ import annotations

from typing import Sequence

from tradeloop.types import Kline


def true_ranges(klines: Sequence[Kline]) -> list[float]:
    """True range for klines[1:], one value per kline after the first."""
    out: list[float] = []
    for i in range(1, len(klines)):
        high, low, prev_close = klines[i].high, klines[i].low, klines[i - 1].close
        out.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
    return out


def compute_atr_series(klines: Sequence[Kline], period: int = 14) -> list[float]:
    """
    Calculate ATR for every kline after the warm-up period.

    Returns:
        ``len(klines) - period`` values.

    Raises:
        ValueError: If insufficient klines or invalid period
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(klines) < period + 1:
        raise ValueError(f"need at least {period + 1} klines for ATR({period}), got {len(klines)}")

    tr = true_ranges(klines)
    current = sum(tr[:period]) / period
    out = [current]
    for value in tr[period:]:
        current = (current * (period - 1) + value) / period
        out.append(current)
    return out


def interpret_atr(atr: float, price: float) -> str:
    if price <= 0:
        return "Volatility unavailable"
    pct = atr / price * 100.0
    if pct >= 2.0:
        level = "High"
    elif pct <= 0.5:
        level = "Low"
    else:
        level = "Moderate"
    return f"{level} volatility (ATR is {pct:.2f}% of price)"
