"""
Bollinger Bands series.

Middle = SMA(close, period); Upper/Lower = Middle +/- std_dev * population
standard deviation over the same window.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from tradeloop.types import Kline


@dataclass(frozen=True)
class BollingerPoint:
    upper: float
    middle: float
    lower: float

    @property
    def bandwidth(self) -> float:
        return (self.upper - self.lower) / self.middle if self.middle else 0.0

    def percent_b(self, price: float) -> float:
        width = self.upper - self.lower
        return (price - self.lower) / width if width else 0.5


def compute_bollinger_series(
    klines: Sequence[Kline],
    period: int = 20,
    std_dev: float = 2.0,
) -> list[BollingerPoint]:
    """
    Calculate Bollinger Bands for every full window.

    Returns:
        ``len(klines) - period + 1`` points.

    Raises:
        ValueError: If insufficient klines or invalid parameters
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if std_dev <= 0:
        raise ValueError(f"std_dev must be > 0, got {std_dev}")
    if len(klines) < period:
        raise ValueError(f"need at least {period} klines for Bollinger({period},{std_dev}), got {len(klines)}")

    closes = [k.close for k in klines]
    out: list[BollingerPoint] = []
    for end in range(period, len(closes) + 1):
        window = closes[end - period : end]
        middle = sum(window) / period
        variance = sum((c - middle) ** 2 for c in window) / period
        band = std_dev * math.sqrt(variance)
        out.append(BollingerPoint(upper=middle + band, middle=middle, lower=middle - band))
    return out


def interpret_bollinger(point: BollingerPoint, price: float) -> str:
    if price > point.upper:
        return "Price above upper band (overbought / breakout)"
    if price < point.lower:
        return "Price below lower band (oversold / breakdown)"
    pct_b = point.percent_b(price)
    if pct_b >= 0.8:
        return "Price near upper band"
    if pct_b <= 0.2:
        return "Price near lower band"
    return "Price inside the bands"
