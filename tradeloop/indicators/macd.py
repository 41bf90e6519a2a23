"""
MACD (Moving Average Convergence Divergence) series.

MACD Line = EMA(fast) - EMA(slow); Signal = EMA(MACD Line, signal);
Histogram = MACD Line - Signal. A point exists once the signal line is
defined, i.e. from kline index ``slow + signal - 2``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from tradeloop.indicators.alignment import AlignedIndicatorResult, IndicatorAligner
from tradeloop.indicators.moving_averages import ema
from tradeloop.types import Kline


@dataclass(frozen=True)
class MacdPoint:
    macd: float
    signal: float
    histogram: float


def compute_macd_series(
    klines: Sequence[Kline],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> list[MacdPoint]:
    """
    Calculate MACD points for every kline after the warm-up period.

    Returns:
        ``len(klines) - slow_period - signal_period + 2`` points.

    Raises:
        ValueError: If insufficient klines or invalid periods
    """
    if fast_period < 1 or slow_period < 1 or signal_period < 1:
        raise ValueError("All periods must be >= 1")
    if fast_period >= slow_period:
        raise ValueError(f"fast_period ({fast_period}) must be < slow_period ({slow_period})")

    min_klines = slow_period + signal_period - 1
    if len(klines) < min_klines:
        raise ValueError(f"need at least {min_klines} klines for MACD, got {len(klines)}")

    closes = [k.close for k in klines]
    fast = ema(closes, fast_period)
    slow = ema(closes, slow_period)
    # fast starts at index fast-1, slow at slow-1; line up on the slow start
    skip = slow_period - fast_period
    macd_line = [f - s for f, s in zip(fast[skip:], slow)]
    signal_line = ema(macd_line, signal_period)

    tail = macd_line[signal_period - 1 :]
    return [MacdPoint(macd=m, signal=s, histogram=m - s) for m, s in zip(tail, signal_line)]


def compute_macd_aligned(
    klines: Sequence[Kline],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> AlignedIndicatorResult[MacdPoint]:
    return IndicatorAligner.align(len(klines), compute_macd_series(klines, fast_period, slow_period, signal_period))


def macd_for_kline(aligned: AlignedIndicatorResult[MacdPoint], index: int) -> Optional[MacdPoint]:
    """MACD point for kline ``index`` or ``None`` during warm-up."""
    return aligned.get(index)


def interpret_macd(point: MacdPoint, previous: Optional[MacdPoint] = None) -> str:
    if previous is not None:
        if previous.macd <= previous.signal and point.macd > point.signal:
            return "Bullish crossover (MACD crossed above signal)"
        if previous.macd >= previous.signal and point.macd < point.signal:
            return "Bearish crossover (MACD crossed below signal)"
    if point.histogram > 0:
        return "Bullish momentum (MACD above signal)"
    if point.histogram < 0:
        return "Bearish momentum (MACD below signal)"
    return "Neutral (MACD equals signal)"
