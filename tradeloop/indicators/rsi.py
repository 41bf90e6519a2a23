"""
RSI (Relative Strength Index) series.

Usage:
    from tradeloop.indicators.rsi import compute_rsi_series, interpret_rsi

    series = compute_rsi_series(klines, period=14)
    interpret_rsi(series[-1])
"""

from __future__ import annotations

from typing import Sequence

from tradeloop.types import Kline


def compute_rsi_series(klines: Sequence[Kline], period: int = 14) -> list[float]:
    """
    Calculate RSI for every kline after the warm-up period.

    Formula:
        RSI = 100 - (100 / (1 + RS))
        where RS = Average Gain / Average Loss, smoothed with Wilder's method

    Args:
        klines: Klines oldest first (must have at least period+1 entries)
        period: Lookback period (default: 14)

    Returns:
        ``len(klines) - period`` RSI values; the first belongs to kline index ``period``.

    Raises:
        ValueError: If insufficient klines or invalid period
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(klines) < period + 1:
        raise ValueError(f"need at least {period + 1} klines for RSI({period}), got {len(klines)}")

    gains: list[float] = []
    losses: list[float] = []
    for i in range(1, len(klines)):
        change = klines[i].close - klines[i - 1].close
        gains.append(max(change, 0.0))
        losses.append(max(-change, 0.0))

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    out = [_rsi(avg_gain, avg_loss)]

    for i in range(period, len(gains)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out.append(_rsi(avg_gain, avg_loss))
    return out


def _rsi(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def interpret_rsi(value: float, oversold: float = 30.0, overbought: float = 70.0) -> str:
    if value > overbought:
        return f"Overbought (above {overbought:.0f})"
    if value < oversold:
        return f"Oversold (below {oversold:.0f})"
    return f"Neutral ({oversold:.0f}-{overbought:.0f})"
