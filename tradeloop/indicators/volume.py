"""
Volume indicators: On-Balance Volume, Money Flow Index and volume ratio.
"""

from __future__ import annotations

from typing import Sequence

from tradeloop.indicators.moving_averages import sma
from tradeloop.types import Kline


def compute_obv_series(klines: Sequence[Kline]) -> list[float]:
    """OBV for every kline; starts at 0 on the first one."""
    if not klines:
        return []
    out = [0.0]
    for i in range(1, len(klines)):
        change = klines[i].close - klines[i - 1].close
        if change > 0:
            out.append(out[-1] + klines[i].volume)
        elif change < 0:
            out.append(out[-1] - klines[i].volume)
        else:
            out.append(out[-1])
    return out


def compute_mfi_series(klines: Sequence[Kline], period: int = 14) -> list[float]:
    """
    Money Flow Index, the volume-weighted RSI of typical price.

    Returns:
        ``len(klines) - period`` values; the first belongs to kline index ``period``.

    Raises:
        ValueError: If insufficient klines or invalid period
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(klines) < period + 1:
        raise ValueError(f"need at least {period + 1} klines for MFI({period}), got {len(klines)}")

    typical = [(k.high + k.low + k.close) / 3.0 for k in klines]
    positive: list[float] = []
    negative: list[float] = []
    for i in range(1, len(klines)):
        flow = typical[i] * klines[i].volume
        if typical[i] > typical[i - 1]:
            positive.append(flow)
            negative.append(0.0)
        elif typical[i] < typical[i - 1]:
            positive.append(0.0)
            negative.append(flow)
        else:
            positive.append(0.0)
            negative.append(0.0)

    out: list[float] = []
    for end in range(period, len(positive) + 1):
        pos = sum(positive[end - period : end])
        neg = sum(negative[end - period : end])
        if neg == 0:
            out.append(100.0 if pos > 0 else 50.0)
        else:
            out.append(100.0 - 100.0 / (1.0 + pos / neg))
    return out


def compute_volume_ratio_series(klines: Sequence[Kline], period: int = 20) -> list[float]:
    """Volume divided by its ``period`` SMA; ``len(klines) - period + 1`` values."""
    volumes = [k.volume for k in klines]
    averages = sma(volumes, period)
    return [v / a if a else 0.0 for v, a in zip(volumes[period - 1 :], averages)]


def interpret_mfi(value: float) -> str:
    if value > 80:
        return "Overbought money flow (above 80)"
    if value < 20:
        return "Oversold money flow (below 20)"
    return "Neutral money flow (20-80)"


def interpret_volume_ratio(ratio: float) -> str:
    if ratio >= 1.5:
        return "Volume well above average"
    if ratio <= 0.5:
        return "Volume well below average"
    return "Volume near average"
