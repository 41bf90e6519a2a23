from __future__ import annotations

from .alignment import AlignedIndicatorResult, AlignmentError, IndicatorAligner
from .atr import compute_atr_series
from .bollinger import BollingerPoint, compute_bollinger_series
from .macd import MacdPoint, compute_macd_aligned, compute_macd_series
from .moving_averages import compute_ema_series, compute_sma_series
from .rsi import compute_rsi_series
from .stochastic import StochasticPoint, compute_stochastic_series
from .volume import compute_mfi_series, compute_obv_series, compute_volume_ratio_series

__all__ = [
    "AlignedIndicatorResult",
    "AlignmentError",
    "BollingerPoint",
    "IndicatorAligner",
    "MacdPoint",
    "StochasticPoint",
    "compute_atr_series",
    "compute_bollinger_series",
    "compute_ema_series",
    "compute_macd_aligned",
    "compute_macd_series",
    "compute_mfi_series",
    "compute_obv_series",
    "compute_rsi_series",
    "compute_sma_series",
    "compute_stochastic_series",
    "compute_volume_ratio_series",
]
