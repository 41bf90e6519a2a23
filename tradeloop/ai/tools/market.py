"""Data tools: price candles and technical indicators.

Every tool reads klines through the shared MarketDataCache. The plain
variant looks at the last ``RECENT_CANDLES`` candles of the configured
interval, the ``_24h`` variant at ``DAY_CANDLES`` candles. Indicator tools
return text for the model and the AlignedIndicatorResult as data.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Sequence

from pydantic import BaseModel, Field

from tradeloop.ai.tools.registry import ToolError, ToolKind, ToolRegistry
from tradeloop.ai.types import ToolOutput
from tradeloop.indicators.alignment import AlignedIndicatorResult, AlignmentError, IndicatorAligner
from tradeloop.indicators.atr import compute_atr_series, interpret_atr
from tradeloop.indicators.bollinger import compute_bollinger_series, interpret_bollinger
from tradeloop.indicators.macd import compute_macd_aligned, interpret_macd
from tradeloop.indicators.moving_averages import (
    compute_ema_series,
    compute_sma_series,
    interpret_price_vs_average,
)
from tradeloop.indicators.rsi import compute_rsi_series, interpret_rsi
from tradeloop.indicators.stochastic import compute_stochastic_series, interpret_stochastic
from tradeloop.indicators.volume import (
    compute_mfi_series,
    compute_obv_series,
    compute_volume_ratio_series,
    interpret_mfi,
    interpret_volume_ratio,
)
from tradeloop.market_data.base import CacheKey
from tradeloop.market_data.cache import MarketDataCache
from tradeloop.types import Kline

logger = logging.getLogger(__name__)

RECENT_CANDLES = 100
DAY_CANDLES = 288  # 24h of 5m candles

HISTORY_VALUES = 5


def normalize_symbol(symbol: str) -> str:
    """Exchange symbol form: "btc/usdc", "BTC_USDC" and "btc-usdc" become "BTCUSDC"."""
    return symbol.strip().upper().replace("/", "").replace("_", "").replace("-", "")


def analysis_key(symbol: str, interval: str) -> CacheKey:
    """Cache key of the standard (recent) candle window for ``symbol``."""
    return CacheKey(normalize_symbol(symbol), interval, RECENT_CANDLES)


def format_price(value: float) -> str:
    return f"${value:,.4f}"


def format_klines(klines: Sequence[Kline], symbol: str) -> str:
    """Price summary: current/high/low/volume/change, 10 recent candles and a 5-candle trend."""
    if not klines:
        return f"No price data available for {symbol}."

    latest = klines[-1]
    first = klines[0]
    lines = [
        f"Price data for {symbol} (last {len(klines)} candles):",
        "",
        f"Current price: {format_price(latest.close)}",
        f"Period high: {format_price(max(k.high for k in klines))}",
        f"Period low: {format_price(min(k.low for k in klines))}",
        f"Period volume: {sum(k.volume for k in klines):,.2f}",
    ]
    if first.open:
        lines.append(f"Period change: {(latest.close - first.open) / first.open * 100.0:+.2f}%")

    lines.append("")
    lines.append("Recent candles (newest first):")
    newest_first = list(reversed(klines[-11:]))
    for i, kline in enumerate(newest_first[:10]):
        change = ""
        if i + 1 < len(newest_first) and newest_first[i + 1].close:
            prev_close = newest_first[i + 1].close
            change = f" ({(kline.close - prev_close) / prev_close * 100.0:+.2f}%)"
        lines.append(
            f"  {i + 1}. O {kline.open:.4f} H {kline.high:.4f} L {kline.low:.4f} "
            f"C {kline.close:.4f} V {kline.volume:.2f}{change}"
        )

    if len(klines) >= 5:
        newest, oldest = klines[-1].close, klines[-5].close
        if newest > oldest:
            trend = "UPTREND"
        elif newest < oldest:
            trend = "DOWNTREND"
        else:
            trend = "SIDEWAYS"
        lines.append("")
        lines.append(f"Short-term trend (5 candles): {trend}")
    return "\n".join(lines)


def _recent(values: Sequence[float], digits: int = 2) -> str:
    return ", ".join(f"{v:.{digits}f}" for v in values[-HISTORY_VALUES:])


# ---------------------------------------------------------------------------
# Argument schemas
# ---------------------------------------------------------------------------


class SymbolArgs(BaseModel):
    symbol: str = Field(min_length=1, description="Trading pair symbol, e.g. BTCUSDC")


class RsiArgs(SymbolArgs):
    period: int = Field(default=14, ge=1, le=100)


class AverageArgs(SymbolArgs):
    period: int = Field(default=20, ge=1, le=200)


class MacdArgs(SymbolArgs):
    fast_period: int = Field(default=12, ge=1, le=100)
    slow_period: int = Field(default=26, ge=2, le=200)
    signal_period: int = Field(default=9, ge=1, le=100)


class BollingerArgs(SymbolArgs):
    period: int = Field(default=20, ge=2, le=200)
    std_dev: float = Field(default=2.0, gt=0, le=5)


class AtrArgs(SymbolArgs):
    period: int = Field(default=14, ge=1, le=100)


class StochasticArgs(SymbolArgs):
    k_period: int = Field(default=14, ge=1, le=100)
    d_period: int = Field(default=3, ge=1, le=50)


class VolumeArgs(SymbolArgs):
    mfi_period: int = Field(default=14, ge=1, le=100)


# ---------------------------------------------------------------------------
# Tool set
# ---------------------------------------------------------------------------


class MarketTools:
    """Data tool handlers bound to one cache and candle interval."""

    def __init__(self, cache: MarketDataCache, interval: str = "5m") -> None:
        self.cache = cache
        self.interval = interval

    async def klines(self, symbol: str, count: int) -> tuple[Kline, ...]:
        key = CacheKey(normalize_symbol(symbol), self.interval, count)
        data = await self.cache.get_or_fetch(key)
        logger.debug("Loaded %d klines for %s", len(data), key)
        if not data:
            raise ToolError(f"no market data returned for {key.symbol}")
        return data

    async def price(self, args: SymbolArgs, count: int) -> ToolOutput:
        data = await self.klines(args.symbol, count)
        return ToolOutput(text=format_klines(data, normalize_symbol(args.symbol)), data=data)

    async def rsi(self, args: RsiArgs, count: int) -> ToolOutput:
        data = await self.klines(args.symbol, count)
        series = compute_rsi_series(data, args.period)
        aligned = IndicatorAligner.align(len(data), series)
        text = (
            f"RSI({args.period}) for {normalize_symbol(args.symbol)}: {series[-1]:.2f}\n"
            f"Interpretation: {interpret_rsi(series[-1])}\n"
            f"Last {HISTORY_VALUES} values: {_recent(series)}"
        )
        return ToolOutput(text=text, data=aligned)

    async def macd(self, args: MacdArgs, count: int) -> ToolOutput:
        if args.fast_period >= args.slow_period:
            raise ToolError(f"fast_period ({args.fast_period}) must be < slow_period ({args.slow_period})")
        data = await self.klines(args.symbol, count)
        aligned = compute_macd_aligned(data, args.fast_period, args.slow_period, args.signal_period)
        points = aligned.values
        previous = points[-2] if len(points) > 1 else None
        latest = points[-1]
        text = (
            f"MACD({args.fast_period},{args.slow_period},{args.signal_period}) for "
            f"{normalize_symbol(args.symbol)}:\n"
            f"MACD: {latest.macd:.4f}  Signal: {latest.signal:.4f}  Histogram: {latest.histogram:.4f}\n"
            f"Interpretation: {interpret_macd(latest, previous)}\n"
            f"Last {HISTORY_VALUES} histogram values: {_recent([p.histogram for p in points], 4)}"
        )
        return ToolOutput(text=text, data=aligned)

    async def sma(self, args: AverageArgs) -> ToolOutput:
        data = await self.klines(args.symbol, RECENT_CANDLES)
        series = compute_sma_series(data, args.period)
        aligned = IndicatorAligner.align(len(data), series)
        text = (
            f"SMA({args.period}) for {normalize_symbol(args.symbol)}: {format_price(series[-1])}\n"
            f"Interpretation: {interpret_price_vs_average(data[-1].close, series[-1], f'SMA({args.period})')}\n"
            f"Last {HISTORY_VALUES} values: {_recent(series, 4)}"
        )
        return ToolOutput(text=text, data=aligned)

    async def ema(self, args: AverageArgs) -> ToolOutput:
        data = await self.klines(args.symbol, RECENT_CANDLES)
        series = compute_ema_series(data, args.period)
        aligned = IndicatorAligner.align(len(data), series)
        text = (
            f"EMA({args.period}) for {normalize_symbol(args.symbol)}: {format_price(series[-1])}\n"
            f"Interpretation: {interpret_price_vs_average(data[-1].close, series[-1], f'EMA({args.period})')}\n"
            f"Last {HISTORY_VALUES} values: {_recent(series, 4)}"
        )
        return ToolOutput(text=text, data=aligned)

    async def moving_averages(self, args: SymbolArgs) -> ToolOutput:
        data = await self.klines(args.symbol, RECENT_CANDLES)
        price = data[-1].close
        results: dict[str, AlignedIndicatorResult[float]] = {}
        lines = [f"Moving averages for {normalize_symbol(args.symbol)} (price {format_price(price)}):"]
        for label, compute, period in (
            ("SMA20", compute_sma_series, 20),
            ("SMA50", compute_sma_series, 50),
            ("EMA20", compute_ema_series, 20),
            ("EMA50", compute_ema_series, 50),
        ):
            series = compute(data, period)
            results[label] = IndicatorAligner.align(len(data), series)
            lines.append(f"{label}: {format_price(series[-1])} - {interpret_price_vs_average(price, series[-1], label)}")
        sma20, sma50 = results["SMA20"].latest, results["SMA50"].latest
        if sma20 is not None and sma50 is not None:
            lines.append(f"Trend: {'bullish' if sma20 > sma50 else 'bearish'} (SMA20 {'>' if sma20 > sma50 else '<='} SMA50)")
        return ToolOutput(text="\n".join(lines), data=results)

    async def bollinger(self, args: BollingerArgs, count: int) -> ToolOutput:
        data = await self.klines(args.symbol, count)
        series = compute_bollinger_series(data, args.period, args.std_dev)
        aligned = IndicatorAligner.align(len(data), series)
        latest, price = series[-1], data[-1].close
        text = (
            f"Bollinger Bands({args.period},{args.std_dev:g}) for {normalize_symbol(args.symbol)}:\n"
            f"Upper: {format_price(latest.upper)}  Middle: {format_price(latest.middle)}  "
            f"Lower: {format_price(latest.lower)}\n"
            f"Price: {format_price(price)}  %B: {latest.percent_b(price):.2f}  Bandwidth: {latest.bandwidth:.4f}\n"
            f"Interpretation: {interpret_bollinger(latest, price)}"
        )
        return ToolOutput(text=text, data=aligned)

    async def atr(self, args: AtrArgs, count: int) -> ToolOutput:
        data = await self.klines(args.symbol, count)
        series = compute_atr_series(data, args.period)
        aligned = IndicatorAligner.align(len(data), series)
        text = (
            f"ATR({args.period}) for {normalize_symbol(args.symbol)}: {series[-1]:.4f}\n"
            f"Interpretation: {interpret_atr(series[-1], data[-1].close)}\n"
            f"Last {HISTORY_VALUES} values: {_recent(series, 4)}"
        )
        return ToolOutput(text=text, data=aligned)

    async def stochastic(self, args: StochasticArgs, count: int) -> ToolOutput:
        data = await self.klines(args.symbol, count)
        series = compute_stochastic_series(data, args.k_period, args.d_period)
        aligned = IndicatorAligner.align(len(data), series)
        latest = series[-1]
        text = (
            f"Stochastic({args.k_period},{args.d_period}) for {normalize_symbol(args.symbol)}: "
            f"%K {latest.k:.2f}  %D {latest.d:.2f}\n"
            f"Interpretation: {interpret_stochastic(latest)}\n"
            f"Last {HISTORY_VALUES} %K values: {_recent([p.k for p in series])}"
        )
        return ToolOutput(text=text, data=aligned)

    async def volume(self, args: VolumeArgs, count: int) -> ToolOutput:
        data = await self.klines(args.symbol, count)
        obv = IndicatorAligner.align(len(data), compute_obv_series(data))
        mfi_series = compute_mfi_series(data, args.mfi_period)
        mfi = IndicatorAligner.align(len(data), mfi_series)
        ratio_series = compute_volume_ratio_series(data, min(20, len(data)))
        ratio = IndicatorAligner.align(len(data), ratio_series)
        obv_values = obv.values
        obv_trend = "rising" if len(obv_values) >= 5 and obv_values[-1] > obv_values[-5] else "flat/falling"
        text = (
            f"Volume indicators for {normalize_symbol(args.symbol)}:\n"
            f"OBV: {obv_values[-1]:,.2f} ({obv_trend} over 5 candles)\n"
            f"MFI({args.mfi_period}): {mfi_series[-1]:.2f} - {interpret_mfi(mfi_series[-1])}\n"
            f"Volume ratio: {ratio_series[-1]:.2f}x - {interpret_volume_ratio(ratio_series[-1])}"
        )
        return ToolOutput(text=text, data={"obv": obv, "mfi": mfi, "volume_ratio": ratio})


def _rejecting_bad_input(handler: Callable[[Any], Awaitable[ToolOutput]]) -> Callable[[Any], Awaitable[ToolOutput]]:
    """Report indicator input errors (too few candles, bad periods) as ToolError."""

    @functools.wraps(handler)
    async def run(args: Any) -> ToolOutput:
        try:
            return await handler(args)
        except AlignmentError:
            raise
        except ValueError as exc:
            raise ToolError(str(exc)) from exc

    return run


def _windowed(
    handler: Callable[[Any, int], Awaitable[ToolOutput]], count: int
) -> Callable[[Any], Awaitable[ToolOutput]]:
    async def run(args: Any) -> ToolOutput:
        return await handler(args, count)

    return _rejecting_bad_input(run)


def register_market_tools(registry: ToolRegistry, cache: MarketDataCache, interval: str = "5m") -> MarketTools:
    tools = MarketTools(cache, interval)

    windowed: list[tuple[str, type[BaseModel], Callable[[Any, int], Awaitable[ToolOutput]], str]] = [
        ("get_price", SymbolArgs, tools.price, "Price summary and recent candles"),
        ("calculate_rsi", RsiArgs, tools.rsi, "Relative Strength Index"),
        ("calculate_macd", MacdArgs, tools.macd, "MACD line, signal and histogram"),
        ("calculate_bollinger_bands", BollingerArgs, tools.bollinger, "Bollinger Bands"),
        ("calculate_atr", AtrArgs, tools.atr, "Average True Range (volatility)"),
        ("calculate_stochastic", StochasticArgs, tools.stochastic, "Stochastic oscillator %K/%D"),
        ("calculate_volume_indicators", VolumeArgs, tools.volume, "OBV, Money Flow Index and volume ratio"),
    ]
    for name, schema, handler, description in windowed:
        registry.register(
            name,
            schema,
            ToolKind.DATA,
            _windowed(handler, RECENT_CANDLES),
            f"{description} over the last {RECENT_CANDLES} {interval} candles.",
        )
        registry.register(
            f"{name}_24h",
            schema,
            ToolKind.DATA,
            _windowed(handler, DAY_CANDLES),
            f"{description} over the last {DAY_CANDLES} {interval} candles.",
        )

    registry.register(
        "calculate_sma", AverageArgs, ToolKind.DATA, _rejecting_bad_input(tools.sma), "Simple moving average of closes."
    )
    registry.register(
        "calculate_ema", AverageArgs, ToolKind.DATA, _rejecting_bad_input(tools.ema), "Exponential moving average of closes."
    )
    registry.register(
        "calculate_moving_averages",
        SymbolArgs,
        ToolKind.DATA,
        _rejecting_bad_input(tools.moving_averages),
        "SMA and EMA 20/50 compared against the current price.",
    )
    return tools
