"""Market data provider protocol and kline parsing.

Providers fetch the most recent ``count`` klines for a symbol/interval and
return them oldest first. Any network or API failure surfaces as
``ProviderError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from tradeloop.types import Kline


class ProviderError(Exception):
    """Upstream market-data fetch failed (network, HTTP status, timeout or payload)."""


@dataclass(frozen=True)
class CacheKey:
    """Identity of one kline request: (symbol, interval, count)."""

    symbol: str
    interval: str
    count: int

    def __str__(self) -> str:
        return f"{self.symbol}:{self.interval}:{self.count}"


class MarketDataProvider(Protocol):
    """Fetches the latest klines for a symbol."""

    async def fetch(self, symbol: str, interval: str, count: int) -> Sequence[Kline]:
        """Return up to ``count`` most recent klines, oldest first.

        Raises:
            ProviderError: On network/API failure.
        """
        ...


def parse_kline_row(row: Sequence[object]) -> Kline:
    """Parse one Binance-style kline array.

    Layout: [open_time, open, high, low, close, volume, close_time,
    quote_volume, trade_count, taker_buy_base, taker_buy_quote, ignore]

    Raises:
        ProviderError: If the row is too short or a field does not parse.
    """
    if len(row) < 11:
        raise ProviderError(f"Invalid kline row length {len(row)}, expected at least 11")
    try:
        return Kline(
            open_time=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
            close_time=int(row[6]),
            quote_volume=float(row[7]),
            trade_count=int(row[8]),
            taker_buy_base=float(row[9]),
            taker_buy_quote=float(row[10]),
        )
    except (TypeError, ValueError) as exc:
        raise ProviderError(f"Invalid kline row {row!r}: {exc}") from exc
