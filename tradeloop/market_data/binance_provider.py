from __future__ import annotations

import logging
from typing import Sequence

import httpx

from tradeloop.market_data.base import ProviderError, parse_kline_row
from tradeloop.types import Kline

logger = logging.getLogger(__name__)

MAX_KLINES_PER_REQUEST = 1000

SUPPORTED_INTERVALS = frozenset(
    {"1m", "3m", "5m", "15m", "30m", "1h", "2h", "4h", "6h", "8h", "12h", "1d", "3d", "1w"}
)


class BinanceProvider:
    """Binance spot klines over the public REST API."""

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout_seconds: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def exchange_name(self) -> str:
        return "binance"

    def _normalize_symbol(self, symbol: str) -> str:
        """Normalize symbol for Binance API (e.g., "btc/usdc" -> "BTCUSDC")."""
        s = symbol.strip().upper().replace("/", "").replace("_", "").replace("-", "")
        if not s:
            raise ProviderError("symbol is required")
        return s

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
            )
        return self._client

    async def fetch(self, symbol: str, interval: str, count: int) -> Sequence[Kline]:
        """Fetch the ``count`` most recent klines, oldest first.

        Response format: [
            [open_time, open, high, low, close, volume, close_time, ...]
        ]
        """
        if interval not in SUPPORTED_INTERVALS:
            raise ProviderError(f"Unsupported interval for Binance: {interval}")
        if not 1 <= count <= MAX_KLINES_PER_REQUEST:
            raise ProviderError(f"count must be within 1-{MAX_KLINES_PER_REQUEST}, got {count}")

        params = {
            "symbol": self._normalize_symbol(symbol),
            "interval": interval,
            "limit": str(count),
        }
        client = self._get_client()
        try:
            resp = await client.get("/api/v3/klines", params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Binance klines {params['symbol']} failed with HTTP {exc.response.status_code}: "
                f"{exc.response.text[:200]}"
            ) from exc
        except httpx.TimeoutException as exc:
            raise ProviderError(f"Binance klines {params['symbol']} timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Binance klines {params['symbol']} network error: {exc}") from exc
        except ValueError as exc:
            raise ProviderError(f"Binance klines {params['symbol']} returned invalid JSON: {exc}") from exc

        if not isinstance(data, list):
            raise ProviderError(f"Unexpected response type: {type(data).__name__}")

        klines = [parse_kline_row(row) for row in data]
        logger.debug("Fetched %d %s klines for %s", len(klines), interval, params["symbol"])
        return klines

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
