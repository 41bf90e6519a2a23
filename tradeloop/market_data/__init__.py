"""Market data providers and the kline cache."""

from tradeloop.market_data.base import CacheKey, MarketDataProvider, ProviderError
from tradeloop.market_data.binance_provider import BinanceProvider
from tradeloop.market_data.cache import MarketDataCache

__all__ = [
    "BinanceProvider",
    "CacheKey",
    "MarketDataCache",
    "MarketDataProvider",
    "ProviderError",
]
