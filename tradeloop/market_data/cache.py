"""TTL cache in front of a MarketDataProvider with single-flight fetches.

Concurrent callers asking for the same key while a fetch is outstanding
await that one fetch instead of hitting the upstream again. Failed fetches
are propagated to every waiter and are never cached.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from tradeloop.market_data.base import CacheKey, MarketDataProvider
from tradeloop.types import Kline

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0


@dataclass(frozen=True)
class CacheEntry:
    data: tuple[Kline, ...]
    fetched_at: float

    def is_valid(self, now: float, ttl: float) -> bool:
        return now - self.fetched_at < ttl


class MarketDataCache:
    """Kline cache keyed by (symbol, interval, count)."""

    def __init__(
        self,
        provider: MarketDataProvider,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._in_flight: dict[CacheKey, asyncio.Task[tuple[Kline, ...]]] = {}
        self.hits = 0
        self.misses = 0
        self.shared = 0
        self.upstream_calls = 0

    def __len__(self) -> int:
        return len(self._entries)

    def peek(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the stored entry for ``key`` regardless of age."""
        return self._entries.get(key)

    async def get_or_fetch(self, key: CacheKey, ttl: Optional[float] = None) -> tuple[Kline, ...]:
        """Return cached klines for ``key``, fetching once on miss or expiry.

        Raises:
            ProviderError: If the upstream fetch fails.
        """
        ttl = self.ttl if ttl is None else ttl
        entry = self._entries.get(key)
        if entry is not None and entry.is_valid(self._clock(), ttl):
            self.hits += 1
            logger.debug("Cache hit for %s", key)
            return entry.data

        pending = self._in_flight.get(key)
        if pending is not None:
            self.shared += 1
            logger.debug("Joining in-flight fetch for %s", key)
            return await asyncio.shield(pending)

        self.misses += 1
        logger.debug("Cache miss for %s", key)
        task = asyncio.create_task(self._fetch(key), name=f"fetch {key}")
        self._in_flight[key] = task
        task.add_done_callback(functools.partial(self._fetch_done, key))
        return await asyncio.shield(task)

    async def _fetch(self, key: CacheKey) -> tuple[Kline, ...]:
        # owned by its own task; outlives any single caller
        self.upstream_calls += 1
        try:
            klines = await self.provider.fetch(key.symbol, key.interval, key.count)
        except Exception as exc:
            logger.warning("Market data fetch failed for %s: %s", key, exc)
            raise
        data = tuple(klines)
        self._entries[key] = CacheEntry(data=data, fetched_at=self._clock())
        return data

    def _fetch_done(self, key: CacheKey, task: asyncio.Task[tuple[Kline, ...]]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def latest(self, key: CacheKey) -> Optional[Kline]:
        """Most recent kline for ``key`` or ``None`` if the series is empty."""
        data = await self.get_or_fetch(key)
        return data[-1] if data else None

    def invalidate(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now, self.ttl)]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "shared": self.shared,
            "upstream_calls": self.upstream_calls,
            "in_flight": len(self._in_flight),
        }
