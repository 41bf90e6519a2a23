"""Shared test fixtures for pytest.

Provides sample klines, a scripted model client, a counting market-data
provider and a temporary state store.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Sequence

import pytest

from tradeloop.ai.providers.base import ModelClient
from tradeloop.ai.tools.decision import register_decision_tools
from tradeloop.ai.tools.market import register_market_tools
from tradeloop.ai.tools.registry import ToolRegistry
from tradeloop.ai.types import Message, ModelReply, ProviderConfig, ProviderName, ToolCall
from tradeloop.market_data.cache import MarketDataCache
from tradeloop.persistence.context import HistoryContextBuilder
from tradeloop.persistence.store import PersistenceStore
from tradeloop.types import Kline

FIVE_MINUTES_MS = 5 * 60 * 1000
BASE_OPEN_TIME = 1_704_067_200_000  # 2024-01-01T00:00:00Z


def make_klines(count: int, start: float = 100.0, step: float = 0.5) -> list[Kline]:
    """Deterministic zig-zag uptrend: ``count`` 5m klines, oldest first."""
    klines = []
    for i in range(count):
        wiggle = 1.5 if i % 3 == 0 else -1.0
        close = start + i * step + wiggle
        open_time = BASE_OPEN_TIME + i * FIVE_MINUTES_MS
        klines.append(
            Kline(
                open_time=open_time,
                open=close - 0.3,
                high=close + 1.0,
                low=close - 1.2,
                close=close,
                volume=10.0 + (i % 7),
                close_time=open_time + FIVE_MINUTES_MS - 1,
            )
        )
    return klines


def tool_call(name: str, call_id: str = "", **arguments: Any) -> ToolCall:
    return ToolCall(name=name, arguments=json.dumps(arguments), id=call_id or f"call_{name}")


class FakeMarketDataProvider:
    """Returns generated klines and counts upstream calls."""

    def __init__(self, delay: float = 0.0, error: Exception | None = None) -> None:
        self.delay = delay
        self.error = error
        self.calls: list[tuple[str, str, int]] = []

    async def fetch(self, symbol: str, interval: str, count: int) -> Sequence[Kline]:
        self.calls.append((symbol, interval, count))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return make_klines(count)


class ScriptedModelClient(ModelClient):
    """ModelClient that replays a fixed list of replies.

    Once the script runs out, the last reply is repeated. Every call records
    the messages and the tool names offered.
    """

    def __init__(self, replies: Sequence[ModelReply]) -> None:
        super().__init__(
            ProviderConfig(
                name=ProviderName.OPENAI,
                api_key_env="TEST_KEY",
                base_url="http://test",
                default_model="scripted",
            )
        )
        self.replies = list(replies)
        self.calls: list[tuple[tuple[Message, ...], list[str]]] = []

    async def complete(self, conversation: Sequence[Message], tool_catalog: Sequence[dict[str, Any]]) -> ModelReply:
        offered = [t["function"]["name"] for t in tool_catalog]
        self.calls.append((tuple(conversation), offered))
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        return self.replies[index]

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def sample_klines() -> list[Kline]:
    """120 consecutive 5m klines."""
    return make_klines(120)


@pytest.fixture
def fake_provider() -> FakeMarketDataProvider:
    return FakeMarketDataProvider()


@pytest.fixture
def cache(fake_provider: FakeMarketDataProvider) -> MarketDataCache:
    return MarketDataCache(fake_provider, ttl=60.0)


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "trading_state.json"


@pytest.fixture
def store(state_path: Path) -> PersistenceStore:
    return PersistenceStore(state_path)


@pytest.fixture
def context_builder(store: PersistenceStore) -> HistoryContextBuilder:
    return HistoryContextBuilder(store, window=5)


@pytest.fixture
def registry(cache: MarketDataCache) -> ToolRegistry:
    registry = ToolRegistry()
    register_market_tools(registry, cache, "5m")
    register_decision_tools(registry)
    return registry
