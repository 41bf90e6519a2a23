"""Application context: the explicitly owned shared handles.

One AppContext holds the market-data cache, persistence store, tool
registry and model client for a process. Agent loops and the orchestrator
receive it instead of reaching for module-level state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from tradeloop.ai.agent import AgentLoop
from tradeloop.ai.providers.base import ModelClient
from tradeloop.ai.providers.openai import OpenAICompatibleClient
from tradeloop.ai.tools.decision import register_decision_tools
from tradeloop.ai.tools.market import register_market_tools
from tradeloop.ai.tools.registry import ToolRegistry
from tradeloop.ai.types import ProviderConfig, ProviderName
from tradeloop.config import AppConfig
from tradeloop.market_data.base import MarketDataProvider
from tradeloop.market_data.binance_provider import BinanceProvider
from tradeloop.market_data.cache import MarketDataCache
from tradeloop.persistence.context import HistoryContextBuilder
from tradeloop.persistence.store import PersistenceStore

logger = logging.getLogger(__name__)


def model_config_from(config: AppConfig) -> ProviderConfig:
    return ProviderConfig(
        name=ProviderName.OPENAI,
        api_key_env="OPENAI_API_KEY",
        base_url=config.openai_base_url,
        default_model=config.openai_model,
        timeout_seconds=config.model_timeout_seconds,
    )


@dataclass
class AppContext:
    config: AppConfig
    provider: MarketDataProvider
    cache: MarketDataCache
    store: PersistenceStore
    registry: ToolRegistry
    model: ModelClient
    context_builder: HistoryContextBuilder

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        provider: Optional[MarketDataProvider] = None,
        model: Optional[ModelClient] = None,
        store: Optional[PersistenceStore] = None,
    ) -> AppContext:
        """Wire the default collaborators, allowing any of them to be swapped."""
        if provider is None:
            provider = BinanceProvider(config.binance_base_url, config.market_data_timeout_seconds)
        cache = MarketDataCache(provider, ttl=config.cache_ttl_seconds)
        store = store or PersistenceStore(config.state_file)

        registry = ToolRegistry()
        register_market_tools(registry, cache, config.trading_interval)
        register_decision_tools(registry)

        if model is None:
            model = OpenAICompatibleClient(
                model_config_from(config),
                model=config.openai_model,
                api_key=config.openai_api_key,
            )

        logger.info(
            "Context ready: model=%s at %s, %d tools, state=%s",
            config.openai_model,
            config.openai_base_url,
            len(registry),
            store.path,
        )
        return cls(
            config=config,
            provider=provider,
            cache=cache,
            store=store,
            registry=registry,
            model=model,
            context_builder=HistoryContextBuilder(store, config.history_window),
        )

    def agent(self, max_turns: Optional[int] = None) -> AgentLoop:
        """New AgentLoop with its own conversation; one per symbol run."""
        return AgentLoop(
            model=self.model,
            registry=self.registry,
            store=self.store,
            context_builder=self.context_builder,
            cache=self.cache,
            interval=self.config.trading_interval,
            max_turns=self.config.bot_max_turns if max_turns is None else max_turns,
        )

    async def aclose(self) -> None:
        await self.model.close()
        close = getattr(self.provider, "close", None)
        if close is not None:
            await close()
