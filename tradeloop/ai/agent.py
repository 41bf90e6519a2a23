"""Turn-bounded agent loop for one symbol.

Each turn sends the whole conversation plus the tool catalog to the model,
appends the assistant reply, then runs the requested tool calls in order
and appends one tool message per result. The first successful decision
tool call ends the run; later calls in the same reply still execute but do
not replace it.

When ``max_turns`` rounds pass without a decision, one extra round is made
with only the decision tools on offer. The turn counter therefore never
exceeds ``max_turns + 1``.

Only ``ModelError`` and ``ProviderError`` escape ``run_analysis``;
``turn`` tells the caller where the run stopped.
"""

from __future__ import annotations

import logging
from typing import Optional

from tradeloop.ai.conversation import Conversation
from tradeloop.ai.prompts import DEFAULT_SYSTEM_PROMPT, SystemPrompt, analysis_request, forced_decision_instruction
from tradeloop.ai.providers.base import ModelClient, ModelError
from tradeloop.ai.tools.market import analysis_key
from tradeloop.ai.tools.registry import ToolKind, ToolRegistry
from tradeloop.ai.types import BotResult, ModelReply, ToolResult
from tradeloop.market_data.base import ProviderError
from tradeloop.market_data.cache import MarketDataCache
from tradeloop.persistence.context import HistoryContextBuilder
from tradeloop.persistence.models import TradingDecision
from tradeloop.persistence.store import PersistenceStore
from tradeloop.types import BotDecision

logger = logging.getLogger(__name__)

DECISION_ONLY = (ToolKind.DECISION,)


class AgentLoop:
    """Drives one symbol's analysis from seeded context to a decision."""

    def __init__(
        self,
        model: ModelClient,
        registry: ToolRegistry,
        store: PersistenceStore,
        context_builder: HistoryContextBuilder,
        cache: Optional[MarketDataCache] = None,
        interval: str = "5m",
        max_turns: int = 30,
        system_prompt: SystemPrompt = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        if max_turns < 0:
            raise ValueError(f"max_turns must be >= 0, got {max_turns}")
        self.model = model
        self.registry = registry
        self.store = store
        self.context_builder = context_builder
        self.cache = cache
        self.interval = interval
        self.max_turns = max_turns
        self.system_prompt = system_prompt
        self.conversation = Conversation()
        self.turn = 0

    async def run_analysis(self, symbol: str, extra_context: Optional[str] = None) -> BotResult:
        """Analyse ``symbol`` until a decision is made or the budget is spent.

        Raises:
            ModelError: If the model call fails after retries.
            ProviderError: If market data cannot be fetched.
        """
        self.conversation.reset(self.system_prompt.content)
        summary = self.context_builder.generate_context_summary(symbol)
        self.conversation.add_user(analysis_request(symbol, summary, extra_context))
        self.turn = 1

        results: list[ToolResult] = []
        decision: Optional[BotDecision] = None
        decision_reply: Optional[ModelReply] = None
        catalog = self.registry.catalog()

        logger.info("Starting analysis of %s (max %d turns, prompt %s)", symbol, self.max_turns, self.system_prompt.id)

        while self.turn <= self.max_turns:
            reply = await self._complete(symbol, catalog)
            batch = await self._dispatch_all(symbol, reply)
            results.extend(batch)
            self.turn += 1
            decision = self._first_decision(batch)
            if decision is not None:
                decision_reply = reply
                break

        forced = False
        if decision is None:
            forced = True
            logger.warning("%s: no decision after %d turns, forcing a final decision", symbol, self.max_turns)
            self.conversation.add_user(forced_decision_instruction(symbol, self.max_turns))
            reply = await self._complete(symbol, self.registry.catalog(DECISION_ONLY))
            batch = await self._dispatch_all(symbol, reply, allowed_kinds=DECISION_ONLY)
            results.extend(batch)
            self.turn += 1
            decision = self._first_decision(batch)
            if decision is not None:
                decision_reply = reply

        if decision is not None:
            explanation = (decision_reply.text if decision_reply else "") or self.conversation.last_assistant_text()
            await self._record(symbol, decision, explanation)
            logger.info(
                "%s: decision %s (confidence %d%%) after %d turn(s)",
                symbol,
                decision.action,
                decision.confidence,
                self.turn - 1,
            )
        else:
            logger.warning("%s: no decision after forced round", symbol)

        return BotResult(
            symbol=symbol,
            decision=decision,
            turns_used=self.turn - 1,
            final_response=self.conversation.last_assistant_text(),
            conversation_history=list(self.conversation.messages),
            tool_results=results,
            forced=forced,
        )

    async def _complete(self, symbol: str, catalog: list[dict]) -> ModelReply:
        logger.info("%s: turn %d/%d (%d tools)", symbol, self.turn, self.max_turns, len(catalog))
        try:
            reply = await self.model.complete(self.conversation.messages, catalog)
        except ModelError as exc:
            logger.error("%s: model call failed on turn %d: %s", symbol, self.turn, exc)
            raise
        self.conversation.add_assistant(reply)
        return reply

    async def _dispatch_all(
        self,
        symbol: str,
        reply: ModelReply,
        allowed_kinds: Optional[tuple[ToolKind, ...]] = None,
    ) -> list[ToolResult]:
        batch: list[ToolResult] = []
        for call in reply.tool_calls:
            try:
                result = await self.registry.dispatch(call, allowed_kinds=allowed_kinds)
            except ProviderError as exc:
                logger.error("%s: market data failed in %s on turn %d: %s", symbol, call.name, self.turn, exc)
                raise
            logger.info("%s: turn %d tool %s ok=%s", symbol, self.turn, call.name, result.ok)
            self.conversation.add_tool_result(result)
            batch.append(result)
        return batch

    @staticmethod
    def _first_decision(batch: list[ToolResult]) -> Optional[BotDecision]:
        for result in batch:
            if result.ok and result.is_decision_tool and result.decision is not None:
                return result.decision
        return None

    async def _record(self, symbol: str, decision: BotDecision, explanation: str) -> None:
        price: Optional[float] = None
        price_timestamp: Optional[int] = None
        if self.cache is not None:
            try:
                latest = await self.cache.latest(analysis_key(symbol, self.interval))
            except ProviderError as exc:
                logger.warning("%s: could not look up price at decision: %s", symbol, exc)
            else:
                if latest is not None:
                    price, price_timestamp = latest.close, latest.close_time

        record = TradingDecision.from_bot_decision(
            symbol,
            decision,
            explanation=explanation,
            price_at_decision=price,
            price_timestamp=price_timestamp,
        )
        await self.store.record_decision(symbol, record)
