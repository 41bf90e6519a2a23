"""Tests for the turn-bounded agent loop."""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from conftest import FakeMarketDataProvider, ScriptedModelClient, make_klines, tool_call
from tradeloop.ai.agent import AgentLoop
from tradeloop.ai.providers.base import TransientModelError
from tradeloop.ai.tools.market import register_market_tools
from tradeloop.ai.tools.registry import ToolRegistry
from tradeloop.ai.types import Message, ModelReply, Role
from tradeloop.market_data.base import ProviderError
from tradeloop.market_data.cache import MarketDataCache
from tradeloop.persistence.context import NO_HISTORY_MARKER
from tradeloop.persistence.models import TradingDecision

DECISION_TOOLS = ["buy", "sell", "hold"]


def _agent(replies, registry, store, context_builder, cache, max_turns: int = 3):
    model = ScriptedModelClient(replies)
    agent = AgentLoop(
        model=model,
        registry=registry,
        store=store,
        context_builder=context_builder,
        cache=cache,
        interval="5m",
        max_turns=max_turns,
    )
    return agent, model


@pytest.mark.asyncio
async def test_budget_exhausted_forces_one_decision_only_round(registry, store, context_builder, cache):
    """max_turns=3 with no decision: 3 normal rounds plus one forced round."""
    agent, model = _agent([ModelReply(text="Still thinking")], registry, store, context_builder, cache)

    result = await agent.run_analysis("BTCUSDC")

    assert result.decision is None
    assert result.turns_used == 4
    assert result.forced is True
    assert result.final_response == "Still thinking"
    assert len(model.calls) == 4

    for _, offered in model.calls[:3]:
        assert "get_price" in offered
        assert "hold" in offered
    _, forced_offered = model.calls[3]
    assert sorted(forced_offered) == sorted(DECISION_TOOLS)

    forced_prompt = model.calls[3][0][-1]
    assert forced_prompt.role is Role.USER
    assert "decision" in forced_prompt.content.lower()
    assert store.state.history("BTCUSDC") is None


@pytest.mark.asyncio
async def test_decision_after_data_tool(registry, store, context_builder, cache):
    replies = [
        ModelReply(tool_calls=(tool_call("get_price", symbol="BTCUSDC"),)),
        ModelReply(
            text="Uptrend intact, holding.",
            tool_calls=(tool_call("hold", pair="BTCUSDC", confidence=65),),
        ),
    ]
    agent, model = _agent(replies, registry, store, context_builder, cache)

    result = await agent.run_analysis("BTCUSDC")

    assert result.decision is not None
    assert result.decision.action == "HOLD"
    assert result.decision.confidence == 65
    assert result.turns_used == 2
    assert result.forced is False
    assert len(model.calls) == 2

    history = store.state.history("BTCUSDC")
    assert history is not None
    assert history.total_decisions == 1
    recorded = history.last_decision
    assert recorded.explanation == "Uptrend intact, holding."
    latest = make_klines(100)[-1]
    assert recorded.price_at_decision == latest.close
    assert recorded.price_timestamp == latest.close_time


@pytest.mark.asyncio
async def test_tool_messages_follow_assistant_message_in_call_order(registry, store, context_builder, cache):
    replies = [
        ModelReply(
            tool_calls=(
                tool_call("get_price", "c1", symbol="BTCUSDC"),
                tool_call("calculate_rsi", "c2", symbol="BTCUSDC"),
            )
        ),
        ModelReply(tool_calls=(tool_call("hold", pair="BTCUSDC", confidence=50),)),
    ]
    agent, _ = _agent(replies, registry, store, context_builder, cache)

    result = await agent.run_analysis("BTCUSDC")

    roles = [m.role for m in result.conversation_history]
    assert roles[:5] == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.TOOL, Role.TOOL]
    assert [m.tool_call_id for m in result.conversation_history[3:5]] == ["c1", "c2"]
    assert [r.call.name for r in result.tool_results] == ["get_price", "calculate_rsi", "hold"]


@pytest.mark.asyncio
async def test_first_decision_in_batch_wins(registry, store, context_builder, cache):
    replies = [
        ModelReply(
            tool_calls=(
                tool_call("buy", "c1", pair="BTCUSDC", amount=50.0, confidence=80),
                tool_call("sell", "c2", pair="BTCUSDC", amount=25.0, confidence=90),
            )
        )
    ]
    agent, _ = _agent(replies, registry, store, context_builder, cache)

    result = await agent.run_analysis("BTCUSDC")

    assert result.decision.action == "BUY"
    assert result.decision.amount == 50.0
    assert result.turns_used == 1
    # the second call still ran and was logged into the conversation
    assert len(result.tool_results) == 2
    assert result.tool_results[1].ok
    assert store.state.history("BTCUSDC").total_decisions == 1


@pytest.mark.asyncio
async def test_malformed_arguments_let_model_self_correct(registry, store, context_builder, cache):
    replies = [
        ModelReply(tool_calls=(tool_call("buy", pair="BTCUSDC", amount=10.0, confidence=150),)),
        ModelReply(tool_calls=(tool_call("hold", pair="BTCUSDC", confidence=40),)),
    ]
    agent, model = _agent(replies, registry, store, context_builder, cache)

    result = await agent.run_analysis("BTCUSDC")

    first = result.tool_results[0]
    assert first.ok is False
    assert first.output.startswith("Error:")
    assert "confidence" in first.output
    # the error text reached the model on the next turn
    second_call_messages = model.calls[1][0]
    assert second_call_messages[-1].role is Role.TOOL
    assert "confidence" in second_call_messages[-1].content

    assert result.decision.action == "HOLD"
    assert result.turns_used == 2


@pytest.mark.asyncio
async def test_unknown_tool_is_not_fatal(registry, store, context_builder, cache):
    replies = [
        ModelReply(tool_calls=(tool_call("get_orderbook", symbol="BTCUSDC"),)),
        ModelReply(tool_calls=(tool_call("sell", pair="BTCUSDC", amount=5.0, confidence=55),)),
    ]
    agent, _ = _agent(replies, registry, store, context_builder, cache)

    result = await agent.run_analysis("BTCUSDC")

    assert result.tool_results[0].ok is False
    assert "Unknown tool" in result.tool_results[0].output
    assert result.decision.action == "SELL"


@pytest.mark.asyncio
async def test_forced_round_can_produce_decision(registry, store, context_builder, cache):
    replies = [
        ModelReply(text="Need more data"),
        ModelReply(text="Fine.", tool_calls=(tool_call("hold", pair="BTCUSDC", confidence=30),)),
    ]
    agent, _ = _agent(replies, registry, store, context_builder, cache, max_turns=1)

    result = await agent.run_analysis("BTCUSDC")

    assert result.forced is True
    assert result.turns_used == 2
    assert result.decision.action == "HOLD"
    assert store.state.history("BTCUSDC").last_decision.explanation == "Fine."


@pytest.mark.asyncio
async def test_forced_round_rejects_data_tools(registry, store, context_builder, cache):
    replies = [
        ModelReply(text="Need more data"),
        ModelReply(tool_calls=(tool_call("get_price", symbol="BTCUSDC"),)),
    ]
    agent, _ = _agent(replies, registry, store, context_builder, cache, max_turns=1)

    result = await agent.run_analysis("BTCUSDC")

    assert result.decision is None
    assert result.turns_used == 2
    assert result.tool_results[-1].ok is False
    assert "not available" in result.tool_results[-1].output


@pytest.mark.asyncio
async def test_turns_never_exceed_budget_plus_one(registry, store, context_builder, cache):
    replies = [ModelReply(tool_calls=(tool_call("calculate_rsi", symbol="BTCUSDC"),))]
    agent, model = _agent(replies, registry, store, context_builder, cache, max_turns=5)

    result = await agent.run_analysis("BTCUSDC")

    assert result.turns_used == 6
    assert len(model.calls) == 6


class FailingModelClient(ScriptedModelClient):
    def __init__(self, fail_on_call: int) -> None:
        super().__init__([ModelReply(tool_calls=(tool_call("get_price", symbol="BTCUSDC"),))])
        self.fail_on_call = fail_on_call

    async def complete(self, conversation: Sequence[Message], tool_catalog: Sequence[dict[str, Any]]) -> ModelReply:
        if len(self.calls) + 1 == self.fail_on_call:
            raise TransientModelError("gateway timeout", status_code=504)
        return await super().complete(conversation, tool_catalog)


@pytest.mark.asyncio
async def test_model_error_propagates_with_turn(registry, store, context_builder, cache):
    agent = AgentLoop(
        model=FailingModelClient(fail_on_call=3),
        registry=registry,
        store=store,
        context_builder=context_builder,
        cache=cache,
        max_turns=5,
    )

    with pytest.raises(TransientModelError):
        await agent.run_analysis("BTCUSDC")

    assert agent.turn == 3


@pytest.mark.asyncio
async def test_provider_error_aborts_run(registry, store, context_builder):
    failing_cache = MarketDataCache(FakeMarketDataProvider(error=ProviderError("HTTP 418")))
    failing_registry = ToolRegistry()
    register_market_tools(failing_registry, failing_cache, "5m")
    agent, _ = _agent(
        [ModelReply(tool_calls=(tool_call("get_price", symbol="BTCUSDC"),))],
        failing_registry,
        store,
        context_builder,
        failing_cache,
    )

    with pytest.raises(ProviderError):
        await agent.run_analysis("BTCUSDC")
    assert agent.turn == 1


@pytest.mark.asyncio
async def test_no_history_marker_in_first_prompt(registry, store, context_builder, cache):
    agent, model = _agent([ModelReply(tool_calls=(tool_call("hold", pair="ETHUSDC", confidence=50),))],
                          registry, store, context_builder, cache)

    await agent.run_analysis("ETHUSDC")

    first_user = model.calls[0][0][1]
    assert first_user.role is Role.USER
    assert NO_HISTORY_MARKER in first_user.content
    assert "ETHUSDC" in first_user.content


@pytest.mark.asyncio
async def test_history_and_extra_context_are_injected(registry, store, context_builder, cache):
    await store.record_decision("BTCUSDC", TradingDecision(symbol="BTCUSDC", action="BUY", confidence=70, amount=20.0))
    agent, model = _agent([ModelReply(tool_calls=(tool_call("hold", pair="BTCUSDC", confidence=50),))],
                          registry, store, context_builder, cache)

    await agent.run_analysis("BTCUSDC", extra_context="Funding rates turned negative.")

    prompt = model.calls[0][0][1].content
    assert "Total decisions: 1" in prompt
    assert "Funding rates turned negative." in prompt
    assert store.state.history("BTCUSDC").total_decisions == 2


@pytest.mark.asyncio
async def test_conversation_is_reset_between_runs(registry, store, context_builder, cache):
    agent, model = _agent([ModelReply(tool_calls=(tool_call("hold", pair="X", confidence=50),))],
                          registry, store, context_builder, cache)

    first = await agent.run_analysis("BTCUSDC")
    second = await agent.run_analysis("ETHUSDC")

    assert len(first.conversation_history) == len(second.conversation_history)
    assert all("BTCUSDC" not in m.content for m in second.conversation_history[1:2])
    assert store.state.history("ETHUSDC").last_decision.symbol == "ETHUSDC"
