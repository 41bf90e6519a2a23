from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tradeloop.persistence.context import NO_HISTORY_MARKER, HistoryContextBuilder, generate_context_summary
from tradeloop.persistence.models import TradingDecision, TradingState


def _state_with(actions: list[str], symbol: str = "BTCUSDC") -> TradingState:
    state = TradingState()
    start = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    for i, action in enumerate(actions):
        state.add_decision(
            TradingDecision(
                symbol=symbol,
                action=action,  # type: ignore[arg-type]
                confidence=50 + i,
                amount=None if action == "HOLD" else 20.0,
                timestamp=start + timedelta(hours=i),
            )
        )
    return state


def test_no_history_returns_marker():
    summary = generate_context_summary(TradingState(), "BTCUSDC")

    assert summary
    assert NO_HISTORY_MARKER in summary
    assert "BTCUSDC" in summary


def test_other_symbol_history_does_not_leak():
    summary = generate_context_summary(_state_with(["BUY"], symbol="ETHUSDC"), "BTCUSDC")
    assert NO_HISTORY_MARKER in summary


def test_counts_and_last_decision():
    state = _state_with(["BUY", "SELL", "HOLD", "HOLD"])
    summary = generate_context_summary(state, "BTCUSDC")

    assert "Total decisions: 4 (BUY: 1, SELL: 1, HOLD: 2)" in summary
    assert "- Action: HOLD" in summary
    assert "- Confidence: 53%" in summary
    assert "- Time: 2024-05-01 11:00:00 UTC" in summary


def test_absent_optional_fields_are_omitted():
    summary = generate_context_summary(_state_with(["HOLD"]), "BTCUSDC")

    assert "Price at decision" not in summary
    assert "Reasoning" not in summary
    assert "Amount" not in summary


def test_present_optional_fields_are_rendered():
    state = TradingState()
    state.add_decision(
        TradingDecision(
            symbol="BTCUSDC",
            action="BUY",
            confidence=80,
            amount=15.0,
            explanation="RSI recovered from oversold",
            price_at_decision=43123.456,
        )
    )
    summary = generate_context_summary(state, "BTCUSDC")

    assert "- Amount: 15" in summary
    assert "- Price at decision: 43,123.46" in summary
    assert "- Reasoning: RSI recovered from oversold" in summary


def test_recent_window_is_newest_first_and_bounded():
    state = _state_with(["BUY", "SELL", "HOLD", "BUY", "SELL", "HOLD", "BUY"])
    summary = generate_context_summary(state, "BTCUSDC", window=3)

    recent = summary.split("Recent decisions")[1].strip().splitlines()[1:]
    assert len(recent) == 3
    assert recent[0].startswith("- 2024-05-01 14:00: BUY")
    assert recent[2].startswith("- 2024-05-01 12:00: SELL")


@pytest.mark.asyncio
async def test_builder_reads_live_store_state(store):
    builder = HistoryContextBuilder(store, window=5)
    assert NO_HISTORY_MARKER in builder.generate_context_summary("BTCUSDC")

    await store.record_decision("BTCUSDC", TradingDecision(symbol="BTCUSDC", action="HOLD", confidence=40))

    assert "Total decisions: 1" in builder.generate_context_summary("BTCUSDC")
