"""Render a symbol's decision history into prompt text."""

from __future__ import annotations

from tradeloop.persistence.models import TradingState
from tradeloop.persistence.store import PersistenceStore

NO_HISTORY_MARKER = "No previous decisions found for this symbol."

DEFAULT_WINDOW = 5


def _format_price(price: float) -> str:
    if price >= 1:
        return f"{price:,.2f}"
    return f"{price:.8f}".rstrip("0").rstrip(".")


def generate_context_summary(state: TradingState, symbol: str, window: int = DEFAULT_WINDOW) -> str:
    """Summary of previous decisions for ``symbol``.

    Returns ``NO_HISTORY_MARKER`` (within a short header) when the symbol
    has no recorded decisions.
    """
    history = state.history(symbol)
    if history is None or not history.decisions:
        return f"Historical context for {symbol}:\n{NO_HISTORY_MARKER}"

    lines = [
        f"Historical context for {symbol}:",
        f"Total decisions: {history.total_decisions} "
        f"(BUY: {history.buy_count}, SELL: {history.sell_count}, HOLD: {history.hold_count})",
    ]

    last = history.last_decision
    assert last is not None
    lines.append("")
    lines.append("Last decision:")
    lines.append(f"- Action: {last.action}")
    if last.amount is not None:
        lines.append(f"- Amount: {last.amount:g}")
    lines.append(f"- Confidence: {last.confidence}%")
    lines.append(f"- Time: {last.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    if last.price_at_decision is not None:
        lines.append(f"- Price at decision: {_format_price(last.price_at_decision)}")
    if last.explanation.strip():
        lines.append(f"- Reasoning: {last.explanation.strip()}")

    recent = history.recent(window)
    lines.append("")
    lines.append(f"Recent decisions (newest first, up to {window}):")
    for decision in recent:
        lines.append(
            f"- {decision.timestamp.strftime('%Y-%m-%d %H:%M')}: {decision.action} "
            f"(confidence {decision.confidence}%)"
        )
    return "\n".join(lines)


class HistoryContextBuilder:
    """Reads the store's current state; holds no state of its own."""

    def __init__(self, store: PersistenceStore, window: int = DEFAULT_WINDOW) -> None:
        self.store = store
        self.window = window

    def generate_context_summary(self, symbol: str) -> str:
        return generate_context_summary(self.store.state, symbol, self.window)
