"""Decision history persistence and prompt context."""

from tradeloop.persistence.context import NO_HISTORY_MARKER, HistoryContextBuilder, generate_context_summary
from tradeloop.persistence.models import SymbolHistory, TradingDecision, TradingState
from tradeloop.persistence.store import PersistenceError, PersistenceStore

__all__ = [
    "NO_HISTORY_MARKER",
    "HistoryContextBuilder",
    "PersistenceError",
    "PersistenceStore",
    "SymbolHistory",
    "TradingDecision",
    "TradingState",
    "generate_context_summary",
]
