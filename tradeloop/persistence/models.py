"""Persisted decision history.

The state document is plain JSON. Readers ignore unknown keys and default
missing ones so that older and newer documents stay loadable. Per-symbol
counters are derived from the decision list, never trusted from disk.

All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from tradeloop.types import BotDecision, TradeAction

logger = logging.getLogger(__name__)

ACTIONS: tuple[TradeAction, ...] = ("BUY", "SELL", "HOLD")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    ts = value
    if ts.endswith("Z"):
        ts = ts[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(ts)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


@dataclass(frozen=True)
class TradingDecision:
    """One recorded decision. Immutable once recorded."""

    symbol: str
    action: TradeAction
    confidence: int
    explanation: str = ""
    amount: Optional[float] = None
    timestamp: datetime = field(default_factory=_utcnow)
    price_at_decision: Optional[float] = None
    price_timestamp: Optional[int] = None  # close time (ms) of the candle the decision was made on

    @classmethod
    def from_bot_decision(
        cls,
        symbol: str,
        decision: BotDecision,
        explanation: str = "",
        price_at_decision: Optional[float] = None,
        price_timestamp: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> TradingDecision:
        return cls(
            symbol=symbol,
            action=decision.action,
            confidence=decision.confidence,
            explanation=explanation,
            amount=decision.amount,
            timestamp=timestamp or _utcnow(),
            price_at_decision=price_at_decision,
            price_timestamp=price_timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "action": self.action,
            "amount": self.amount,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "timestamp": self.timestamp.isoformat(),
            "price_at_decision": self.price_at_decision,
            "price_timestamp": self.price_timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], symbol: str = "") -> TradingDecision:
        """Create from dictionary.

        Raises:
            ValueError: If ``action`` is missing or unknown.
        """
        action = str(data.get("action", "")).upper()
        if action not in ACTIONS:
            raise ValueError(f"unknown action {data.get('action')!r}")
        try:
            confidence = int(data.get("confidence", 0))
        except (TypeError, ValueError, OverflowError):
            confidence = 0
        return cls(
            symbol=str(data.get("symbol") or symbol),
            action=action,  # type: ignore[arg-type]
            confidence=confidence,
            explanation=str(data.get("explanation") or ""),
            amount=_optional_float(data.get("amount")),
            timestamp=_parse_timestamp(data.get("timestamp")) or _utcnow(),
            price_at_decision=_optional_float(data.get("price_at_decision")),
            price_timestamp=_optional_int(data.get("price_timestamp")),
        )


@dataclass
class SymbolHistory:
    """Append-only, chronological decision history for one symbol."""

    symbol: str
    decisions: list[TradingDecision] = field(default_factory=list)

    @property
    def last_decision(self) -> Optional[TradingDecision]:
        return self.decisions[-1] if self.decisions else None

    @property
    def total_decisions(self) -> int:
        return len(self.decisions)

    def count(self, action: TradeAction) -> int:
        return sum(1 for d in self.decisions if d.action == action)

    @property
    def buy_count(self) -> int:
        return self.count("BUY")

    @property
    def sell_count(self) -> int:
        return self.count("SELL")

    @property
    def hold_count(self) -> int:
        return self.count("HOLD")

    def add_decision(self, decision: TradingDecision) -> None:
        self.decisions.append(decision)

    def recent(self, n: int) -> list[TradingDecision]:
        """Up to ``n`` most recent decisions, newest first."""
        if n <= 0:
            return []
        return list(reversed(self.decisions[-n:]))

    def to_dict(self) -> dict[str, Any]:
        last = self.last_decision
        return {
            "symbol": self.symbol,
            "decisions": [d.to_dict() for d in self.decisions],
            "last_decision": last.to_dict() if last else None,
            "total_decisions": self.total_decisions,
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "hold_count": self.hold_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], symbol: str = "") -> SymbolHistory:
        symbol = str(data.get("symbol") or symbol)
        decisions: list[TradingDecision] = []
        raw_decisions = data.get("decisions")
        if not isinstance(raw_decisions, list):
            if raw_decisions is not None:
                logger.warning("Ignoring non-list decisions for %s", symbol)
            raw_decisions = []
        for raw in raw_decisions:
            if not isinstance(raw, dict):
                continue
            try:
                decisions.append(TradingDecision.from_dict(raw, symbol=symbol))
            except ValueError as exc:
                logger.warning("Skipping unreadable decision for %s: %s", symbol, exc)
        return cls(symbol=symbol, decisions=decisions)


@dataclass
class TradingState:
    """Whole persisted document: per-symbol histories plus run bookkeeping."""

    symbols: dict[str, SymbolHistory] = field(default_factory=dict)
    last_updated: Optional[datetime] = None
    total_runs: int = 0

    def history(self, symbol: str) -> Optional[SymbolHistory]:
        return self.symbols.get(symbol)

    def add_decision(self, decision: TradingDecision) -> SymbolHistory:
        history = self.symbols.get(decision.symbol)
        if history is None:
            history = self.symbols[decision.symbol] = SymbolHistory(symbol=decision.symbol)
        history.add_decision(decision)
        self.last_updated = _utcnow()
        return history

    def increment_runs(self) -> int:
        self.total_runs += 1
        self.last_updated = _utcnow()
        return self.total_runs

    def has_decision_for_timestamp(self, symbol: str, price_timestamp: int) -> bool:
        history = self.symbols.get(symbol)
        if history is None:
            return False
        return any(d.price_timestamp == price_timestamp for d in history.decisions)

    def latest_price_timestamp(self, symbol: str) -> Optional[int]:
        history = self.symbols.get(symbol)
        if history is None:
            return None
        for decision in reversed(history.decisions):
            if decision.price_timestamp is not None:
                return decision.price_timestamp
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbols": {name: h.to_dict() for name, h in self.symbols.items()},
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "total_runs": self.total_runs,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradingState:
        if not isinstance(data, dict):
            raise ValueError(f"state document must be an object, got {type(data).__name__}")
        symbols: dict[str, SymbolHistory] = {}
        raw_symbols = data.get("symbols") or {}
        if isinstance(raw_symbols, dict):
            for name, raw in raw_symbols.items():
                if isinstance(raw, dict):
                    symbols[name] = SymbolHistory.from_dict(raw, symbol=name)
        try:
            total_runs = int(data.get("total_runs") or 0)
        except (TypeError, ValueError, OverflowError):
            total_runs = 0
        return cls(
            symbols=symbols,
            last_updated=_parse_timestamp(data.get("last_updated")),
            total_runs=total_runs,
        )
