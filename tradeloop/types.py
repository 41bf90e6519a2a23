from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

TradeAction = Literal["BUY", "SELL", "HOLD"]


@dataclass(frozen=True)
class Kline:
    """One exchange candle. Times are epoch milliseconds."""

    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int
    quote_volume: float = 0.0
    trade_count: int = 0
    taker_buy_base: float = 0.0
    taker_buy_quote: float = 0.0


@dataclass(frozen=True)
class BotDecision:
    """Terminal decision selected by the model through a decision tool.

    ``amount`` is in quote-currency units; required for BUY/SELL, absent for HOLD.
    """

    action: TradeAction
    pair: str
    confidence: int  # 0-100
    amount: Optional[float] = None

    def __post_init__(self) -> None:
        if self.action not in ("BUY", "SELL", "HOLD"):
            raise ValueError(f"unknown action: {self.action}")
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be within 0-100, got {self.confidence}")
        if self.action == "HOLD":
            if self.amount is not None:
                raise ValueError("HOLD decisions do not carry an amount")
        elif self.amount is None or self.amount <= 0:
            raise ValueError(f"{self.action} requires a positive amount")

    @classmethod
    def buy(cls, pair: str, amount: float, confidence: int) -> BotDecision:
        return cls(action="BUY", pair=pair, amount=amount, confidence=confidence)

    @classmethod
    def sell(cls, pair: str, amount: float, confidence: int) -> BotDecision:
        return cls(action="SELL", pair=pair, amount=amount, confidence=confidence)

    @classmethod
    def hold(cls, pair: str, confidence: int) -> BotDecision:
        return cls(action="HOLD", pair=pair, confidence=confidence)

    def describe(self) -> str:
        if self.action == "HOLD":
            return f"HOLD {self.pair} (confidence {self.confidence}%)"
        return f"{self.action} {self.amount:g} of {self.pair} (confidence {self.confidence}%)"
