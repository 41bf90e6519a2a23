"""Terminal decision tools: buy, sell, hold."""

from __future__ import annotations

from pydantic import BaseModel, Field

from tradeloop.ai.tools.registry import ToolKind, ToolRegistry
from tradeloop.ai.types import ToolOutput
from tradeloop.types import BotDecision


class HoldArgs(BaseModel):
    pair: str = Field(min_length=1, description="Trading pair, e.g. BTCUSDC")
    confidence: int = Field(ge=0, le=100, description="Confidence level 0-100")


class TradeArgs(HoldArgs):
    amount: float = Field(gt=0, description="Amount in quote currency units")


async def buy(args: TradeArgs) -> ToolOutput:
    decision = BotDecision.buy(args.pair, args.amount, args.confidence)
    return ToolOutput(text=f"BUY decision recorded: {decision.describe()}", decision=decision)


async def sell(args: TradeArgs) -> ToolOutput:
    decision = BotDecision.sell(args.pair, args.amount, args.confidence)
    return ToolOutput(text=f"SELL decision recorded: {decision.describe()}", decision=decision)


async def hold(args: HoldArgs) -> ToolOutput:
    decision = BotDecision.hold(args.pair, args.confidence)
    return ToolOutput(text=f"HOLD decision recorded: {decision.describe()}", decision=decision)


def register_decision_tools(registry: ToolRegistry) -> None:
    registry.register(
        "buy",
        TradeArgs,
        ToolKind.DECISION,
        buy,
        "Final decision: buy the pair for `amount` of quote currency. Ends the analysis.",
    )
    registry.register(
        "sell",
        TradeArgs,
        ToolKind.DECISION,
        sell,
        "Final decision: sell `amount` (quote currency value) of the pair. Ends the analysis.",
    )
    registry.register(
        "hold",
        HoldArgs,
        ToolKind.DECISION,
        hold,
        "Final decision: take no action on the pair. Ends the analysis.",
    )
