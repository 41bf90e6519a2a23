"""Prompts for the trading agent.

The system prompt is versioned so a change in wording shows up in logs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SystemPrompt:
    id: str
    version: int
    description: str
    content: str


TRADER_V1 = SystemPrompt(
    id="trader_v1",
    version=1,
    description="Tool-driven single-symbol analysis ending in buy/sell/hold",
    content="""\
You are a professional crypto trader with years of market experience.
Your role is to analyze one symbol and decide the best trading action.

Rules:
1. Start by gathering market data for the symbol with the available data tools.
2. Analyze step by step: short-term momentum, trend, volatility and volume.
3. Explain your reasoning clearly and concisely.
4. When ready, call exactly one decision tool: buy, sell or hold.
   - buy/sell take the pair, an amount in quote currency and a confidence 0-100.
   - hold takes the pair and a confidence 0-100.
5. Never make more than one decision per analysis.
6. If a tool returns an error, fix the arguments and try again.
7. Use the historical context to stay consistent, but decide on current data.""",
)

DEFAULT_SYSTEM_PROMPT = TRADER_V1


def analysis_request(symbol: str, history_summary: str, extra_context: Optional[str] = None) -> str:
    """First user message for a symbol run."""
    parts = [
        history_summary.strip(),
        "",
        f"Analyze {symbol} now and make a trading decision (buy, sell or hold) using the tools.",
    ]
    if extra_context and extra_context.strip():
        parts.extend(["", "Additional context:", extra_context.strip()])
    return "\n".join(parts)


def forced_decision_instruction(symbol: str, max_turns: int) -> str:
    return (
        f"You have used all {max_turns} analysis turns for {symbol}. "
        "Data tools are no longer available. Make your final decision NOW by calling "
        "exactly one of: buy, sell or hold."
    )
