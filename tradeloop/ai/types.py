"""Conversation, tool-call and result types for the agent loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from tradeloop.types import BotDecision


# ---------------------------------------------------------------------------
# Provider configuration
# ---------------------------------------------------------------------------


class ProviderName(str, Enum):
    """Supported LLM API providers."""

    OPENAI = "openai"  # any OpenAI-compatible endpoint (OpenAI, LM Studio, vLLM, ...)


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for an LLM provider."""

    name: ProviderName
    api_key_env: str  # e.g. "OPENAI_API_KEY"
    base_url: str  # e.g. "https://api.openai.com"
    default_model: str
    max_tokens: int = 4096
    temperature: float = 0.0
    timeout_seconds: float = 60.0
    rate_limit_rpm: int = 60  # requests per minute


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is the raw JSON text exactly as the model produced it;
    parsing and validation happen in the dispatcher.
    """

    name: str
    arguments: str = "{}"
    id: str = ""


@dataclass(frozen=True)
class Message:
    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None  # set on TOOL messages
    name: Optional[str] = None  # tool name on TOOL messages


@dataclass(frozen=True)
class ModelReply:
    """One assistant turn returned by a ModelClient."""

    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tokens_in: int = 0
    tokens_out: int = 0
    latency_ms: float = 0.0


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolOutput:
    """What a tool handler returns: text for the model plus optional payloads."""

    text: str
    data: Any = None
    decision: Optional[BotDecision] = None


@dataclass(frozen=True)
class ToolResult:
    call: ToolCall
    output: str
    ok: bool
    is_decision_tool: bool = False
    decision: Optional[BotDecision] = None
    data: Any = None


# ---------------------------------------------------------------------------
# Agent result
# ---------------------------------------------------------------------------


@dataclass
class BotResult:
    """Outcome of one AgentLoop run for a symbol."""

    symbol: str
    decision: Optional[BotDecision]
    turns_used: int
    final_response: str
    conversation_history: list[Message] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    forced: bool = False  # True when the forced final round was needed
