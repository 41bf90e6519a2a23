"""Closed registry of model-callable tools and the dispatcher.

Each tool is tagged DATA or DECISION. ``dispatch`` never raises for tool
problems: unknown names, argument validation failures and handler errors
all come back as ``ToolResult(ok=False)`` with readable text the model can
act on. The one exception is ``ProviderError``, which aborts the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from pydantic import BaseModel, ValidationError

from tradeloop.ai.types import ToolCall, ToolOutput, ToolResult
from tradeloop.indicators.alignment import AlignmentError
from tradeloop.market_data.base import ProviderError

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """Raised by a handler for a problem the model can correct."""


class ToolKind(str, Enum):
    DATA = "data"
    DECISION = "decision"


Handler = Callable[[Any], Awaitable[Union[ToolOutput, str]]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    schema: type[BaseModel]
    kind: ToolKind
    handler: Handler

    def to_openai(self) -> dict[str, Any]:
        """Function definition in the chat-completions ``tools`` format."""
        parameters = self.schema.model_json_schema()
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class ToolRegistry:
    """Name -> Tool mapping with a fail-closed dispatcher."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self, kinds: Optional[Iterable[ToolKind]] = None) -> list[str]:
        allowed = set(kinds) if kinds is not None else None
        return [t.name for t in self._tools.values() if allowed is None or t.kind in allowed]

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def register(
        self,
        name: str,
        schema: type[BaseModel],
        kind: ToolKind,
        handler: Handler,
        description: str = "",
    ) -> Tool:
        if name in self._tools:
            raise ValueError(f"tool {name!r} is already registered")
        tool = Tool(name=name, description=description, schema=schema, kind=kind, handler=handler)
        self._tools[name] = tool
        return tool

    def catalog(self, kinds: Optional[Iterable[ToolKind]] = None) -> list[dict[str, Any]]:
        """Tool definitions for the model, optionally restricted to ``kinds``."""
        allowed = set(kinds) if kinds is not None else None
        return [t.to_openai() for t in self._tools.values() if allowed is None or t.kind in allowed]

    async def dispatch(self, call: ToolCall, allowed_kinds: Optional[Iterable[ToolKind]] = None) -> ToolResult:
        """Run one tool call.

        Raises:
            ProviderError: If market data could not be fetched upstream.
        """
        tool = self._tools.get(call.name)
        if tool is None:
            return self._failure(call, f"Unknown tool '{call.name}'. Available tools: {', '.join(self._tools)}")

        is_decision = tool.kind is ToolKind.DECISION
        if allowed_kinds is not None and tool.kind not in set(allowed_kinds):
            return self._failure(
                call,
                f"Tool '{call.name}' is not available now. Call one of: {', '.join(self.names(allowed_kinds))}",
                is_decision,
            )

        try:
            args = tool.schema.model_validate_json(call.arguments or "{}")
        except ValidationError as exc:
            return self._failure(call, f"Invalid arguments for {call.name}: {_format_validation_error(exc)}", is_decision)

        try:
            raw = await tool.handler(args)
        except ProviderError:
            raise
        except ToolError as exc:
            return self._failure(call, f"{call.name} failed: {exc}", is_decision)
        except AlignmentError as exc:
            logger.error("Indicator alignment defect in %s: %s", call.name, exc)
            return self._failure(call, f"{call.name} failed: {exc}", is_decision)
        except Exception as exc:
            logger.exception("Tool %s raised", call.name)
            return self._failure(call, f"{call.name} failed: {exc}", is_decision)

        output = raw if isinstance(raw, ToolOutput) else ToolOutput(text=str(raw))
        if is_decision and output.decision is None:
            return self._failure(call, f"{call.name} did not produce a decision", is_decision)

        logger.debug("Tool %s ok", call.name)
        return ToolResult(
            call=call,
            output=output.text,
            ok=True,
            is_decision_tool=is_decision,
            decision=output.decision,
            data=output.data,
        )

    def _failure(self, call: ToolCall, message: str, is_decision: bool = False) -> ToolResult:
        logger.warning("Tool call %s failed: %s", call.name, message)
        return ToolResult(call=call, output=f"Error: {message}", ok=False, is_decision_tool=is_decision)
