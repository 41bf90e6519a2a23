"""Append-only message log owned by a single AgentLoop run."""

from __future__ import annotations

from typing import Iterator, Optional

from tradeloop.ai.types import Message, ModelReply, Role, ToolResult


class Conversation:
    """Ordered sequence of immutable messages.

    Messages are frozen dataclasses, so once appended they cannot change.
    ``reset`` clears the log, optionally re-seeding the system message.
    """

    def __init__(self, system_prompt: Optional[str] = None) -> None:
        self._messages: list[Message] = []
        if system_prompt is not None:
            self.add_system(system_prompt)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def add_system(self, content: str) -> None:
        self.append(Message(role=Role.SYSTEM, content=content))

    def add_user(self, content: str) -> None:
        self.append(Message(role=Role.USER, content=content))

    def add_assistant(self, reply: ModelReply) -> None:
        self.append(Message(role=Role.ASSISTANT, content=reply.text, tool_calls=reply.tool_calls))

    def add_tool_result(self, result: ToolResult) -> None:
        self.append(
            Message(
                role=Role.TOOL,
                content=result.output,
                tool_call_id=result.call.id or None,
                name=result.call.name,
            )
        )

    def reset(self, system_prompt: Optional[str] = None) -> None:
        self._messages.clear()
        if system_prompt is not None:
            self.add_system(system_prompt)

    def last_assistant_text(self) -> str:
        """Most recent non-empty assistant text, or "" if there is none."""
        for message in reversed(self._messages):
            if message.role is Role.ASSISTANT and message.content.strip():
                return message.content
        return ""
