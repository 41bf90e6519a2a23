"""OpenAI-compatible chat-completions adapter with function calling.

Works against api.openai.com as well as local gateways exposing the same
``/v1/chat/completions`` endpoint (LM Studio, vLLM, Ollama's OpenAI mode).
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Sequence

import httpx

from tradeloop.ai.providers.base import ModelClient, PermanentModelError
from tradeloop.ai.types import Message, ModelReply, ProviderConfig, ProviderName, Role, ToolCall

logger = logging.getLogger(__name__)

OPENAI_CONFIG = ProviderConfig(
    name=ProviderName.OPENAI,
    api_key_env="OPENAI_API_KEY",
    base_url="https://api.openai.com",
    default_model="gpt-4.1-mini",
    max_tokens=4096,
    temperature=0.0,
    timeout_seconds=90,
    rate_limit_rpm=60,
)

def serialize_message(message: Message) -> dict[str, Any]:
    """Convert a Message into the chat-completions wire format."""
    payload: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.role is Role.ASSISTANT and message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in message.tool_calls
        ]
    if message.role is Role.TOOL:
        if message.tool_call_id:
            payload["tool_call_id"] = message.tool_call_id
        if message.name:
            payload["name"] = message.name
    return payload


def parse_reply(data: dict[str, Any]) -> ModelReply:
    """Extract text and tool calls from a chat-completions response body.

    Raises:
        PermanentModelError: If the body does not have the expected shape.
    """
    try:
        choice = data["choices"][0]
        message = choice["message"]
    except (KeyError, IndexError, TypeError) as exc:
        raise PermanentModelError(f"Unexpected completion response shape: {exc!r}") from exc
    if not isinstance(message, dict):
        raise PermanentModelError(f"Completion message is not an object: {message!r}")

    text = message.get("content") or ""
    raw_calls = message.get("tool_calls") or []
    if not isinstance(raw_calls, list):
        raise PermanentModelError(f"Tool calls are not a list: {raw_calls!r}")
    calls: list[ToolCall] = []
    for raw in raw_calls:
        if not isinstance(raw, dict):
            raise PermanentModelError(f"Tool call is not an object: {raw!r}")
        function = raw.get("function") or {}
        if not isinstance(function, dict):
            raise PermanentModelError(f"Tool call function is not an object: {function!r}")
        name = function.get("name")
        if not name:
            raise PermanentModelError(f"Tool call without a function name: {raw!r}")
        arguments = function.get("arguments")
        if arguments is None:
            arguments = "{}"
        elif not isinstance(arguments, str):
            # some gateways send the arguments object already decoded
            arguments = json.dumps(arguments)
        calls.append(ToolCall(name=name, arguments=arguments, id=raw.get("id") or ""))

    usage = data.get("usage") or {}
    if not isinstance(usage, dict):
        raise PermanentModelError(f"Completion usage is not an object: {usage!r}")
    return ModelReply(
        text=text,
        tool_calls=tuple(calls),
        tokens_in=usage.get("prompt_tokens", 0),
        tokens_out=usage.get("completion_tokens", 0),
    )


class OpenAICompatibleClient(ModelClient):
    """Chat-completions client for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        model: str | None = None,
        api_key: str | None = None,
    ) -> None:
        super().__init__(config or OPENAI_CONFIG)
        self.model = model or self.config.default_model
        self._api_key = api_key

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            api_key = self._api_key if self._api_key is not None else os.environ.get(self.config.api_key_env, "")
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.config.timeout_seconds),
            )
        return self._client

    async def complete(
        self,
        conversation: Sequence[Message],
        tool_catalog: Sequence[dict[str, Any]],
    ) -> ModelReply:
        """Send a chat-completion request with the given tool catalog."""
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [serialize_message(m) for m in conversation],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        if tool_catalog:
            body["tools"] = list(tool_catalog)
            body["tool_choice"] = "auto"

        start = self._start_timer()
        client = await self._get_client()
        data = await self._make_request(client, "POST", "/v1/chat/completions", json=body)
        reply = parse_reply(data)

        latency = self._elapsed_ms(start)
        logger.debug(
            "%s completion: %d tool call(s), tokens in=%d out=%d, %.0fms",
            self.model,
            len(reply.tool_calls),
            reply.tokens_in,
            reply.tokens_out,
            latency,
        )
        return ModelReply(
            text=reply.text,
            tool_calls=reply.tool_calls,
            tokens_in=reply.tokens_in,
            tokens_out=reply.tokens_out,
            latency_ms=latency,
        )

    async def health_check(self) -> bool:
        """Check if the endpoint is reachable."""
        try:
            client = await self._get_client()
            await self._make_request(client, "GET", "/v1/models")
            return True
        except Exception:
            logger.debug("Health check failed for %s", self.config.base_url, exc_info=True)
            return False
