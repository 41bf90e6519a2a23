"""Unit tests for the model client: wire format, retry logic and error handling."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from tradeloop.ai.providers.base import (
    PermanentModelError,
    TokenBucket,
    TransientModelError,
    classify_http_error,
)
from tradeloop.ai.providers.openai import OPENAI_CONFIG, OpenAICompatibleClient, parse_reply, serialize_message
from tradeloop.ai.types import Message, ProviderName, Role, ToolCall


@pytest.fixture(autouse=True)
def no_backoff():
    """Retry without sleeping."""
    with patch("tradeloop.ai.providers.base.calculate_backoff_delay", return_value=0.0):
        yield


def _completion(content: str = "", tool_calls: list | None = None) -> dict:
    message: dict = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return {"choices": [{"message": message}], "usage": {"prompt_tokens": 120, "completion_tokens": 30}}


# ---------------------------------------------------------------------------
# Error Classification Tests
# ---------------------------------------------------------------------------


def test_classify_http_error_transient():
    for status in (429, 500, 502, 503, 504):
        error = classify_http_error(status, "boom")
        assert isinstance(error, TransientModelError)
        assert error.is_transient
        assert error.status_code == status


def test_classify_http_error_permanent():
    for status in (400, 401, 403, 404, 422):
        error = classify_http_error(status, "bad")
        assert isinstance(error, PermanentModelError)
        assert not error.is_transient


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def test_serialize_assistant_tool_calls():
    message = Message(
        role=Role.ASSISTANT,
        content="checking",
        tool_calls=(ToolCall(name="get_price", arguments='{"symbol": "BTCUSDC"}', id="call_1"),),
    )

    payload = serialize_message(message)

    assert payload["role"] == "assistant"
    assert payload["tool_calls"] == [
        {"id": "call_1", "type": "function", "function": {"name": "get_price", "arguments": '{"symbol": "BTCUSDC"}'}}
    ]


def test_serialize_tool_message():
    payload = serialize_message(Message(role=Role.TOOL, content="ok", tool_call_id="call_1", name="get_price"))

    assert payload == {"role": "tool", "content": "ok", "tool_call_id": "call_1", "name": "get_price"}


def test_parse_reply_with_tool_calls():
    data = _completion(
        "Let me look",
        [
            {"id": "a", "type": "function", "function": {"name": "get_price", "arguments": '{"symbol":"BTCUSDC"}'}},
            {"id": "b", "type": "function", "function": {"name": "hold", "arguments": {"pair": "BTCUSDC", "confidence": 5}}},
            {"id": "c", "type": "function", "function": {"name": "calculate_moving_averages"}},
        ],
    )

    reply = parse_reply(data)

    assert reply.text == "Let me look"
    assert [c.name for c in reply.tool_calls] == ["get_price", "hold", "calculate_moving_averages"]
    assert json.loads(reply.tool_calls[1].arguments) == {"pair": "BTCUSDC", "confidence": 5}
    assert reply.tool_calls[2].arguments == "{}"
    assert reply.tokens_in == 120


def test_parse_reply_null_content():
    reply = parse_reply({"choices": [{"message": {"content": None}}]})
    assert reply.text == ""
    assert reply.tool_calls == ()


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"choices": []},
        {"choices": [{}]},
        {"choices": [{"message": None}]},
        {"choices": [{"message": {"tool_calls": ["oops"]}}]},
        {"choices": [{"message": {"tool_calls": 5}}]},
        {"choices": [{"message": {"tool_calls": [{"id": "a", "function": "hold"}]}}]},
        {"choices": [{"message": {"content": "hi"}}], "usage": "n/a"},
    ],
)
def test_parse_reply_bad_shape(data):
    with pytest.raises(PermanentModelError):
        parse_reply(data)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_sends_conversation_and_tools():
    client = OpenAICompatibleClient(OPENAI_CONFIG, model="test-model", api_key="sk-test")
    catalog = [{"type": "function", "function": {"name": "hold", "parameters": {"type": "object"}}}]

    with patch.object(client, "_make_request", new_callable=AsyncMock) as mock_req:
        mock_req.return_value = _completion("done")
        reply = await client.complete([Message(role=Role.USER, content="hi")], catalog)

    assert reply.text == "done"
    _, method, url = mock_req.call_args.args
    body = mock_req.call_args.kwargs["json"]
    assert (method, url) == ("POST", "/v1/chat/completions")
    assert body["model"] == "test-model"
    assert body["messages"] == [{"role": "user", "content": "hi"}]
    assert body["tools"] == catalog
    assert body["tool_choice"] == "auto"


@pytest.mark.asyncio
async def test_complete_without_tools_omits_tool_choice():
    client = OpenAICompatibleClient(OPENAI_CONFIG, api_key="sk-test")

    with patch.object(client, "_make_request", new_callable=AsyncMock) as mock_req:
        mock_req.return_value = _completion("plain")
        await client.complete([Message(role=Role.USER, content="hi")], [])

    body = mock_req.call_args.kwargs["json"]
    assert "tools" not in body
    assert "tool_choice" not in body


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    client = OpenAICompatibleClient(OPENAI_CONFIG, api_key="sk-test")
    call_count = 0

    with patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_http:

        def side_effect(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                response = MagicMock()
                response.status_code = 503
                response.text = "Service Unavailable"
                raise httpx.HTTPStatusError("Service Unavailable", request=MagicMock(), response=response)
            response = MagicMock()
            response.json.return_value = _completion("recovered")
            response.raise_for_status = MagicMock()
            return response

        mock_http.side_effect = side_effect
        reply = await client.complete([Message(role=Role.USER, content="hi")], [])

    assert call_count == 3
    assert reply.text == "recovered"


@pytest.mark.asyncio
async def test_transient_errors_give_up_after_max_retries():
    client = OpenAICompatibleClient(OPENAI_CONFIG, api_key="sk-test")

    with patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_http:
        mock_http.side_effect = httpx.ConnectTimeout("timed out")
        with pytest.raises(TransientModelError, match="timed out"):
            await client.complete([Message(role=Role.USER, content="hi")], [])

    assert mock_http.call_count == 4


@pytest.mark.asyncio
async def test_permanent_error_not_retried():
    client = OpenAICompatibleClient(OPENAI_CONFIG, api_key="sk-test")

    with patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_http:
        response = MagicMock()
        response.status_code = 401
        response.text = "invalid api key"
        mock_http.side_effect = httpx.HTTPStatusError("Unauthorized", request=MagicMock(), response=response)

        with pytest.raises(PermanentModelError) as excinfo:
            await client.complete([Message(role=Role.USER, content="hi")], [])

    assert mock_http.call_count == 1
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_health_check():
    client = OpenAICompatibleClient(OPENAI_CONFIG, api_key="sk-test")

    with patch.object(client, "_make_request", new_callable=AsyncMock) as mock_req:
        mock_req.return_value = {"data": [{"id": "gpt-4.1-mini"}]}
        assert await client.health_check() is True

    with patch.object(client, "_make_request", side_effect=TransientModelError("Network error")):
        assert await client.health_check() is False


# ---------------------------------------------------------------------------
# Rate Limiting Tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_token_bucket_acquire():
    bucket = TokenBucket(rate_per_minute=60, provider=ProviderName.OPENAI)

    await bucket.acquire(1)
    assert bucket.tokens < 60


def test_each_client_owns_its_bucket():
    first = OpenAICompatibleClient(OPENAI_CONFIG, api_key="a")
    second = OpenAICompatibleClient(OPENAI_CONFIG, api_key="b")

    assert first._rate_limiter is not second._rate_limiter
