"""Tests for the OpenAI-compatible provider against a mocked HTTP transport."""

from __future__ import annotations

import json

import httpx
import pytest

from kubeassist.cancellation import CancelToken
from kubeassist.config import AIProviderConfig, ChatConfig
from kubeassist.llm.errors import ProviderError
from kubeassist.llm.providers.openai_compat import OpenAICompatProvider
from kubeassist.llm.types import Message, ToolCallRequest

SSE_BODY = (
    'data: {"choices": [{"index": 0, "delta": {"content": "Hi"}, "finish_reason": null}]}\n\n'
    'data: {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}\n\n'
    "data: [DONE]\n\n"
)

TOOLS = [{"type": "function", "function": {"name": "list_pods", "parameters": {"type": "object", "properties": {}}}}]


class Recorder:
    """Mock transport handler that records requests and replays responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(
            response.status_code, headers=response.headers, content=response.content
        )

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


def _provider(recorder: Recorder, **kwargs) -> OpenAICompatProvider:
    kwargs.setdefault("api_key", "sk-test")
    return OpenAICompatProvider(
        url="http://model.test/v1/",
        model="test-model",
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


def _sse() -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=SSE_BODY)


async def _drain(stream):
    async with stream:
        return [event async for event in stream]


class TestStreamingRequest:
    async def test_url_and_headers(self):
        rec = Recorder(_sse())
        await _drain(await _provider(rec).open_stream([Message(role="user", content="hi")]))

        req = rec.requests[0]
        assert req.method == "POST"
        assert str(req.url) == "http://model.test/v1/chat/completions"
        assert req.headers["authorization"] == "Bearer sk-test"
        assert req.headers["accept"] == "text/event-stream"
        assert req.headers["content-type"] == "application/json"

    async def test_no_authorization_without_key(self):
        rec = Recorder(_sse())
        await _drain(await _provider(rec, api_key="").open_stream([Message(role="user", content="hi")]))
        assert "authorization" not in rec.requests[0].headers

    async def test_body_with_tools(self):
        rec = Recorder(_sse())
        messages = [
            Message(role="system", content="be brief"),
            Message(role="user", content="what runs?"),
            Message(
                role="assistant",
                content="",
                tool_calls=[ToolCallRequest(id="call_1", name="list_nodes", arguments="")],
            ),
            Message(role="tool", content='{"total": 0}', tool_call_id="call_1"),
        ]
        await _drain(await _provider(rec).open_stream(messages, TOOLS))

        body = rec.last_body
        assert body["model"] == "test-model"
        assert body["stream"] is True
        assert body["tools"] == TOOLS
        assert body["tool_choice"] == "auto"
        assert [m["role"] for m in body["messages"]] == ["system", "user", "assistant", "tool"]
        call = body["messages"][2]["tool_calls"][0]
        assert call == {
            "id": "call_1",
            "type": "function",
            "function": {"name": "list_nodes", "arguments": "{}"},
        }
        assert body["messages"][3]["tool_call_id"] == "call_1"
        assert "tool_call_id" not in body["messages"][1]

    async def test_body_without_tools(self):
        rec = Recorder(_sse())
        await _drain(await _provider(rec).open_stream([Message(role="user", content="hi")]))
        assert "tools" not in rec.last_body
        assert "tool_choice" not in rec.last_body

    async def test_events_are_streamed(self):
        rec = Recorder(_sse())
        events = await _drain(await _provider(rec).open_stream([Message(role="user", content="hi")]))
        assert events[0].delta == "Hi"
        assert events[1].finish_reason == "stop"
        assert events[-1].done


class TestStreamingErrors:
    async def test_non_success_status(self):
        rec = Recorder(httpx.Response(401, text='{"error": "invalid api key"}'))
        with pytest.raises(ProviderError) as exc_info:
            await _provider(rec).open_stream([Message(role="user", content="hi")])
        assert exc_info.value.status_code == 401
        assert "invalid api key" in exc_info.value.body
        assert "401" in str(exc_info.value)

    async def test_unreachable_endpoint(self):
        rec = Recorder(httpx.ConnectError("connection refused"))
        with pytest.raises(ProviderError, match="cannot reach model endpoint"):
            await _provider(rec).open_stream([Message(role="user", content="hi")])

    async def test_no_retry_by_default(self):
        rec = Recorder(httpx.Response(503, text="busy"), _sse())
        with pytest.raises(ProviderError):
            await _provider(rec).open_stream([Message(role="user", content="hi")])
        assert len(rec.requests) == 1

    async def test_retry_on_server_error(self):
        rec = Recorder(httpx.Response(503, text="busy"), _sse())
        stream = await _provider(rec, max_retries=1).open_stream([Message(role="user", content="hi")])
        events = await _drain(stream)
        assert len(rec.requests) == 2
        assert events[0].delta == "Hi"

    async def test_client_error_is_not_retried(self):
        rec = Recorder(httpx.Response(400, text="bad request"), _sse())
        with pytest.raises(ProviderError) as exc_info:
            await _provider(rec, max_retries=3).open_stream([Message(role="user", content="hi")])
        assert exc_info.value.status_code == 400
        assert len(rec.requests) == 1

    async def test_retries_exhausted(self):
        rec = Recorder(httpx.Response(429, text="slow down"))
        with pytest.raises(ProviderError) as exc_info:
            await _provider(rec, max_retries=2).open_stream([Message(role="user", content="hi")])
        assert exc_info.value.status_code == 429
        assert len(rec.requests) == 3


class TestComplete:
    async def test_text_reply(self):
        rec = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}))
        reply = await _provider(rec).complete([Message(role="user", content="hi")])
        assert reply.role == "assistant"
        assert reply.content == "ok"
        assert rec.last_body["stream"] is False
        assert rec.requests[0].headers["accept"] != "text/event-stream"

    async def test_tool_calls_reply(self):
        rec = Recorder(httpx.Response(200, json={
            "choices": [{
                "message": {
                    "content": None,
                    "tool_calls": [{"id": "call_9", "function": {"name": "list_pods", "arguments": "{}"}}],
                }
            }]
        }))
        reply = await _provider(rec).complete([Message(role="user", content="hi")], TOOLS)
        assert reply.content == ""
        assert reply.tool_calls == [ToolCallRequest(id="call_9", name="list_pods", arguments="{}")]

    async def test_no_choices(self):
        rec = Recorder(httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProviderError, match="no choices"):
            await _provider(rec).complete([Message(role="user", content="hi")])

    async def test_error_status(self):
        rec = Recorder(httpx.Response(500, text="boom"))
        with pytest.raises(ProviderError) as exc_info:
            await _provider(rec).complete([Message(role="user", content="hi")])
        assert exc_info.value.status_code == 500

    async def test_connection_test(self):
        rec = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}))
        reply = await _provider(rec).test_connection(CancelToken(timeout=5))
        assert reply.content == "ok"
        assert rec.last_body["messages"][0]["role"] == "user"


class TestFromConfig:
    def test_uses_config_values(self, monkeypatch):
        monkeypatch.setenv("TEST_MODEL_KEY", "sk-env")
        ai = AIProviderConfig(
            endpoint="http://llm.local/v1", model="qwen", api_key_env="TEST_MODEL_KEY", max_retries=2
        )
        provider = OpenAICompatProvider.from_config(ai, ChatConfig(event_queue_size=8))
        assert provider.model == "qwen"
        assert provider.name == "openai-compat"
        assert provider._api_key == "sk-env"
        assert provider._max_retries == 2
        assert provider._queue_size == 8
        assert provider._url == "http://llm.local/v1"
