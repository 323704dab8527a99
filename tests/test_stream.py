"""Tests for SSE parsing and the ModelStream producer/consumer boundary."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from kubeassist.cancellation import CancelToken
from kubeassist.llm.errors import StreamProtocolError
from kubeassist.llm.stream import ModelStream, iter_sse_events, parse_sse_line


def _chunk(delta: dict | None = None, finish_reason: str | None = None) -> str:
    choice = {"index": 0, "delta": delta or {}, "finish_reason": finish_reason}
    return "data: " + json.dumps({"id": "chatcmpl-1", "choices": [choice]}) + "\n\n"


async def _bytes(*parts: str | bytes):
    for part in parts:
        yield part.encode() if isinstance(part, str) else part


async def _collect(aiter):
    return [item async for item in aiter]


async def _open(body, token: CancelToken, **kwargs) -> ModelStream:
    """Open a streaming response whose body is the async iterator *body*."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    request = client.build_request("POST", "http://model.test/v1/chat/completions")
    response = await client.send(request, stream=True)
    return ModelStream(response, token, client=client, **kwargs)


class TestParseSSELine:
    def test_text_delta(self):
        event = parse_sse_line(_chunk({"content": "Hello"}).strip())
        assert event.delta == "Hello"
        assert event.tool_deltas == []
        assert not event.done

    def test_done_sentinel(self):
        event = parse_sse_line("data: [DONE]")
        assert event.done

    def test_no_space_after_colon(self):
        event = parse_sse_line('data:{"choices": [{"delta": {"content": "x"}}]}')
        assert event.delta == "x"

    def test_tool_call_delta(self):
        line = _chunk({
            "tool_calls": [{
                "index": 1,
                "id": "call_1",
                "type": "function",
                "function": {"name": "list_pods", "arguments": '{"na'},
            }]
        }).strip()
        event = parse_sse_line(line)
        (delta,) = event.tool_deltas
        assert delta.index == 1
        assert delta.id == "call_1"
        assert delta.name_delta == "list_pods"
        assert delta.args_delta == '{"na'

    def test_continuation_without_index_or_id(self):
        line = _chunk({"tool_calls": [{"function": {"arguments": 'me"}'}}]}).strip()
        (delta,) = parse_sse_line(line).tool_deltas
        assert delta.index == 0
        assert delta.id is None
        assert delta.args_delta == 'me"}'

    def test_finish_reason(self):
        event = parse_sse_line(_chunk(finish_reason="tool_calls").strip())
        assert event.finish_reason == "tool_calls"

    @pytest.mark.parametrize(
        "line",
        [
            "",
            ": keep-alive",
            "event: message",
            "data: {not json",
            "data: [1, 2]",
            'data: {"choices": []}',
            'data: {"id": "x"}',
        ],
    )
    def test_ignored_lines(self, line):
        assert parse_sse_line(line) is None


class TestIterSSEEvents:
    async def test_lines_split_across_chunks(self):
        body = _chunk({"content": "Hel"}) + _chunk({"content": "lo"}) + "data: [DONE]\n\n"
        parts = [body[i:i + 7] for i in range(0, len(body), 7)]
        events = await _collect(iter_sse_events(_bytes(*parts)))
        assert "".join(e.delta for e in events) == "Hello"
        assert events[-1].done

    async def test_stops_at_done_sentinel(self):
        events = await _collect(
            iter_sse_events(_bytes("data: [DONE]\n\n", _chunk({"content": "late"})))
        )
        assert len(events) == 1
        assert events[0].done

    async def test_body_end_without_sentinel_terminates(self):
        events = await _collect(iter_sse_events(_bytes(_chunk({"content": "a"}))))
        assert [e.delta for e in events] == ["a", ""]
        assert events[-1].done

    async def test_trailing_line_without_newline(self):
        events = await _collect(
            iter_sse_events(_bytes('data: {"choices": [{"delta": {"content": "tail"}}]}'))
        )
        assert events[0].delta == "tail"
        assert events[-1].done

    async def test_crlf_line_endings(self):
        body = _chunk({"content": "x"}).replace("\n", "\r\n") + "data: [DONE]\r\n"
        events = await _collect(iter_sse_events(_bytes(body)))
        assert [e.delta for e in events] == ["x", ""]

    async def test_malformed_chunk_is_skipped(self):
        body = "data: {broken\n\n" + _chunk({"content": "ok"}) + "data: [DONE]\n\n"
        events = await _collect(iter_sse_events(_bytes(body)))
        assert [e.delta for e in events] == ["ok", ""]

    async def test_oversized_line_raises(self):
        with pytest.raises(StreamProtocolError):
            await _collect(iter_sse_events(_bytes("data: " + "x" * 100 + "\n"), max_line_bytes=64))

    async def test_oversized_partial_line_raises(self):
        with pytest.raises(StreamProtocolError):
            await _collect(iter_sse_events(_bytes("data: " + "x" * 100), max_line_bytes=64))

    async def test_line_at_limit_is_accepted(self):
        line = 'data: {"choices": [{"delta": {"content": "abc"}}]}'
        events = await _collect(iter_sse_events(_bytes(line + "\n"), max_line_bytes=len(line)))
        assert events[0].delta == "abc"


class TestModelStream:
    async def test_events_in_order_then_stop(self):
        body = _bytes(
            _chunk({"content": "Hello "}),
            _chunk({"content": "world"}),
            _chunk(finish_reason="stop"),
            "data: [DONE]\n\n",
        )
        async with await _open(body, CancelToken()) as stream:
            events = await _collect(stream)

        assert [e.delta for e in events] == ["Hello ", "world", "", ""]
        assert events[2].finish_reason == "stop"
        assert events[-1].done
        assert not stream.cancelled

    async def test_transport_error_mid_stream(self):
        async def body():
            yield _chunk({"content": "partial"}).encode()
            raise httpx.ReadError("connection reset by peer")

        async with await _open(body(), CancelToken()) as stream:
            events = await _collect(stream)

        assert events[0].delta == "partial"
        assert isinstance(events[-1].error, httpx.ReadError)
        assert len(events) == 2

    async def test_oversized_line_becomes_error_event(self):
        body = _bytes(_chunk({"content": "a"}), "data: " + "x" * 2048 + "\n")
        async with await _open(body, CancelToken(), max_line_bytes=1024) as stream:
            events = await _collect(stream)

        assert events[0].delta == "a"
        assert isinstance(events[-1].error, StreamProtocolError)

    async def test_cancel_stops_iteration_without_error(self):
        async def body():
            yield _chunk({"content": "first"}).encode()
            await asyncio.sleep(30)

        token = CancelToken()
        stream = await _open(body(), token)
        async with stream:
            first = await stream.__anext__()
            asyncio.get_running_loop().call_later(0.05, token.cancel)
            rest = await _collect(stream)

        assert first.delta == "first"
        assert rest == []
        assert stream.cancelled

    async def test_deadline_stops_iteration(self):
        async def body():
            await asyncio.sleep(30)
            yield b""

        token = CancelToken(timeout=0.1)
        async with await _open(body(), token) as stream:
            events = await _collect(stream)

        assert events == []
        assert stream.cancelled
        assert token.reason == "deadline exceeded"

    async def test_aclose_is_idempotent(self):
        stream = await _open(_bytes("data: [DONE]\n\n"), CancelToken())
        await stream.aclose()
        await stream.aclose()
        assert await _collect(stream) == []

    async def test_bounded_queue(self):
        body = _bytes(*[_chunk({"content": str(i)}) for i in range(20)], "data: [DONE]\n\n")
        async with await _open(body, CancelToken(), queue_size=2) as stream:
            await asyncio.sleep(0.05)
            assert stream._queue.qsize() <= 2
            events = await _collect(stream)

        assert "".join(e.delta for e in events) == "".join(str(i) for i in range(20))
