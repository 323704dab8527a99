"""
Server-sent-event parsing and the producer/consumer stream boundary.

``ModelStream`` runs a background task that reads the HTTP response body
line by line, converts each ``data:`` line into a ``StreamEvent`` and pushes
it into a bounded queue.  The consumer iterates the stream; a full queue
blocks the producer.  Every queue read is raced against the invocation's
``CancelToken`` so a cancelled or expired invocation stops promptly.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import AsyncIterator

import httpx

from kubeassist.cancellation import CancelToken, OperationCancelled
from kubeassist.llm.errors import StreamProtocolError
from kubeassist.llm.types import StreamEvent, ToolCallDelta

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 64
MAX_LINE_BYTES = 1024 * 1024

_DONE_SENTINEL = "[DONE]"


# ---------------------------------------------------------------------------
# Wire parsing
# ---------------------------------------------------------------------------

def chunk_to_event(data: dict) -> StreamEvent | None:
    """Convert a parsed ``data`` payload into a ``StreamEvent``.

    Only the first choice is used.  Chunks without choices yield ``None``.
    """
    choices = data.get("choices")
    if not choices:
        return None

    choice = choices[0]
    delta = choice.get("delta") or {}

    tool_deltas: list[ToolCallDelta] = []
    for raw_tc in delta.get("tool_calls") or []:
        func = raw_tc.get("function") or {}
        tool_deltas.append(
            ToolCallDelta(
                index=raw_tc.get("index") or 0,
                id=raw_tc.get("id") or None,
                name_delta=func.get("name") or "",
                args_delta=func.get("arguments") or "",
            )
        )

    return StreamEvent(
        delta=delta.get("content") or "",
        tool_deltas=tool_deltas,
        finish_reason=choice.get("finish_reason") or None,
    )


def parse_sse_line(line: str) -> StreamEvent | None:
    """
    Parse one SSE line.

    Returns ``None`` for blank lines, non-``data:`` lines, malformed
    payloads and chunks without choices.
    """
    if not line.startswith("data:"):
        return None

    data_str = line[len("data:"):].strip()
    if data_str == _DONE_SENTINEL:
        return StreamEvent.terminated()

    try:
        data = json.loads(data_str)
        if not isinstance(data, dict):
            raise ValueError("chunk is not a JSON object")
        return chunk_to_event(data)
    except (ValueError, TypeError, AttributeError) as exc:
        logger.warning("Failed to parse SSE chunk (%s): %s", exc, data_str[:200])
        return None


async def iter_sse_events(
    chunks: AsyncIterator[bytes],
    *,
    max_line_bytes: int = MAX_LINE_BYTES,
) -> AsyncIterator[StreamEvent]:
    """
    Yield ``StreamEvent`` objects from a raw byte stream.

    The last event is always a terminated event, whether the ``[DONE]``
    sentinel arrived or the body simply ended.  A line longer than
    *max_line_bytes* raises ``StreamProtocolError``.
    """
    buffer = b""
    async for raw in chunks:
        buffer += raw

        while True:
            newline = buffer.find(b"\n")
            if newline < 0:
                break
            line, buffer = buffer[:newline], buffer[newline + 1:]
            if len(line) > max_line_bytes:
                raise StreamProtocolError(f"SSE line exceeds {max_line_bytes} bytes")

            event = parse_sse_line(line.decode("utf-8", errors="replace").rstrip("\r"))
            if event is None:
                continue
            yield event
            if event.done:
                return

        if len(buffer) > max_line_bytes:
            raise StreamProtocolError(f"SSE line exceeds {max_line_bytes} bytes")

    if buffer:
        event = parse_sse_line(buffer.decode("utf-8", errors="replace").rstrip("\r"))
        if event is not None:
            yield event
            if event.done:
                return

    yield StreamEvent.terminated()


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------

class EventStream:
    """
    Base class for an ordered, closable sequence of ``StreamEvent`` objects.

    Use as ``async with stream: async for event in stream: ...``.
    """

    cancelled: bool = False

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> StreamEvent:
        raise StopAsyncIteration

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> EventStream:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class ModelStream(EventStream):
    """
    Stream of events parsed from an open streaming HTTP response.

    The stream owns *response* (and *client*, when given) and closes both
    from ``aclose``.  ``cancelled`` is set when iteration stopped because the
    token fired; no error event is produced in that case.
    """

    def __init__(
        self,
        response: httpx.Response,
        token: CancelToken,
        *,
        client: httpx.AsyncClient | None = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self._response = response
        self._client = client
        self._token = token
        self._max_line_bytes = max_line_bytes
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=queue_size)
        self._finished = False
        self._closed = False
        self.cancelled = False
        self._producer = asyncio.create_task(self._produce())

    async def _produce(self) -> None:
        try:
            async for event in iter_sse_events(
                self._response.aiter_bytes(), max_line_bytes=self._max_line_bytes
            ):
                await self._queue.put(event)
        except (httpx.HTTPError, StreamProtocolError) as exc:
            logger.warning("Model stream failed: %s", exc)
            await self._queue.put(StreamEvent.failed(exc))
        except Exception as exc:
            logger.exception("Unexpected error while reading model stream")
            await self._queue.put(StreamEvent.failed(exc))

    async def __anext__(self) -> StreamEvent:
        if self._finished:
            raise StopAsyncIteration

        try:
            event = await self._token.run(self._queue.get())
        except OperationCancelled as exc:
            logger.info("Model stream interrupted: %s", exc.reason)
            self.cancelled = True
            await self.aclose()
            raise StopAsyncIteration

        if event.done or event.error is not None:
            self._finished = True
        return event

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._finished = True

        if not self._producer.done():
            self._producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._producer
        await self._response.aclose()
        if self._client is not None:
            await self._client.aclose()
