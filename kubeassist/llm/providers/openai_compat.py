"""
OpenAI-compatible chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/chat/completions`` wire
protocol -- OpenAI itself, Azure OpenAI, DeepSeek, Qwen, vLLM, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import logging

import httpx

from kubeassist.cancellation import CancelToken
from kubeassist.config import AIProviderConfig, ChatConfig
from kubeassist.llm.errors import ProviderError
from kubeassist.llm.providers.base import Provider
from kubeassist.llm.stream import DEFAULT_QUEUE_SIZE, MAX_LINE_BYTES, ModelStream
from kubeassist.llm.types import ROLE_ASSISTANT, Message, ToolCallRequest

logger = logging.getLogger(__name__)


def _retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class OpenAICompatProvider(Provider):
    """
    Stream-capable provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"``.
    model:
        Model identifier sent in the ``model`` field.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP timeout in seconds (applies per read while streaming).
    max_retries:
        Extra attempts on connection failures and 429/5xx answers, before
        any event has been produced.
    queue_size:
        Capacity of the queue between the response parser and the consumer.
    max_line_bytes:
        Longest SSE line accepted before the stream is failed.
    transport:
        Optional ``httpx`` transport, used by tests.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 0,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        max_line_bytes: int = MAX_LINE_BYTES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._queue_size = queue_size
        self._max_line_bytes = max_line_bytes
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        ai: AIProviderConfig,
        chat: ChatConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> OpenAICompatProvider:
        chat = chat or ChatConfig()
        return cls(
            url=ai.endpoint,
            model=ai.model,
            api_key=ai.resolve_api_key(),
            timeout=float(ai.timeout_seconds),
            max_retries=ai.max_retries,
            queue_size=chat.event_queue_size,
            max_line_bytes=chat.max_line_bytes,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "openai-compat"

    @property
    def model(self) -> str:
        return self._model

    async def open_stream(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        token: CancelToken | None = None,
    ) -> ModelStream:
        token = token or CancelToken()
        body = self._build_body(messages, tools, stream=True)
        headers = self._build_headers(stream=True)
        url = f"{self._url}/chat/completions"

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            client = self._new_client()
            try:
                request = client.build_request("POST", url, json=body, headers=headers)
                response = await token.run(client.send(request, stream=True))
            except httpx.TransportError as exc:
                await client.aclose()
                logger.warning("Model endpoint unreachable (attempt %d): %s", attempt + 1, exc)
                last_error = exc
                continue
            except BaseException:
                await client.aclose()
                raise

            if not response.is_success:
                detail = (await response.aread()).decode("utf-8", errors="replace")
                await response.aclose()
                await client.aclose()
                error = ProviderError(
                    f"model endpoint returned HTTP {response.status_code}: {detail}",
                    status_code=response.status_code,
                    body=detail,
                )
                if _retryable(response.status_code) and attempt < self._max_retries:
                    last_error = error
                    continue
                raise error

            return ModelStream(
                response,
                token,
                client=client,
                queue_size=self._queue_size,
                max_line_bytes=self._max_line_bytes,
            )

        if isinstance(last_error, ProviderError):
            raise last_error
        raise ProviderError(f"cannot reach model endpoint: {last_error}") from last_error

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        token: CancelToken | None = None,
    ) -> Message:
        token = token or CancelToken()
        body = self._build_body(messages, tools, stream=False)
        headers = self._build_headers(stream=False)
        url = f"{self._url}/chat/completions"

        async with self._new_client() as client:
            try:
                resp = await token.run(client.post(url, json=body, headers=headers))
            except httpx.TransportError as exc:
                raise ProviderError(f"cannot reach model endpoint: {exc}") from exc

            if not resp.is_success:
                raise ProviderError(
                    f"model endpoint returned HTTP {resp.status_code}: {resp.text}",
                    status_code=resp.status_code,
                    body=resp.text,
                )
            try:
                data = resp.json()
            except ValueError as exc:
                raise ProviderError(f"malformed model response: {exc}") from exc

        return self._parse_non_stream(data)

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _build_headers(self, *, stream: bool) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if stream:
            headers["Accept"] = "text/event-stream"
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: list[Message],
        tools: list[dict] | None,
        stream: bool,
    ) -> dict:
        wire_messages = []
        for msg in messages:
            m: dict = {"role": msg.role, "content": msg.content}
            if msg.tool_calls:
                m["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": tc.arguments or "{}",
                        },
                    }
                    for tc in msg.tool_calls
                ]
            if msg.tool_call_id:
                m["tool_call_id"] = msg.tool_call_id
            wire_messages.append(m)

        body: dict = {
            "model": self._model,
            "messages": wire_messages,
            "stream": stream,
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        logger.info(
            "REQUEST: model=%s tools=%d messages=%d stream=%s",
            self._model,
            len(tools) if tools else 0,
            len(wire_messages),
            stream,
        )
        return body

    # ------------------------------------------------------------------
    # Non-streaming response
    # ------------------------------------------------------------------

    def _parse_non_stream(self, data: dict) -> Message:
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ProviderError("model endpoint returned no choices")

        message = choices[0].get("message") or {}
        calls = [
            ToolCallRequest(
                id=raw_tc.get("id") or f"call_{idx}",
                name=(raw_tc.get("function") or {}).get("name", ""),
                arguments=(raw_tc.get("function") or {}).get("arguments", ""),
            )
            for idx, raw_tc in enumerate(message.get("tool_calls") or [])
        ]
        return Message(
            role=ROLE_ASSISTANT,
            content=message.get("content") or "",
            tool_calls=calls or None,
        )
