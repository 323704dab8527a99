"""Abstract base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from kubeassist.cancellation import CancelToken
from kubeassist.llm.errors import ProviderError
from kubeassist.llm.stream import EventStream
from kubeassist.llm.types import ROLE_USER, Message

__all__ = ["Provider", "ProviderError"]


class Provider(ABC):
    """
    A provider encapsulates access to a single chat-completion endpoint.

    Implementations must support:
      - Streaming chat completions (``open_stream``).
      - Non-streaming completions (``complete``).
    """

    @abstractmethod
    async def open_stream(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        token: CancelToken | None = None,
    ) -> EventStream:
        """
        Send one streaming request and return its event stream.

        Raises ``ProviderError`` before any event is produced when the
        endpoint cannot be reached or answers with a non-success status.
        """
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        token: CancelToken | None = None,
    ) -> Message:
        """Run a non-streaming completion and return the assistant message."""
        ...

    async def test_connection(self, token: CancelToken | None = None) -> Message:
        """Send a trivial prompt; raises ``ProviderError`` if it fails."""
        return await self.complete(
            [Message(role=ROLE_USER, content="Hi, reply with just 'ok'.")],
            token=token,
        )

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai-compat"``)."""
        ...
