"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"

# finish_reason value announcing that the round ends with tool calls.
FINISH_TOOL_CALLS = "tool_calls"


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str = ""
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None


@dataclass(frozen=True)
class ToolCallRequest:
    """
    A tool invocation requested by the model.

    *arguments* is the raw JSON text exactly as streamed; it is only parsed
    by the tool executor.
    """

    id: str
    name: str
    arguments: str = ""


@dataclass
class ToolCallDelta:
    """One streamed fragment of a tool call."""

    index: int = 0
    id: str | None = None
    name_delta: str = ""
    args_delta: str = ""


@dataclass
class StreamEvent:
    """
    A single event read from a streaming chat completion.

    Each parsed chunk produces one event carrying the chunk's text *delta*,
    its *tool_deltas* and its *finish_reason*.  ``done`` marks the end of the
    stream; ``error`` carries a transport failure and also ends the stream.
    """

    delta: str = ""
    tool_deltas: list[ToolCallDelta] = field(default_factory=list)
    finish_reason: str | None = None
    done: bool = False
    error: Exception | None = None

    @classmethod
    def terminated(cls) -> StreamEvent:
        return cls(done=True)

    @classmethod
    def failed(cls, error: Exception) -> StreamEvent:
        return cls(error=error)
