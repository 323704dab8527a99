"""LLM subsystem -- provider, stream parsing and tool-call assembly."""

from kubeassist.llm.errors import ProviderError, StreamProtocolError
from kubeassist.llm.stream import EventStream, ModelStream
from kubeassist.llm.tool_call_assembler import ToolCallAssembler
from kubeassist.llm.types import (
    FINISH_TOOL_CALLS,
    Message,
    StreamEvent,
    ToolCallDelta,
    ToolCallRequest,
)

__all__ = [
    "EventStream",
    "FINISH_TOOL_CALLS",
    "Message",
    "ModelStream",
    "ProviderError",
    "StreamEvent",
    "StreamProtocolError",
    "ToolCallAssembler",
    "ToolCallDelta",
    "ToolCallRequest",
]
