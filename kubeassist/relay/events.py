"""
Progress events relayed to the chat client.

Each event maps to one server-sent event: the event name plus one JSON
``data`` line.

=============  ===========================  ==================================
event          payload                      meaning
=============  ===========================  ==================================
content        {"content"}                  incremental assistant text
tool_call      {"id", "name", "arguments"}  a tool is about to run
tool_result    {"id", "name", "result"}     a tool finished
error          {"error"}                    fatal condition for the invocation
done           {}                           terminal marker
=============  ===========================  ==================================
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

EVENT_CONTENT = "content"
EVENT_TOOL_CALL = "tool_call"
EVENT_TOOL_RESULT = "tool_result"
EVENT_ERROR = "error"
EVENT_DONE = "done"

EVENT_TYPES = (EVENT_CONTENT, EVENT_TOOL_CALL, EVENT_TOOL_RESULT, EVENT_ERROR, EVENT_DONE)


@dataclass(frozen=True)
class ProgressEvent:
    event: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.event == EVENT_DONE

    def to_sse(self) -> dict[str, str]:
        """Serialize for ``sse_starlette.EventSourceResponse``."""
        return {
            "event": self.event,
            "data": json.dumps(self.payload, ensure_ascii=False, default=str),
        }


def embed_json(text: str) -> Any:
    """Return *text* parsed when it holds a JSON object or array, else *text* itself."""
    stripped = (text or "").strip()
    if stripped[:1] in ("{", "["):
        try:
            return json.loads(stripped)
        except ValueError:
            pass
    return text


def content_event(text: str) -> ProgressEvent:
    return ProgressEvent(EVENT_CONTENT, {"content": text})


def tool_call_event(call_id: str, name: str, arguments: str) -> ProgressEvent:
    return ProgressEvent(
        EVENT_TOOL_CALL,
        {"id": call_id, "name": name, "arguments": embed_json(arguments)},
    )


def tool_result_event(call_id: str, name: str, result: str) -> ProgressEvent:
    return ProgressEvent(
        EVENT_TOOL_RESULT,
        {"id": call_id, "name": name, "result": embed_json(result)},
    )


def error_event(message: str) -> ProgressEvent:
    return ProgressEvent(EVENT_ERROR, {"error": message})


def done_event() -> ProgressEvent:
    return ProgressEvent(EVENT_DONE, {})
