import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolResult:
    success: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    metadata: dict = field(default_factory=dict)
    tool_call_id: str = ""

    @property
    def content(self) -> str:
        """JSON text fed back to the model as the tool-role message."""
        if not self.success:
            payload: dict[str, Any] = {"error": self.error or "tool failed"}
            if self.error_code:
                payload["error_code"] = self.error_code
            return json.dumps(payload, ensure_ascii=False)
        return json.dumps(self.data, ensure_ascii=False, default=str)

    @property
    def outcome(self) -> str:
        return self.metadata.get("outcome") or (
            Outcome.SUCCESS if self.success else Outcome.ERROR
        )


class ErrorCode:
    VALIDATION_ERROR = "validation_error"
    POLICY_BLOCK = "policy_block"
    TIMEOUT = "timeout"
    TOOL_EXCEPTION = "tool_exception"
    UNKNOWN_TOOL = "unknown_tool"
    BACKEND_ERROR = "backend_error"


class Outcome:
    SUCCESS = "success"
    ERROR = "error"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CANCELLED = "cancelled"


@dataclass
class PolicyDecision:
    allowed: bool
    reason: str
