from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from kubeassist.backends.base import ClusterBackend, ClusterInfo
from kubeassist.cancellation import CancelToken

CONFIRMED_FIELD = "confirmed"


class ToolRisk(IntEnum):
    READ_ONLY = 10
    WRITE = 20
    DESTRUCTIVE = 30


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    return s


@dataclass
class ToolScope:
    """Cluster-scoped context handed to every tool invocation."""

    cluster: ClusterInfo
    backend: ClusterBackend
    token: CancelToken
    actor: str = "ai-assistant"
    tool_timeout: float | None = None

    def request_timeout(self) -> float | None:
        """Timeout for one backend request: the tighter of tool timeout and deadline."""
        remaining = self.token.remaining()
        if remaining is None:
            return self.tool_timeout
        if self.tool_timeout is None:
            return remaining
        return min(remaining, self.tool_timeout)


@dataclass
class NoArgs:
    pass


class Tool(ABC):
    #: Dataclass the validated arguments are decoded into.
    args_type: type = NoArgs

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.READ_ONLY

    @property
    def mutating(self) -> bool:
        return self.risk_level >= ToolRisk.WRITE

    def describe_action(self, args: Any) -> dict:
        """Parameters echoed back while a mutating call awaits confirmation."""
        return {}

    def confirmation_message(self, args: Any) -> str:
        return f"Confirm running {self.name}?"

    def target(self, args: Any) -> str:
        """``namespace/name`` of the object the call acts on, for the audit log."""
        namespace = getattr(args, "namespace", "")
        name = getattr(args, "name", "")
        return f"{namespace}/{name}" if namespace else name

    @abstractmethod
    async def execute(self, args: Any, scope: ToolScope) -> Any:
        """Run against ``scope.backend`` and return JSON-ready data.

        Raise ``BackendError`` for cluster failures.
        """
        ...

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.parameters),
            },
        }
