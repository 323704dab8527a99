"""
Tool executor -- runs one model-issued tool call to a ``ToolResult``.

Lifecycle of a call:
1. Registry lookup
2. Policy check
3. Parse and validate arguments
4. Confirmation gate (mutating tools only)
5. Execute with per-tool timeout, bounded by the invocation's CancelToken
6. Audit log (mutating tools only)

Every failure becomes an error ``ToolResult``; only ``OperationCancelled``
propagates to the caller, after a mutating call is audited as ``cancelled``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any

from kubeassist.backends.base import BackendError
from kubeassist.cancellation import OperationCancelled
from kubeassist.tools.audit import AuditLog
from kubeassist.tools.base import CONFIRMED_FIELD, Tool, ToolScope
from kubeassist.tools.policy import ToolPolicy
from kubeassist.tools.registry import ToolRegistry
from kubeassist.tools.validation import (
    ArgumentError,
    ToolValidator,
    decode_arguments,
    parse_arguments,
)
from kubeassist.types import ErrorCode, Outcome, ToolResult

logger = logging.getLogger(__name__)


def awaiting_confirmation(tool: Tool, args: Any) -> dict:
    return {
        "action": tool.name,
        **tool.describe_action(args),
        "status": Outcome.AWAITING_CONFIRMATION,
        "message": tool.confirmation_message(args),
    }


class ToolExecutor:
    """
    Parameters
    ----------
    registry : ToolRegistry
        Registered tools.
    policy : ToolPolicy
        Risk cap; defaults to allowing every registered tool.
    audit : AuditLog
        Sink for mutating calls; ``None`` disables auditing.
    tool_timeout : float
        Max seconds for a single tool execution.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        policy: ToolPolicy | None = None,
        audit: AuditLog | None = None,
        tool_timeout: float = 30.0,
    ) -> None:
        self.registry = registry
        self.policy = policy or ToolPolicy()
        self.audit = audit
        self.tool_timeout = tool_timeout

    def visible_tools(self) -> list[Tool]:
        return self.registry.list(max_risk=self.policy.max_risk)

    def catalog(self) -> list[dict]:
        """OpenAI tool schemas for every tool the policy allows."""
        return self.registry.to_openai_schema(max_risk=self.policy.max_risk)

    async def execute(
        self,
        tool_name: str,
        arguments_json: str,
        scope: ToolScope,
        tool_call_id: str = "",
    ) -> ToolResult:
        tool = self.registry.get(tool_name)
        if tool is None:
            return self._fail(
                tool_call_id, f"Unknown tool: {tool_name}", ErrorCode.UNKNOWN_TOOL
            )

        decision = self.policy.check(tool)
        if not decision.allowed:
            return self._fail(
                tool_call_id, f"Policy blocked: {decision.reason}", ErrorCode.POLICY_BLOCK
            )

        try:
            raw_args = parse_arguments(arguments_json)
        except ArgumentError as e:
            return self._fail(tool_call_id, str(e), ErrorCode.VALIDATION_ERROR)

        valid, error_msg = ToolValidator.validate(tool, raw_args)
        if not valid:
            return self._fail(
                tool_call_id, f"Validation error: {error_msg}", ErrorCode.VALIDATION_ERROR
            )
        args = decode_arguments(tool.args_type, raw_args)

        start = time.monotonic()
        if tool.mutating and not getattr(args, CONFIRMED_FIELD, False):
            result = ToolResult(
                success=True,
                data=awaiting_confirmation(tool, args),
                metadata={"outcome": Outcome.AWAITING_CONFIRMATION},
                tool_call_id=tool_call_id,
            )
        else:
            try:
                result = await self._run(tool, args, scope, tool_call_id)
            except OperationCancelled as e:
                # The cluster call may already have been applied.
                if tool.mutating:
                    cancelled = ToolResult(
                        success=False,
                        error=str(e),
                        metadata={"outcome": Outcome.CANCELLED},
                        tool_call_id=tool_call_id,
                    )
                    await self._audit(tool, args, scope, cancelled, start, tool_call_id)
                raise

        if tool.mutating:
            await self._audit(tool, args, scope, result, start, tool_call_id)
        return result

    async def _run(
        self, tool: Tool, args: Any, scope: ToolScope, tool_call_id: str
    ) -> ToolResult:
        if scope.tool_timeout is None:
            scope.tool_timeout = self.tool_timeout
        limit = scope.tool_timeout
        try:
            data = await scope.token.run(tool.execute(args, scope), timeout=limit)
        except OperationCancelled:
            raise
        except asyncio.TimeoutError:
            logger.error("Tool %s timed out after %ss", tool.name, limit)
            return self._fail(
                tool_call_id, f"Timeout after {limit}s", ErrorCode.TIMEOUT
            )
        except BackendError as e:
            logger.error("Tool %s failed: %s", tool.name, e)
            return self._fail(tool_call_id, str(e), ErrorCode.BACKEND_ERROR)
        except Exception as e:
            logger.exception("Tool %s raised", tool.name)
            return self._fail(tool_call_id, f"Tool exception: {e}", ErrorCode.TOOL_EXCEPTION)

        return ToolResult(success=True, data=data, tool_call_id=tool_call_id)

    async def _audit(
        self,
        tool: Tool,
        args: Any,
        scope: ToolScope,
        result: ToolResult,
        start: float,
        tool_call_id: str,
    ) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.record(
                actor=scope.actor,
                cluster_id=scope.cluster.id,
                action=tool.name,
                target=tool.target(args),
                parameters=dataclasses.asdict(args),
                outcome=result.outcome,
                error=result.error,
                duration_ms=int((time.monotonic() - start) * 1000),
                tool_call_id=tool_call_id,
            )
        except Exception:
            logger.exception("Audit log failed")

    @staticmethod
    def _fail(tool_call_id: str, error: str, code: str) -> ToolResult:
        return ToolResult(
            success=False,
            error=error,
            error_code=code,
            tool_call_id=tool_call_id,
        )
