from __future__ import annotations

from kubeassist.tools.base import Tool, ToolRisk
from kubeassist.types import PolicyDecision


def parse_risk(value: str | ToolRisk) -> ToolRisk:
    if isinstance(value, ToolRisk):
        return value
    try:
        return ToolRisk[str(value).strip().upper()]
    except KeyError:
        raise ValueError(
            f"unknown risk level {value!r}; expected one of "
            + ", ".join(r.name for r in ToolRisk)
        ) from None


class ToolPolicy:
    """Caps the risk of tools the assistant may see and call."""

    def __init__(self, *, max_risk: ToolRisk = ToolRisk.DESTRUCTIVE):
        self.max_risk = max_risk

    def check(self, tool: Tool) -> PolicyDecision:
        if tool.risk_level > self.max_risk:
            return PolicyDecision(
                False,
                f"risk_too_high:{tool.risk_level.name}>{self.max_risk.name}",
            )
        return PolicyDecision(True, "ok")
