from __future__ import annotations

from kubeassist.tools.base import CONFIRMED_FIELD, Tool, ToolRisk, normalize_schema


class ToolRegistry:
    """
    Name -> tool mapping.

    Registration checks the read-only/mutating classification: a mutating
    tool must declare a boolean ``confirmed`` parameter and a read-only tool
    must not.  ``freeze()`` makes the registry read-only so one instance can
    be shared by concurrent invocations.
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}
        self._frozen = False

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if self._frozen:
            raise RuntimeError("Tool registry is frozen")
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._check_classification(tool)
        self._tools[tool.name] = tool

    @staticmethod
    def _check_classification(tool: Tool) -> None:
        props = normalize_schema(tool.parameters).get("properties", {})
        confirmed = props.get(CONFIRMED_FIELD)
        if tool.mutating:
            if not confirmed or confirmed.get("type") != "boolean":
                raise ValueError(
                    f"Mutating tool {tool.name} must declare a boolean '{CONFIRMED_FIELD}' parameter"
                )
        elif confirmed is not None:
            raise ValueError(
                f"Read-only tool {tool.name} must not declare '{CONFIRMED_FIELD}'"
            )

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def list(self, max_risk: ToolRisk | None = None) -> list[Tool]:
        tools = list(self._tools.values())
        if max_risk is None:
            return sorted(tools, key=lambda t: t.name)
        return sorted(
            [t for t in tools if t.risk_level <= max_risk],
            key=lambda t: t.name,
        )

    def to_openai_schema(self, max_risk: ToolRisk | None = None) -> list[dict]:
        return [t.to_openai_schema() for t in self.list(max_risk)]

    def __len__(self) -> int:
        return len(self._tools)
