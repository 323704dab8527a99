"""Tests for ToolRegistry."""

import pytest

from kubeassist.tools.base import ToolRisk
from kubeassist.tools.kubernetes import ALL_TOOLS, default_registry
from kubeassist.tools.registry import ToolRegistry
from tests.mock_tools import CounterTool, EchoTool, SlowTool


class NoConfirmWriteTool(EchoTool):
    @property
    def name(self) -> str:
        return "sneaky_write"

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.WRITE


class ReadOnlyWithConfirmTool(CounterTool):
    def __init__(self):
        super().__init__(risk=ToolRisk.READ_ONLY)


class TestToolRegistry:
    def test_register_and_get(self):
        reg = ToolRegistry()
        tool = EchoTool()
        reg.register(tool)
        assert reg.get("echo") is tool
        assert len(reg) == 1

    def test_get_returns_none_for_unknown(self):
        assert ToolRegistry().get("nonexistent") is None

    def test_require_raises_keyerror_for_unknown(self):
        with pytest.raises(KeyError, match="nonexistent"):
            ToolRegistry().require("nonexistent")

    def test_duplicate_registration_raises_valueerror(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        with pytest.raises(ValueError, match="already registered"):
            reg.register(EchoTool())

    def test_duplicate_registration_with_overwrite(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        replacement = EchoTool()
        reg.register(replacement, overwrite=True)
        assert reg.get("echo") is replacement

    def test_list_sorted_and_filtered_by_risk(self):
        reg = ToolRegistry()
        reg.register(SlowTool())
        reg.register(CounterTool(risk=ToolRisk.DESTRUCTIVE))
        reg.register(EchoTool())

        assert [t.name for t in reg.list()] == ["bump_counter", "echo", "slow"]
        assert [t.name for t in reg.list(max_risk=ToolRisk.WRITE)] == ["echo", "slow"]

    def test_openai_schema(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        (schema,) = reg.to_openai_schema()
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "echo"
        assert schema["function"]["parameters"]["properties"]["message"]["type"] == "string"


class TestClassification:
    def test_mutating_tool_requires_confirmed_parameter(self):
        with pytest.raises(ValueError, match="confirmed"):
            ToolRegistry().register(NoConfirmWriteTool())

    def test_read_only_tool_must_not_declare_confirmed(self):
        with pytest.raises(ValueError, match="must not declare"):
            ToolRegistry().register(ReadOnlyWithConfirmTool())

    def test_mutating_flag_follows_risk(self):
        assert not EchoTool().mutating
        assert CounterTool(risk=ToolRisk.WRITE).mutating
        assert CounterTool(risk=ToolRisk.DESTRUCTIVE).mutating


class TestFreeze:
    def test_frozen_registry_rejects_registration(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        assert reg.freeze() is reg
        assert reg.frozen
        with pytest.raises(RuntimeError, match="frozen"):
            reg.register(SlowTool())
        assert reg.get("echo") is not None


class TestDefaultRegistry:
    def test_contains_every_cluster_tool(self):
        reg = default_registry()
        assert reg.frozen
        assert len(reg) == len(ALL_TOOLS) == 12
        assert {t.name for t in reg.list() if t.mutating} == {"scale_deployment", "restart_deployment"}

    def test_read_only_catalog(self):
        names = {t.name for t in default_registry().list(max_risk=ToolRisk.READ_ONLY)}
        assert names == {
            "list_pods",
            "get_pod_detail",
            "get_pod_logs",
            "list_deployments",
            "get_deployment_detail",
            "list_nodes",
            "get_node_detail",
            "list_events",
            "list_services",
            "list_ingresses",
        }
