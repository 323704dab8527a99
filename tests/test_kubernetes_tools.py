"""Tests for the cluster tools, run against the demo backend."""

from __future__ import annotations

import json

import pytest

from kubeassist.backends.demo import DemoClusterBackend
from kubeassist.tools.executor import ToolExecutor
from kubeassist.tools.kubernetes import (
    LOG_TAIL_LINES,
    MAX_EVENTS,
    GetNodeDetailTool,
    ListEventsTool,
    ScaleArgs,
    ScaleDeploymentTool,
    default_registry,
)
from tests.mock_tools import make_scope


@pytest.fixture
def backend():
    return DemoClusterBackend()


@pytest.fixture
def executor():
    return ToolExecutor(default_registry())


async def _call(executor, backend, name, args=None):
    result = await executor.execute(name, json.dumps(args or {}), make_scope(backend))
    assert result.success, result.error
    return result.data


class TestReadOnlyTools:
    @pytest.mark.parametrize(
        "tool, key, total",
        [
            ("list_pods", "pods", 6),
            ("list_deployments", "deployments", 3),
            ("list_services", "services", 3),
            ("list_ingresses", "ingresses", 1),
            ("list_nodes", "nodes", 3),
        ],
    )
    async def test_list_shape(self, executor, backend, tool, key, total):
        data = await _call(executor, backend, tool)
        assert data["total"] == total
        assert len(data[key]) == total

    async def test_namespace_filter(self, executor, backend):
        data = await _call(executor, backend, "list_deployments", {"namespace": "monitoring"})
        assert [d["name"] for d in data["deployments"]] == ["prometheus"]

    async def test_pod_detail(self, executor, backend):
        data = await _call(executor, backend, "get_pod_detail", {"namespace": "default", "name": "api-5c6b7d-uvwxy"})
        assert data["containers"][0]["reason"] == "CrashLoopBackOff"

    async def test_missing_pod_is_backend_error(self, executor, backend):
        result = await executor.execute(
            "get_pod_detail", '{"namespace": "default", "name": "ghost"}', make_scope(backend)
        )
        assert result.error_code == "backend_error"
        assert "not found" in result.error

    async def test_missing_node_name_reaches_backend(self, executor, backend):
        result = await executor.execute("get_node_detail", "{}", make_scope(backend))
        assert result.error_code == "backend_error"

    async def test_logs_are_raw_text(self, executor, backend):
        result = await executor.execute(
            "get_pod_logs", '{"namespace": "default", "name": "api-5c6b7d-uvwxy"}', make_scope(backend)
        )
        assert isinstance(result.data, str)
        assert "database connection refused" in result.data
        assert json.loads(result.content) == result.data

    async def test_events_filtered_by_resource(self, executor, backend):
        data = await _call(executor, backend, "list_events", {"namespace": "default", "resource_name": "demo-worker-2"})
        assert data["total"] == 1
        assert data["events"][0]["reason"] == "NodeNotReady"

    async def test_events_keep_latest(self, backend):
        events = [
            {"type": "Normal", "reason": f"R{i}", "object": "Pod/p", "message": "", "count": 1}
            for i in range(MAX_EVENTS + 10)
        ]

        async def many_events(namespace="", *, timeout=None):
            return events

        backend.list_events = many_events
        tool = ListEventsTool()
        data = await tool.execute(tool.args_type(), make_scope(backend))
        assert data["total"] == MAX_EVENTS
        assert data["events"][0]["reason"] == "R10"
        assert data["events"][-1]["reason"] == f"R{MAX_EVENTS + 9}"

    def test_log_tail_is_documented(self):
        assert str(LOG_TAIL_LINES) in default_registry().require("get_pod_logs").description

    def test_required_fields_in_schema(self):
        assert GetNodeDetailTool().parameters["required"] == ["name"]


class TestMutatingTools:
    def test_scale_describe_action(self):
        tool = ScaleDeploymentTool()
        args = ScaleArgs(namespace="default", name="web", replicas=5)
        assert tool.describe_action(args) == {"namespace": "default", "name": "web", "target_replicas": 5}
        assert tool.target(args) == "default/web"
        assert "default/web" in tool.confirmation_message(args)

    async def test_restart_waits_for_confirmation(self, executor, backend):
        data = await _call(executor, backend, "restart_deployment", {"namespace": "default", "name": "api"})
        assert data["status"] == "awaiting_confirmation"
        assert data["action"] == "restart_deployment"
        assert data["namespace"] == "default"
        assert backend.mutations == []

    async def test_restart_confirmed(self, executor, backend):
        data = await _call(
            executor, backend, "restart_deployment", {"namespace": "default", "name": "api", "confirmed": True}
        )
        assert data["status"] == "success"
        assert [m[0] for m in backend.mutations] == ["restart"]
