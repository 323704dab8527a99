"""End-to-end test using the demo backend."""

from __future__ import annotations

import json

import httpx
import pytest

from kubeassist.backends.demo import DemoClusterBackend
from kubeassist.llm.providers.openai_compat import OpenAICompatProvider
from kubeassist.llm.types import Message
from kubeassist.orchestrator.core import ChatState, Conversation, Orchestrator
from kubeassist.prompts.system import build_system_prompt
from kubeassist.tools.audit import AuditLog
from kubeassist.tools.executor import ToolExecutor
from kubeassist.tools.kubernetes import default_registry
from tests.mock_providers import ScriptedProvider, text_round, tool_round
from tests.mock_tools import make_scope


@pytest.fixture
def full_stack(tmp_path):
    """Wire up the complete stack with the demo cluster and an audit log."""
    backend = DemoClusterBackend()
    audit = AuditLog(tmp_path / "audit.jsonl")
    executor = ToolExecutor(default_registry(), audit=audit, tool_timeout=5.0)
    scope = make_scope(backend, timeout=30.0)
    return {
        "backend": backend,
        "audit": audit,
        "executor": executor,
        "scope": scope,
        "prompt": build_system_prompt(scope.cluster, executor.visible_tools()),
    }


async def _run(stack, provider, history):
    orchestrator = Orchestrator(provider, stack["executor"], system_prompt=stack["prompt"])
    conv = Conversation()
    events = [e async for e in orchestrator.run(history, stack["scope"], conv)]
    return events, conv


class TestDiagnoseCrashingPod:
    async def test_pods_then_logs_then_events(self, full_stack):
        provider = ScriptedProvider([
            tool_round([("call_1", "list_pods", {"namespace": "default"})], content="Checking pods. "),
            tool_round([
                ("call_2", "get_pod_logs", {"namespace": "default", "name": "api-5c6b7d-uvwxy"}),
                ("call_3", "list_events", {"namespace": "default", "resource_name": "api-5c6b7d-uvwxy"}),
            ]),
            text_round("The api pod cannot reach its database."),
        ])
        events, conv = await _run(full_stack, provider, [Message(role="user", content="why is api failing?")])

        results = {e.payload["id"]: e.payload["result"] for e in events if e.event == "tool_result"}
        assert results["call_1"]["total"] == 5
        assert "connection refused" in results["call_2"]
        assert [ev["reason"] for ev in results["call_3"]["events"]] == ["Scheduled", "BackOff"]

        assert conv.state == ChatState.FINISHED
        assert conv.rounds == 2
        assert [m.role for m in conv.messages] == [
            "system", "user", "assistant", "tool", "assistant", "tool", "tool", "assistant",
        ]
        assert full_stack["backend"].mutations == []
        assert not full_stack["audit"].path.exists()


class TestScaleWithConfirmation:
    async def test_two_invocations(self, full_stack):
        args = {"namespace": "default", "name": "api", "replicas": 3}

        first = ScriptedProvider([
            tool_round([("call_1", "scale_deployment", args)]),
            text_round("Scale default/api to 3 replicas?"),
        ])
        events, conv = await _run(full_stack, first, [Message(role="user", content="scale api to 3")])
        pending = next(e.payload["result"] for e in events if e.event == "tool_result")
        assert pending["status"] == "awaiting_confirmation"
        assert pending["target_replicas"] == 3
        assert full_stack["backend"].mutations == []

        history = conv.messages[1:] + [Message(role="user", content="yes")]
        second = ScriptedProvider([
            tool_round([("call_2", "scale_deployment", {**args, "confirmed": True})]),
            text_round("Done."),
        ])
        events, conv = await _run(full_stack, second, history)

        assert full_stack["backend"].mutations == [("scale", "default", "api", {"replicas": 3})]
        entries = [json.loads(line) for line in full_stack["audit"].path.read_text().splitlines()]
        assert [(e["tool_call_id"], e["outcome"]) for e in entries] == [
            ("call_1", "awaiting_confirmation"),
            ("call_2", "success"),
        ]
        detail = await full_stack["backend"].get_deployment("default", "api")
        assert detail["replicas"] == 3


class TestWireScenarios:
    """Full pipeline: real provider over a mocked HTTP transport."""

    @staticmethod
    def _provider(*bodies: str):
        remaining = list(bodies)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=remaining.pop(0)
            )

        return OpenAICompatProvider(
            url="http://model.test/v1", model="m", api_key="k", transport=httpx.MockTransport(handler)
        )

    async def test_list_pods_then_text(self, full_stack):
        tool_body = (
            'data: {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c1", "type": "function", '
            '"function": {"name": "list_pods", "arguments": ""}}]}}]}\n\n'
            'data: {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": "{\\"namespace\\":"}}]}}]}\n\n'
            'data: {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": "\\"default\\"}"}}]}}]}\n\n'
            'data: {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]}\n\n'
            "data: [DONE]\n\n"
        )
        text_body = (
            'data: {"choices": [{"delta": {"content": "Five pods, "}}]}\n\n'
            'data: {"choices": [{"delta": {"content": "one crashing."}}]}\n\n'
            'data: {"choices": [{"delta": {}, "finish_reason": "stop"}]}\n\n'
            "data: [DONE]\n\n"
        )
        events, conv = await _run(
            full_stack,
            self._provider(tool_body, text_body),
            [Message(role="user", content="list pods in default")],
        )

        assert [e.event for e in events] == ["tool_call", "tool_result", "content", "content", "done"]
        assert events[0].payload == {"id": "c1", "name": "list_pods", "arguments": {"namespace": "default"}}
        assert events[1].payload["id"] == "c1"
        assert events[1].payload["result"]["total"] == 5
        assert conv.state == ChatState.FINISHED

    async def test_malformed_chunk_between_valid_chunks(self, full_stack):
        body = (
            'data: {"choices": [{"delta": {"content": "before "}}]}\n\n'
            "data: {this is not json\n\n"
            'data: {"choices": [{"delta": {"content": "after"}}]}\n\n'
            'data: {"choices": [{"delta": {}, "finish_reason": "stop"}]}\n\n'
            "data: [DONE]\n\n"
        )
        events, _ = await _run(full_stack, self._provider(body), [Message(role="user", content="hi")])

        assert [e.event for e in events] == ["content", "content", "done"]
        assert "".join(e.payload["content"] for e in events[:2]) == "before after"
