"""HTTP surface: FastAPI app streaming chat progress as server-sent events."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable, Literal, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from kubeassist.backends.base import BackendError
from kubeassist.backends.directory import ClusterDirectory, ClusterNotFound
from kubeassist.cancellation import CancelToken, OperationCancelled
from kubeassist.config import (
    AIProviderConfig,
    ChatConfig,
    ConfigurationError,
    KubeAssistConfig,
)
from kubeassist.llm.errors import ProviderError
from kubeassist.llm.providers.base import Provider
from kubeassist.llm.providers.openai_compat import OpenAICompatProvider
from kubeassist.llm.types import Message, ToolCallRequest
from kubeassist.orchestrator.core import Orchestrator
from kubeassist.prompts.system import build_system_prompt
from kubeassist.relay.sse import relay_events
from kubeassist.tools.audit import AuditLog
from kubeassist.tools.base import ToolScope
from kubeassist.tools.executor import ToolExecutor
from kubeassist.tools.kubernetes import default_registry
from kubeassist.tools.policy import ToolPolicy, parse_risk
from kubeassist.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[AIProviderConfig, ChatConfig], Provider]

ACTOR_HEADER = "x-remote-user"


# --- Models ---

class FunctionCall(BaseModel):
    name: str = ""
    arguments: str = ""


class ToolCallItem(BaseModel):
    id: str
    type: str = "function"
    function: FunctionCall


class ChatMessageIn(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str] = ""
    tool_calls: Optional[list[ToolCallItem]] = None
    tool_call_id: Optional[str] = None

    def to_message(self) -> Message:
        calls = None
        if self.tool_calls:
            calls = [
                ToolCallRequest(id=tc.id, name=tc.function.name, arguments=tc.function.arguments)
                for tc in self.tool_calls
            ]
        return Message(
            role=self.role,
            content=self.content or "",
            tool_calls=calls,
            tool_call_id=self.tool_call_id,
        )


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn]


def _default_provider_factory(ai: AIProviderConfig, chat: ChatConfig) -> Provider:
    return OpenAICompatProvider.from_config(ai, chat)


def create_app(
    cfg: KubeAssistConfig,
    *,
    directory: ClusterDirectory | None = None,
    registry: ToolRegistry | None = None,
    provider_factory: ProviderFactory | None = None,
    audit: AuditLog | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Collaborators default to the configured ones; tests pass their own.
    """
    directory = directory or ClusterDirectory.from_config(cfg.clusters)
    registry = registry or default_registry()
    provider_factory = provider_factory or _default_provider_factory
    if audit is None:
        audit = AuditLog.from_config(cfg.audit)

    executor = ToolExecutor(
        registry,
        policy=ToolPolicy(max_risk=parse_risk(cfg.chat.max_risk)),
        audit=audit,
        tool_timeout=cfg.chat.tool_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await directory.close()

    app = FastAPI(
        title="kubeassist",
        description="AI assistant for Kubernetes clusters",
        lifespan=lifespan,
    )
    if cfg.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.server.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.state.config = cfg
    app.state.directory = directory
    app.state.executor = executor

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.get("/ai/tools")
    async def list_tools():
        """Tools the assistant may call, after policy."""
        return [
            {
                "name": t.name,
                "description": t.description,
                "risk": t.risk_level.name,
                "mutating": t.mutating,
            }
            for t in executor.visible_tools()
        ]

    @app.post("/ai/test")
    async def test_connection():
        """Send a one-line prompt to the configured model endpoint."""
        try:
            cfg.ai.validate()
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        provider = provider_factory(cfg.ai, cfg.chat)
        token = CancelToken(timeout=float(cfg.ai.timeout_seconds))
        try:
            reply = await provider.test_connection(token)
        except (ProviderError, OperationCancelled) as e:
            logger.warning("AI connection test failed: %s", e)
            raise HTTPException(status_code=502, detail=f"connection test failed: {e}")
        return {"ok": True, "model": cfg.ai.model, "reply": reply.content}

    @app.post("/clusters/{cluster_id}/ai/chat")
    async def chat(cluster_id: str, body: ChatRequest, request: Request):
        """Run one chat invocation and stream its progress."""
        if not body.messages:
            raise HTTPException(status_code=400, detail="messages must not be empty")

        try:
            cfg.ai.validate()
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        try:
            cluster = directory.get(cluster_id)
            backend = directory.backend_for(cluster_id)
        except ClusterNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except BackendError as e:
            logger.error("Cluster %s unavailable: %s", cluster_id, e)
            raise HTTPException(status_code=503, detail=str(e))

        token = CancelToken(timeout=cfg.chat.deadline_seconds)
        scope = ToolScope(
            cluster=cluster,
            backend=backend,
            token=token,
            actor=request.headers.get(ACTOR_HEADER) or cfg.chat.actor,
            tool_timeout=cfg.chat.tool_timeout_seconds,
        )
        orchestrator = Orchestrator(
            provider_factory(cfg.ai, cfg.chat),
            executor,
            system_prompt=build_system_prompt(cluster, executor.visible_tools()),
            max_rounds=cfg.chat.max_rounds,
        )
        history = [m.to_message() for m in body.messages]
        logger.info(
            "Chat on cluster %s: %d messages from %s", cluster.id, len(history), scope.actor
        )

        return EventSourceResponse(
            relay_events(orchestrator.run(history, scope), token),
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app
