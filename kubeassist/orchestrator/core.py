"""
Orchestrator core -- the chat loop that ties everything together.

One ``run`` call handles one chat invocation:
1. Prepends the system prompt to the caller's history
2. Streams one model round with the tool catalog
3. Forwards text deltas as they arrive and merges tool-call fragments
4. Runs requested tools in the order they were first seen
5. Feeds the results back and loops, up to ``max_rounds`` tool rounds
6. Ends every invocation with exactly one ``done`` event

State machine::

    ROUND_START -> STREAMING -> TOOLS_PENDING -> ROUND_START ...
                             -> FINISHED
    terminal: FINISHED, ABORTED (round limit), FAILED, CANCELLED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator

from kubeassist.cancellation import OperationCancelled
from kubeassist.llm.errors import ProviderError
from kubeassist.llm.providers.base import Provider
from kubeassist.llm.tool_call_assembler import ToolCallAssembler
from kubeassist.llm.types import (
    FINISH_TOOL_CALLS,
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_TOOL,
    Message,
)
from kubeassist.relay.events import (
    ProgressEvent,
    content_event,
    done_event,
    error_event,
    tool_call_event,
    tool_result_event,
)
from kubeassist.tools.base import ToolScope
from kubeassist.tools.executor import ToolExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 10
ROUND_LIMIT_MESSAGE = "tool call round limit exceeded"


class ChatState(str, Enum):
    ROUND_START = "round_start"
    STREAMING = "streaming"
    TOOLS_PENDING = "tools_pending"
    FINISHED = "finished"
    ABORTED = "aborted"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {ChatState.FINISHED, ChatState.ABORTED, ChatState.FAILED, ChatState.CANCELLED}
)


@dataclass
class RoundState:
    """Text and tool-call fragments accumulated during one round."""

    content_parts: list[str] = field(default_factory=list)
    assembler: ToolCallAssembler = field(default_factory=ToolCallAssembler)
    finish_reason: str | None = None

    @property
    def content(self) -> str:
        return "".join(self.content_parts)


@dataclass
class Conversation:
    """Message list and outcome of one invocation."""

    messages: list[Message] = field(default_factory=list)
    rounds: int = 0
    state: ChatState = ChatState.ROUND_START
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class Orchestrator:
    """
    Parameters
    ----------
    provider : Provider
        Chat-completion provider used for every round.
    executor : ToolExecutor
        Runs tool calls and supplies the tool catalog.
    system_prompt : str
        Prepended to the caller's history.
    max_rounds : int
        Tool-invoking rounds allowed before the invocation is aborted.
    """

    def __init__(
        self,
        provider: Provider,
        executor: ToolExecutor,
        system_prompt: str = "",
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.provider = provider
        self.executor = executor
        self.system_prompt = system_prompt
        self.max_rounds = max_rounds

    def _initial_messages(self, history: list[Message]) -> list[Message]:
        messages: list[Message] = []
        if self.system_prompt:
            messages.append(Message(role=ROLE_SYSTEM, content=self.system_prompt))
        messages.extend(history)
        return messages

    @staticmethod
    def _transition(conv: Conversation, state: ChatState) -> None:
        logger.debug("chat state %s -> %s (round %d)", conv.state.value, state.value, conv.rounds)
        conv.state = state

    def _fail(self, conv: Conversation, message: str) -> list[ProgressEvent]:
        self._transition(conv, ChatState.FAILED)
        conv.error = message
        return [error_event(message), done_event()]

    async def run(
        self,
        history: list[Message],
        scope: ToolScope,
        conversation: Conversation | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Drive the conversation and yield progress events.

        *conversation*, when given, is filled in place so the caller can
        inspect the final message list and state afterwards.
        """
        conv = conversation if conversation is not None else Conversation()
        conv.messages = self._initial_messages(history)
        token = scope.token
        tools = self.executor.catalog() or None

        try:
            while True:
                self._transition(conv, ChatState.ROUND_START)
                rnd = RoundState()

                try:
                    stream = await self.provider.open_stream(conv.messages, tools, token)
                except ProviderError as exc:
                    logger.error("Model request failed: %s", exc)
                    for event in self._fail(conv, str(exc)):
                        yield event
                    return

                async with stream:
                    self._transition(conv, ChatState.STREAMING)
                    async for event in stream:
                        if event.error is not None:
                            logger.error("Model stream failed: %s", event.error)
                            for ev in self._fail(conv, f"model stream failed: {event.error}"):
                                yield ev
                            return
                        if event.delta:
                            rnd.content_parts.append(event.delta)
                            yield content_event(event.delta)
                        for delta in event.tool_deltas:
                            rnd.assembler.feed(delta)
                        if event.finish_reason:
                            rnd.finish_reason = event.finish_reason
                            break
                        if event.done:
                            break

                # A stream interrupted by the token ends early without an event.
                token.check()

                calls = rnd.assembler.calls()
                if rnd.finish_reason != FINISH_TOOL_CALLS or not calls:
                    conv.messages.append(Message(role=ROLE_ASSISTANT, content=rnd.content))
                    self._transition(conv, ChatState.FINISHED)
                    yield done_event()
                    return

                conv.messages.append(
                    Message(role=ROLE_ASSISTANT, content=rnd.content, tool_calls=calls)
                )
                self._transition(conv, ChatState.TOOLS_PENDING)

                for call in calls:
                    token.check()
                    yield tool_call_event(call.id, call.name, call.arguments)
                    result = await self.executor.execute(
                        call.name, call.arguments, scope, tool_call_id=call.id
                    )
                    logger.info(
                        "Tool %s (%s) -> %s", call.name, call.id, result.outcome
                    )
                    content = result.content
                    yield tool_result_event(call.id, call.name, content)
                    conv.messages.append(
                        Message(role=ROLE_TOOL, content=content, tool_call_id=call.id)
                    )

                conv.rounds += 1
                if conv.rounds >= self.max_rounds:
                    self._transition(conv, ChatState.ABORTED)
                    conv.error = ROUND_LIMIT_MESSAGE
                    logger.warning("Aborting chat after %d tool rounds", conv.rounds)
                    yield error_event(ROUND_LIMIT_MESSAGE)
                    yield done_event()
                    return

        except OperationCancelled as exc:
            if exc.deadline:
                logger.warning("Chat deadline exceeded in state %s", conv.state.value)
                for event in self._fail(conv, exc.reason):
                    yield event
                return
            logger.info("Chat cancelled in state %s", conv.state.value)
            self._transition(conv, ChatState.CANCELLED)
            conv.error = exc.reason
            yield done_event()
