"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
from typing import Callable

from rich.console import Console

from kubeassist.cli.output import OutputFormatter
from kubeassist.llm.types import ROLE_USER, Message
from kubeassist.orchestrator.core import Conversation, Orchestrator
from kubeassist.relay.events import EVENT_TOOL_RESULT
from kubeassist.tools.base import ToolScope
from kubeassist.types import Outcome

CONFIRM_REPLY = "Yes, I confirm. Go ahead with exactly that action."
DECLINE_REPLY = "No, do not perform that action."


class ChatHandler:
    """
    Manages the interactive chat loop against one cluster.

    History is kept locally and sent in full with every invocation, like an
    HTTP client would.  When a mutating tool comes back awaiting
    confirmation, the user is asked and the answer is sent as the next turn.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        scope_factory: Callable[[], ToolScope],
        console: Console | None = None,
        *,
        interactive: bool = True,
    ) -> None:
        self.orchestrator = orchestrator
        self.scope_factory = scope_factory
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.interactive = interactive
        self.history: list[Message] = []
        self._running = True

    async def ask(self, prompt: str) -> str:
        return await asyncio.get_running_loop().run_in_executor(
            None, lambda: input(prompt).strip()
        )

    async def confirm(self, request: dict) -> bool:
        """Rich-formatted confirmation prompt for a pending cluster change."""
        self.formatter.format_confirmation(request)
        try:
            response = await self.ask("\n  Proceed? [y/N]: ")
        except (EOFError, KeyboardInterrupt):
            return False
        return response.lower() in ("y", "yes")

    async def handle_input(self, user_input: str) -> Conversation:
        """Run one invocation for *user_input* and stream its events."""
        self.history.append(Message(role=ROLE_USER, content=user_input))
        conv = Conversation()
        pending: list[dict] = []

        async for event in self.orchestrator.run(list(self.history), self.scope_factory(), conv):
            self.formatter.format_event(event)
            if event.event == EVENT_TOOL_RESULT:
                result = event.payload.get("result")
                if isinstance(result, dict) and result.get("status") == Outcome.AWAITING_CONFIRMATION:
                    pending.append(result)
        self.console.print()

        offset = 1 if self.orchestrator.system_prompt else 0
        self.history = conv.messages[offset:]

        if pending and self.interactive:
            confirmed = all([await self.confirm(request) for request in pending])
            reply = CONFIRM_REPLY if confirmed else DECLINE_REPLY
            self.console.print(f"[dim]you>[/dim] {reply}")
            return await self.handle_input(reply)
        return conv

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        cmd = command.strip().split(None, 1)[0].lower()

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/reset":
            self.history.clear()
            self.console.print("[dim]History cleared.[/dim]")
            return True

        if cmd == "/tools":
            self.formatter.format_tool_list(self.orchestrator.executor.visible_tools())
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit     - Exit the chat\n"
                "  /reset    - Forget the conversation so far\n"
                "  /tools    - List available tools\n"
                "  /help     - Show this help\n"
            )
            return True

        return False

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]kubeassist[/bold] - Kubernetes operations assistant\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await self.ask("you> ")
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]assistant>[/dim] ", end="")
            await self.handle_input(user_input)
