"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from kubeassist.backends.base import ClusterInfo
from kubeassist.relay.events import (
    EVENT_CONTENT,
    EVENT_ERROR,
    EVENT_TOOL_CALL,
    EVENT_TOOL_RESULT,
    ProgressEvent,
)
from kubeassist.tools.base import Tool, ToolRisk
from kubeassist.types import Outcome

RISK_COLORS = {
    ToolRisk.READ_ONLY: "green",
    ToolRisk.WRITE: "yellow",
    ToolRisk.DESTRUCTIVE: "red",
}


def _short(value: Any, limit: int = 200) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


class OutputFormatter:
    """Rich-based output formatting for the kubeassist CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_tool_list(self, tools: list[Tool]) -> None:
        table = Table(title="Cluster Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Risk", no_wrap=True)
        table.add_column("Mutating", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            color = RISK_COLORS.get(t.risk_level, "white")
            risk_text = Text(t.risk_level.name, style=color)
            table.add_row(t.name, risk_text, "yes" if t.mutating else "no", t.description)

        self.console.print(table)

    def format_tool_info(self, tool: Tool) -> None:
        color = RISK_COLORS.get(tool.risk_level, "white")
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n"
            f"[dim]Risk:[/dim] [{color}]{tool.risk_level.name}[/{color}]\n"
            f"[dim]Requires confirmation:[/dim] {tool.mutating}\n\n"
            f"{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(tool.to_openai_schema()["function"]["parameters"], indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_config(self, config: dict) -> None:
        text = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(text, "json", theme="monokai"))

    def format_cluster(self, cluster: ClusterInfo) -> None:
        version = f" ({cluster.version})" if cluster.version else ""
        self.console.print(f"[bold]Cluster:[/bold] {cluster.name}{version} [dim]id={cluster.id}[/dim]")

    def format_event(self, event: ProgressEvent) -> None:
        """Render one progress event as it streams in."""
        payload = event.payload
        if event.event == EVENT_CONTENT:
            self.console.print(payload.get("content", ""), end="", markup=False, highlight=False)
        elif event.event == EVENT_TOOL_CALL:
            self.console.print(
                f"\n  [yellow]>[/yellow] [bold]{payload.get('name')}[/bold] "
                f"[dim]{escape(_short(payload.get('arguments'), 120))}[/dim]"
            )
        elif event.event == EVENT_TOOL_RESULT:
            result = payload.get("result")
            if isinstance(result, dict) and result.get("status") == Outcome.AWAITING_CONFIRMATION:
                status = "[magenta]AWAITING CONFIRMATION[/magenta]"
            elif isinstance(result, dict) and "error" in result:
                status = "[red]FAILED[/red]"
            else:
                status = "[green]OK[/green]"
            name = escape(f"[{payload.get('name')}]")
            self.console.print(f"  {name} {status}: {escape(_short(result))}")
        elif event.event == EVENT_ERROR:
            self.console.print(f"\n[red]Error:[/red] {escape(str(payload.get('error')))}")

    def format_confirmation(self, request: dict) -> None:
        args = {k: v for k, v in request.items() if k not in ("status", "message", "action")}
        parts = [
            "[bold yellow]Action requires confirmation[/bold yellow]\n",
            f"  [bold]Action:[/bold]  {request.get('action')}",
            f"  [bold]Message:[/bold] {escape(str(request.get('message', '')))}",
            "  [bold]Args:[/bold]",
        ]
        self.console.print("\n".join(parts))
        self.console.print(Syntax(json.dumps(args, indent=2, default=str), "json", theme="monokai"))
