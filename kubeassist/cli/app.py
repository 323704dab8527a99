"""
Main CLI application for kubeassist.

Usage:
    kubeassist serve [--host HOST] [--port PORT]
    kubeassist chat CLUSTER [PROMPT]
    kubeassist tools list|info
    kubeassist config show|validate
    kubeassist ai test
    kubeassist version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from kubeassist import __version__
from kubeassist.config import ConfigurationError, KubeAssistConfig, find_config_path, load_config

app = typer.Typer(name="kubeassist", help="kubeassist - AI assistant for Kubernetes clusters")
tools_app = typer.Typer(help="Tool catalog")
config_app = typer.Typer(help="Configuration management")
ai_app = typer.Typer(help="Model endpoint checks")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")
app.add_typer(ai_app, name="ai")

console = Console()

_options: dict = {"config": None, "profile": None}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _config_path() -> Path | None:
    return _options["config"] or find_config_path()


def _load() -> KubeAssistConfig:
    try:
        return load_config(_config_path(), profile=_options["profile"])
    except ConfigurationError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


@app.callback()
def main_options(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """kubeassist - AI assistant for Kubernetes clusters."""
    _options["config"] = config
    _options["profile"] = profile
    setup_logging(verbose)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
):
    """Run the HTTP server."""
    import uvicorn

    from kubeassist.server.app import create_app

    cfg = _load()
    if host:
        cfg.server.host = host
    if port:
        cfg.server.port = port

    try:
        cfg.ai.validate()
    except ConfigurationError as e:
        console.print(f"[yellow]Warning:[/yellow] {e}; chat requests will be rejected.")

    uvicorn.run(create_app(cfg), host=cfg.server.host, port=cfg.server.port, log_config=None)


@app.command()
def chat(
    cluster: str = typer.Argument(..., help="Cluster ID"),
    prompt: Optional[str] = typer.Argument(None, help="One-shot prompt; omit for an interactive session"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Never prompt for confirmations"),
):
    """Chat with the assistant about one cluster."""
    from kubeassist.backends.base import BackendError
    from kubeassist.backends.directory import ClusterDirectory
    from kubeassist.cancellation import CancelToken
    from kubeassist.cli.chat import ChatHandler
    from kubeassist.llm.providers.openai_compat import OpenAICompatProvider
    from kubeassist.orchestrator.core import Orchestrator
    from kubeassist.prompts.system import build_system_prompt
    from kubeassist.tools.audit import AuditLog
    from kubeassist.tools.base import ToolScope
    from kubeassist.tools.executor import ToolExecutor
    from kubeassist.tools.kubernetes import default_registry
    from kubeassist.tools.policy import ToolPolicy, parse_risk

    cfg = _load()
    try:
        cfg.ai.validate()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    directory = ClusterDirectory.from_config(cfg.clusters)
    try:
        info = directory.get(cluster)
        backend = directory.backend_for(cluster)
    except BackendError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    executor = ToolExecutor(
        default_registry(),
        policy=ToolPolicy(max_risk=parse_risk(cfg.chat.max_risk)),
        audit=AuditLog.from_config(cfg.audit),
        tool_timeout=cfg.chat.tool_timeout_seconds,
    )
    orchestrator = Orchestrator(
        OpenAICompatProvider.from_config(cfg.ai, cfg.chat),
        executor,
        system_prompt=build_system_prompt(info, executor.visible_tools()),
        max_rounds=cfg.chat.max_rounds,
    )

    def new_scope() -> ToolScope:
        return ToolScope(
            cluster=info,
            backend=backend,
            token=CancelToken(timeout=cfg.chat.deadline_seconds),
            actor=cfg.chat.actor,
            tool_timeout=cfg.chat.tool_timeout_seconds,
        )

    handler = ChatHandler(orchestrator, new_scope, console, interactive=not yes)
    handler.formatter.format_cluster(info)

    async def _run():
        try:
            if prompt:
                await handler.handle_input(prompt)
            else:
                await handler.run_loop()
        finally:
            await directory.close()

    asyncio.run(_run())


@tools_app.command("list")
def tools_list(
    max_risk: Optional[str] = typer.Option(None, help="Max risk level filter"),
):
    """List cluster tools."""
    from kubeassist.cli.output import OutputFormatter
    from kubeassist.tools.kubernetes import default_registry
    from kubeassist.tools.policy import parse_risk

    try:
        risk_filter = parse_risk(max_risk) if max_risk else None
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    tools = default_registry().list(max_risk=risk_filter)
    OutputFormatter(console).format_tool_list(tools)


@tools_app.command("info")
def tools_info(tool_name: str = typer.Argument(..., help="Tool name")):
    """Show tool details and schema."""
    from kubeassist.cli.output import OutputFormatter
    from kubeassist.tools.kubernetes import default_registry

    tool = default_registry().get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show():
    """Show effective config."""
    from kubeassist.cli.output import OutputFormatter

    OutputFormatter(console).format_config(_load().to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and report whether the assistant can run."""
    from kubeassist.tools.policy import parse_risk

    config_path = _config_path()
    cfg = _load()
    try:
        parse_risk(cfg.chat.max_risk)
    except ValueError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path and config_path.is_file():
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Model: {cfg.ai.model} at {cfg.ai.endpoint}")
    console.print(f"  Max risk: {cfg.chat.max_risk}, max rounds: {cfg.chat.max_rounds}")
    clusters = ", ".join(c.id for c in cfg.clusters) or "demo (none configured)"
    console.print(f"  Clusters: {clusters}")

    try:
        cfg.ai.validate()
    except ConfigurationError as e:
        console.print(f"  [yellow]Assistant unavailable:[/yellow] {e}")
        raise typer.Exit(1)


@ai_app.command("test")
def ai_test():
    """Send a one-line prompt to the configured model endpoint."""
    from kubeassist.cancellation import CancelToken, OperationCancelled
    from kubeassist.llm.errors import ProviderError
    from kubeassist.llm.providers.openai_compat import OpenAICompatProvider

    cfg = _load()
    try:
        cfg.ai.validate()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    provider = OpenAICompatProvider.from_config(cfg.ai, cfg.chat)

    async def _run():
        return await provider.test_connection(CancelToken(timeout=float(cfg.ai.timeout_seconds)))

    try:
        reply = asyncio.run(_run())
    except (ProviderError, OperationCancelled) as e:
        console.print(f"[red]Connection test failed:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]OK[/green] {cfg.ai.model}: {reply.content.strip()}")


@app.command()
def version():
    """Show version."""
    console.print(f"kubeassist v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
