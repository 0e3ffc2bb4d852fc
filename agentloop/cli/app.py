"""
Main CLI application for agentloop.

Usage:
    agentloop run PROMPT [--profile NAME] [--max-turns N] [--verbose]
    agentloop chat [--profile NAME] [--verbose]
    agentloop tools list|info
    agentloop config show|validate
    agentloop version
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from agentloop.config import AgentLoopConfig, load_config
from agentloop.errors import ConfigError

app = typer.Typer(name="agentloop", help="agentloop - streaming tool-calling agent loop")
tools_app = typer.Typer(help="Tool management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()

__version__ = "0.1.0"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "agentloop.yaml",
        Path.cwd() / "agentloop.yml",
        Path.home() / ".config" / "agentloop" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _load(profile: str | None = None, overrides: dict | None = None) -> AgentLoopConfig:
    try:
        return load_config(_get_config_path(), profile=profile, cli_overrides=overrides)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _setup_provider(cfg: AgentLoopConfig):
    """Build an LLM router with the configured provider registered and active."""
    from agentloop.llm.providers.openai_compat import OpenAICompatProvider
    from agentloop.llm.router import LLMRouter

    router = LLMRouter()
    api_key = os.environ.get(cfg.llm.api_key_env, "not-needed")
    llm_provider = OpenAICompatProvider(
        url=cfg.llm.api_base or "http://localhost:3333/v1",
        model=cfg.llm.model,
        api_key=api_key,
        timeout=float(cfg.llm.timeout_seconds),
        max_retries=cfg.llm.max_retries,
    )
    router.register_provider(cfg.llm.name, llm_provider)
    return router


def _make_handler(cfg: AgentLoopConfig):
    from agentloop.cli.chat import ChatHandler

    return ChatHandler(cfg, _setup_provider(cfg), console=console)


def _build_registry(cfg: AgentLoopConfig):
    from agentloop.tools.profiles import build_registry

    return build_registry(cfg.tools, cfg.batch, cfg.plugins)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def run(
    prompt: str = typer.Argument(..., help="Prompt to send"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    max_turns: Optional[int] = typer.Option(None, "--max-turns", help="Turn ceiling for this run"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run a single prompt to completion and exit."""
    _configure_logging(verbose)
    overrides = {"loop.max_turns": max_turns} if max_turns is not None else None
    cfg = _load(profile, overrides)

    handler = _make_handler(cfg)
    outcome = handler.handle_input(prompt)
    if outcome is None or not outcome.completed:
        raise typer.Exit(1)


@app.command()
def chat(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Start an interactive chat session."""
    _configure_logging(verbose)
    cfg = _load(profile)
    _make_handler(cfg).run_loop()


@tools_app.command("list")
def tools_list(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """List the tools a run would see."""
    from agentloop.cli.output import OutputFormatter

    cfg = _load(profile)
    formatter = OutputFormatter(console)
    formatter.format_tool_list(_build_registry(cfg).list())


@tools_app.command("info")
def tools_info(
    tool_name: str = typer.Argument(..., help="Tool name"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show tool details and schema."""
    from agentloop.cli.output import OutputFormatter

    cfg = _load(profile)
    tool = _build_registry(cfg).get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {escape(tool_name)}")
        raise typer.Exit(1)

    formatter = OutputFormatter(console)
    formatter.format_tool_info(tool)


@config_app.command("show")
def config_show(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show effective config."""
    from agentloop.cli.output import OutputFormatter

    cfg = _load(profile)
    formatter = OutputFormatter(console)
    formatter.format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Validate config and show a summary."""
    config_path = _get_config_path()
    try:
        cfg = load_config(config_path, profile=profile)
    except ConfigError as e:
        console.print(f"[red]Config validation failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  LLM provider: {cfg.llm.name} ({cfg.llm.model})")
    console.print(f"  Max turns: {cfg.loop.max_turns}")
    console.print(f"  Batch depth: {cfg.batch.max_depth}")
    console.print(f"  Plugins enabled: {cfg.plugins.enabled}")


@app.command()
def version():
    """Show version."""
    console.print(f"agentloop v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
