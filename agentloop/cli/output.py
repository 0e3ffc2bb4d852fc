"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from agentloop.llm.types import Message
from agentloop.orchestrator.notifications import (
    Completed,
    Failed,
    LogLine,
    Notification,
    TextDelta,
)
from agentloop.tools.base import Tool


class OutputFormatter:
    """Rich-based output formatting for the agentloop CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_notification(self, note: Notification) -> None:
        """Render one loop notification as it arrives."""
        if isinstance(note, TextDelta):
            self.console.print(note.text, end="", markup=False, highlight=False)
        elif isinstance(note, LogLine):
            self.console.print()
            self.console.print(
                f"  {note.text[:300]}", style="dim", markup=False, highlight=False
            )
        elif isinstance(note, Completed):
            self.console.print()
        elif isinstance(note, Failed):
            self.console.print()
            self.console.print(f"[red]Error:[/red] {escape(note.message)}", highlight=False)

    def format_tool_list(self, tools: list[Tool]) -> None:
        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            table.add_row(t.name, t.description)

        self.console.print(table)

    def format_tool_info(self, tool: Tool) -> None:
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(tool.schema(), indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_transcript(self, transcript: list[Message]) -> None:
        if not transcript:
            self.console.print("[dim]No messages.[/dim]")
            return

        color_map = {
            "system": "dim",
            "user": "blue",
            "assistant": "green",
            "tool": "cyan",
        }
        for m in transcript:
            color = color_map.get(m.role, "white")
            content = m.text[:100]
            if m.tool_calls:
                calls = ", ".join(f"{tc.name}({tc.arguments[:60]})" for tc in m.tool_calls)
                content = f"{content} -> {calls}" if content else calls
            elif m.tool_call_id:
                content = f"[{m.tool_call_id}] {content}"
            self.console.print(f"  [{color}]{m.role:>10s}[/{color}]  {escape(content)}", highlight=False)

    def format_config(self, config: dict) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))
