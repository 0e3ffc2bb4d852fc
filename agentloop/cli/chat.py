"""Interactive chat session handler."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from rich.console import Console

from agentloop.cli.output import OutputFormatter
from agentloop.config import AgentLoopConfig
from agentloop.llm.providers.base import Provider
from agentloop.llm.types import Message
from agentloop.orchestrator.core import Orchestrator, RunOutcome
from agentloop.orchestrator.notifications import NotificationChannel, is_terminal
from agentloop.orchestrator.runner import BackgroundRun
from agentloop.prompts.system import build_system_prompt
from agentloop.tools.profiles import build_registry
from agentloop.tools.registry import ToolRegistry

POLL_INTERVAL = 0.05


class ChatHandler:
    """
    Drives turn-loop runs for the CLI and renders their notifications.

    The transcript lives here, across inputs.  Each input gets a fresh tool
    registry and a fresh background run; this object only drains the channel.
    """

    def __init__(
        self,
        cfg: AgentLoopConfig,
        provider: Provider,
        console: Console | None = None,
        registry_factory: Callable[[], ToolRegistry] | None = None,
    ) -> None:
        self.cfg = cfg
        self.provider = provider
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.registry_factory = registry_factory or self._default_registry
        self.transcript: list[Message] = []
        self._running = True

    def _default_registry(self) -> ToolRegistry:
        return build_registry(self.cfg.tools, self.cfg.batch, self.cfg.plugins)

    def _system_prompt(self, registry: ToolRegistry) -> str:
        if self.cfg.loop.system_prompt:
            return self.cfg.loop.system_prompt
        return build_system_prompt(
            tools=registry.list(),
            cwd=self.cfg.tools.root or Path.cwd(),
        )

    def make_orchestrator(self) -> Orchestrator:
        registry = self.registry_factory()
        return Orchestrator(
            self.provider,
            registry,
            NotificationChannel(),
            max_turns=self.cfg.loop.max_turns,
            tool_timeout=self.cfg.loop.tool_timeout_seconds,
            system_prompt=self._system_prompt(registry),
        )

    def handle_input(self, user_input: str) -> RunOutcome | None:
        """Run one user message through the loop, streaming output as it comes."""
        self.transcript.append(Message.user(user_input))
        run = BackgroundRun(self.make_orchestrator(), self.transcript).start()

        try:
            while True:
                note = run.channel.get(timeout=POLL_INTERVAL)
                if note is not None:
                    self.formatter.render_notification(note)
                    if is_terminal(note):
                        break
                elif not run.is_alive():
                    for note in run.channel.drain():
                        self.formatter.render_notification(note)
                    break
        except KeyboardInterrupt:
            run.stop()
            self.console.print("\n[yellow]Stopped.[/yellow]")

        return run.join()

    def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        cmd = command.strip().split(None, 1)[0].lower()

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/tools":
            self.formatter.format_tool_list(self.registry_factory().list())
            return True

        if cmd == "/history":
            self.formatter.format_transcript(self.transcript)
            return True

        if cmd == "/reset":
            self.transcript.clear()
            self.console.print("[dim]Conversation cleared.[/dim]")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit     - Exit the chat\n"
                "  /tools    - List available tools\n"
                "  /history  - Show the conversation so far\n"
                "  /reset    - Start a new conversation\n"
                "  /help     - Show this help\n"
                "  Ctrl-C while the assistant is working stops the current run.\n"
            )
            return True

        return False

    def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]agentloop[/bold]\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = input("you> ").strip()
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/") and self.handle_command(user_input):
                continue

            self.console.print("[dim]assistant>[/dim] ", end="")
            self.handle_input(user_input)
