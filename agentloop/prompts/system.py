"""System prompt builder."""

from __future__ import annotations

from pathlib import Path

from agentloop.tools.base import Tool
from agentloop.tools.batch import BATCH_TOOL_NAME


def build_system_prompt(
    tools: list[Tool] | None = None,
    cwd: str | Path | None = None,
    extra_sections: list[str] | None = None,
) -> str:
    """
    Build the default system prompt.

    Assembles the assistant preamble, tool discipline, the tool list and the
    working directory into a single prompt string.
    """
    sections: list[str] = []

    sections.append(
        "You are a capable assistant with direct access to tools. "
        "When a request needs information or changes you can get with a tool, "
        "call the tool instead of asking the user to do it."
    )

    sections.append(TOOL_DISCIPLINE_SECTION)

    if tools:
        tool_lines = [f"- **{t.name}**: {t.description}" for t in tools]
        sections.append("## Available Tools\n\n" + "\n".join(tool_lines))
        if any(t.name == BATCH_TOOL_NAME for t in tools):
            sections.append(BATCH_SECTION)

    if cwd:
        sections.append(
            f"## Working Directory\n\nCurrent working directory: `{cwd}`. "
            "Relative paths in file operations resolve against it."
        )

    if extra_sections:
        sections.extend(extra_sections)

    return "\n\n".join(sections)


TOOL_DISCIPLINE_SECTION = """## Tool Discipline

- Only pass arguments that match the tool's parameter schema, with the correct types.
- If a tool returns an error, read it, fix the call and try again, or explain the failure.
- Don't repeat the same failing call unchanged."""

BATCH_SECTION = f"""## Parallel Execution

- Use `{BATCH_TOOL_NAME}` to run several independent tool calls at once.
- Results come back as a JSON array in the same order as the requests.
- Don't batch calls that depend on each other's output."""
