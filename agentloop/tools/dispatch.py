"""
Single-invocation tool dispatch.

Every path by which the model runs a tool goes through ``invoke_tool``:
registry lookup, argument parsing, schema validation, then execution.  Each
step converts its failure into an error ``ToolResult`` instead of raising, so
a bad call is reported back into the conversation and the loop carries on.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from agentloop.errors import ToolError
from agentloop.tools.registry import ToolRegistry
from agentloop.tools.validation import ToolValidator
from agentloop.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)


def parse_arguments(raw: str | dict | None) -> dict[str, Any]:
    """
    Parse a raw argument string into a dict.

    Blank input means "no arguments".  Raises ``ValueError`` for anything
    that is not a JSON object.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not raw.strip():
        return {}
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value


def not_found(name: str) -> ToolResult:
    return ToolResult.fail(
        name, f"Error: Tool '{name}' not found", ErrorCode.NOT_FOUND
    )


def invoke_tool(
    registry: ToolRegistry,
    name: str,
    arguments: str | dict | None,
) -> ToolResult:
    """Resolve *name* in *registry* and run it with *arguments*.  Never raises."""
    tool = registry.get(name)
    if tool is None:
        return not_found(name)

    try:
        args = parse_arguments(arguments)
    except ValueError as exc:
        # json.JSONDecodeError is a ValueError subclass.
        return ToolResult.fail(
            name, f"Error parsing arguments JSON: {exc}", ErrorCode.PARSE_ERROR
        )

    valid, error_msg = ToolValidator.validate(tool, args)
    if not valid:
        return ToolResult.fail(
            name,
            f"Error validating arguments: {error_msg}",
            ErrorCode.VALIDATION_ERROR,
        )

    try:
        output = tool.execute(args)
    except ToolError as exc:
        return ToolResult.fail(
            name, f"Error executing tool: {exc}", ErrorCode.TOOL_ERROR
        )
    except Exception as exc:
        logger.exception("Tool %s raised an unexpected exception", name)
        return ToolResult.fail(
            name,
            f"Error executing tool: {type(exc).__name__}: {exc}",
            ErrorCode.TOOL_EXCEPTION,
        )

    return ToolResult.ok(name, output if isinstance(output, str) else str(output))
