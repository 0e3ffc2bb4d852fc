"""
Parallel fan-out of tool invocations.

``BatchDispatcher`` runs a list of ``(tool_name, arguments)`` pairs on a
thread pool against a read-only registry snapshot.  Workers share exactly one
piece of mutable state, the result buffer, and take its lock only for the
append.  Results are handed back in input order regardless of which worker
finished first.

``BatchTool`` exposes the dispatcher to the model as ``batch_run``.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Sequence

from agentloop.errors import ToolError
from agentloop.tools.base import Tool
from agentloop.tools.dispatch import invoke_tool
from agentloop.tools.registry import ToolRegistry
from agentloop.types import ToolResult

logger = logging.getLogger(__name__)

BATCH_TOOL_NAME = "batch_run"

Invocation = tuple[str, Any]


def default_workers() -> int:
    return os.cpu_count() or 1


class BatchDispatcher:
    """
    Execute tool invocations concurrently.

    Parameters
    ----------
    registry:
        Snapshot the invocations resolve against.  It is only read.
    max_workers:
        Upper bound on worker threads; ``None`` or ``0`` means one per CPU.
    """

    def __init__(self, registry: ToolRegistry, max_workers: int | None = None) -> None:
        self.registry = registry
        self.max_workers = max_workers or default_workers()

    def execute(self, invocations: Sequence[Invocation]) -> list[ToolResult]:
        if not invocations:
            return []

        results: list[tuple[int, ToolResult]] = []
        lock = threading.Lock()

        def run_one(position: int, name: str, arguments: Any) -> None:
            result = invoke_tool(self.registry, name, arguments)
            with lock:
                results.append((position, result))

        workers = min(self.max_workers, len(invocations))
        logger.debug("Dispatching %d invocation(s) on %d worker(s)", len(invocations), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batch") as pool:
            futures = [
                pool.submit(run_one, i, name, arguments)
                for i, (name, arguments) in enumerate(invocations)
            ]
            for future in futures:
                # invoke_tool never raises; this only re-raises interpreter
                # level failures such as MemoryError.
                future.result()

        results.sort(key=lambda item: item[0])
        return [result for _, result in results]


class BatchTool(Tool):
    """
    ``batch_run``: run several tools in parallel.

    Each execution resolves its entries against a fresh snapshot built by
    *registry_factory* at ``depth + 1``.  The factory decides whether that
    snapshot still contains ``batch_run``, which bounds recursive fan-out.
    """

    def __init__(
        self,
        registry_factory: Callable[[int], ToolRegistry],
        *,
        depth: int = 0,
        max_workers: int | None = None,
    ) -> None:
        self._registry_factory = registry_factory
        self.depth = depth
        self.max_workers = max_workers

    @property
    def name(self) -> str:
        return BATCH_TOOL_NAME

    @property
    def description(self) -> str:
        return (
            "Execute multiple tools in parallel. Use this when several "
            "independent operations can run at the same time."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "tools": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "tool": {
                                "type": "string",
                                "description": "The name of the tool to run",
                            },
                            "parameters": {
                                "type": "object",
                                "description": "The arguments for the tool",
                            },
                        },
                        "required": ["tool", "parameters"],
                    },
                },
            },
            "required": ["tools"],
        }

    def execute(self, arguments: dict) -> str:
        entries = arguments.get("tools")
        if not isinstance(entries, list):
            raise ToolError("Missing or invalid 'tools' argument")

        invocations: list[Invocation] = [
            (str(entry.get("tool", "unknown")), entry.get("parameters") or {})
            for entry in entries
        ]
        snapshot = self._registry_factory(self.depth + 1)
        dispatcher = BatchDispatcher(snapshot, self.max_workers)
        results = dispatcher.execute(invocations)
        return json.dumps([r.to_dict() for r in results], indent=2)
