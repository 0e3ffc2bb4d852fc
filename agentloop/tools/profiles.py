"""
Registry construction for the active profile.

A profile is a config overlay; its ``tools.enabled`` / ``tools.disabled``
lists pick the subset of built-in tools the model sees.  ``build_registry``
returns a brand new registry every time it is called, so each turn loop run
and each batch fan-out works on its own snapshot.
"""

from __future__ import annotations

import logging
from functools import partial
from pathlib import Path

from agentloop.config import BatchConfig, PluginsConfig, ToolsConfig
from agentloop.tools.base import Tool
from agentloop.tools.batch import BATCH_TOOL_NAME, BatchTool
from agentloop.tools.builtin import (
    EditFileTool,
    GlobTool,
    MultiEditTool,
    ReadFileTool,
    WriteFileTool,
)
from agentloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

BUILTIN_TOOLS: dict[str, type] = {
    "read_file": ReadFileTool,
    "write_file": WriteFileTool,
    "edit_file": EditFileTool,
    "multi_edit": MultiEditTool,
    "glob": GlobTool,
}


def _wanted(name: str, tools_cfg: ToolsConfig) -> bool:
    if name in tools_cfg.disabled:
        return False
    return not tools_cfg.enabled or name in tools_cfg.enabled


def builtin_tools(root: str | Path | None = None) -> list[Tool]:
    return [cls(root) for cls in BUILTIN_TOOLS.values()]


def build_registry(
    tools_cfg: ToolsConfig | None = None,
    batch_cfg: BatchConfig | None = None,
    plugins_cfg: PluginsConfig | None = None,
    *,
    root: str | Path | None = None,
    depth: int = 0,
) -> ToolRegistry:
    """
    Build a fresh registry for one profile.

    ``batch_run`` is included only while ``depth < batch_cfg.max_depth``;
    each ``batch_run`` execution asks for a snapshot one level deeper.  The
    enabled and disabled lists apply to plugin tools as well as built-ins.
    """
    tools_cfg = tools_cfg or ToolsConfig()
    batch_cfg = batch_cfg or BatchConfig()

    root = root or tools_cfg.root or None
    registry = ToolRegistry()
    for tool in builtin_tools(root):
        registry.register(tool)

    if plugins_cfg is not None:
        loaded = registry.load_plugins(
            enabled=plugins_cfg.enabled,
            allow_distributions=set(plugins_cfg.allow_distributions) or None,
            allow_tools=set(plugins_cfg.allow_tools) or None,
        )
        if loaded:
            logger.debug("Loaded %d plugin tool(s)", loaded)

    if depth < batch_cfg.max_depth:
        factory = partial(
            _nested_registry, tools_cfg, batch_cfg, plugins_cfg, root
        )
        registry.register(
            BatchTool(
                factory,
                depth=depth,
                max_workers=batch_cfg.max_workers or None,
            )
        )

    return registry.subset(name for name in registry.names() if _wanted(name, tools_cfg))


def _nested_registry(
    tools_cfg: ToolsConfig,
    batch_cfg: BatchConfig,
    plugins_cfg: PluginsConfig | None,
    root: str | Path | None,
    depth: int,
) -> ToolRegistry:
    return build_registry(tools_cfg, batch_cfg, plugins_cfg, root=root, depth=depth)
