from agentloop.tools.builtin.files import (
    EditFileTool,
    GlobTool,
    MultiEditTool,
    ReadFileTool,
    WriteFileTool,
)

__all__ = [
    "EditFileTool",
    "GlobTool",
    "MultiEditTool",
    "ReadFileTool",
    "WriteFileTool",
]
