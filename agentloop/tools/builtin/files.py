"""Filesystem tools rooted at a working directory."""

from __future__ import annotations

from pathlib import Path

from agentloop.errors import ToolError
from agentloop.tools.base import Tool
from agentloop.tools.locks import path_lock

MAX_READ_BYTES = 1_000_000
MAX_GLOB_RESULTS = 1000


class _FileTool(Tool):
    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or Path.cwd()).expanduser()

    def _resolve(self, raw: str) -> Path:
        p = Path(raw).expanduser()
        if not p.is_absolute():
            p = self.root / p
        return p


class ReadFileTool(_FileTool):
    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Reads a file from the local filesystem."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The path to the file to read"},
            },
            "required": ["path"],
        }

    def execute(self, arguments: dict) -> str:
        path = self._resolve(arguments["path"])
        try:
            with path.open("r", encoding="utf-8", errors="replace") as f:
                data = f.read(MAX_READ_BYTES + 1)
        except OSError as e:
            raise ToolError(f"Failed to read file: {e}") from e
        if len(data) > MAX_READ_BYTES:
            return data[:MAX_READ_BYTES] + f"\n[truncated at {MAX_READ_BYTES} characters]"
        return data


class WriteFileTool(_FileTool):
    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file, creating parent directories as needed."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The path to the file"},
                "content": {"type": "string", "description": "The content"},
            },
            "required": ["path", "content"],
        }

    def execute(self, arguments: dict) -> str:
        path = self._resolve(arguments["path"])
        with path_lock(path):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(arguments["content"], encoding="utf-8")
            except OSError as e:
                raise ToolError(f"Failed to write: {e}") from e
        return f"File written to {arguments['path']}"


def _apply_edit(content: str, old: str, new: str) -> str:
    if not old:
        raise ToolError("old_string must not be empty")
    if old not in content:
        raise ToolError(f"old_string not found: {old[:80]!r}")
    return content.replace(old, new)


class EditFileTool(_FileTool):
    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return "Replace every occurrence of a string in a file."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path"},
                "old_string": {"type": "string", "description": "Find"},
                "new_string": {"type": "string", "description": "Replace"},
            },
            "required": ["path", "old_string", "new_string"],
        }

    def execute(self, arguments: dict) -> str:
        path = self._resolve(arguments["path"])
        with path_lock(path):
            try:
                content = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ToolError(f"Read fail: {e}") from e
            updated = _apply_edit(content, arguments["old_string"], arguments["new_string"])
            try:
                path.write_text(updated, encoding="utf-8")
            except OSError as e:
                raise ToolError(f"Write fail: {e}") from e
        return f"Edited {arguments['path']}"


class MultiEditTool(_FileTool):
    """Apply several replacements to one file; nothing is written unless all apply."""

    @property
    def name(self) -> str:
        return "multi_edit"

    @property
    def description(self) -> str:
        return (
            "Apply a sequence of string replacements to a single file. "
            "Edits are applied in order and the file is only written if every edit succeeds."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path"},
                "edits": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "properties": {
                            "old_string": {"type": "string"},
                            "new_string": {"type": "string"},
                        },
                        "required": ["old_string", "new_string"],
                    },
                },
            },
            "required": ["path", "edits"],
        }

    def execute(self, arguments: dict) -> str:
        path = self._resolve(arguments["path"])
        edits = arguments["edits"]
        with path_lock(path):
            try:
                content = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ToolError(f"Read fail: {e}") from e
            for n, edit in enumerate(edits, start=1):
                try:
                    content = _apply_edit(content, edit["old_string"], edit["new_string"])
                except ToolError as e:
                    raise ToolError(f"edit {n}: {e}") from e
            try:
                path.write_text(content, encoding="utf-8")
            except OSError as e:
                raise ToolError(f"Write fail: {e}") from e
        return f"Applied {len(edits)} edit(s) to {arguments['path']}"


class GlobTool(_FileTool):
    @property
    def name(self) -> str:
        return "glob"

    @property
    def description(self) -> str:
        return "Find files matching a glob pattern such as '**/*.py'."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": "Glob pattern"},
                "path": {
                    "type": "string",
                    "description": "Directory to search in (defaults to the working directory)",
                },
            },
            "required": ["pattern"],
        }

    def execute(self, arguments: dict) -> str:
        base = self._resolve(arguments.get("path") or ".")
        if not base.is_dir():
            raise ToolError(f"Not a directory: {arguments.get('path') or base}")
        try:
            matches = sorted(
                p.relative_to(base).as_posix()
                for p in base.glob(arguments["pattern"])
                if p.is_file()
            )
        except (ValueError, NotImplementedError) as e:
            # Empty or absolute patterns.
            raise ToolError(f"Invalid pattern: {e}") from e
        if not matches:
            return "No files matched."
        if len(matches) > MAX_GLOB_RESULTS:
            extra = len(matches) - MAX_GLOB_RESULTS
            return "\n".join(matches[:MAX_GLOB_RESULTS]) + f"\n... and {extra} more"
        return "\n".join(matches)
