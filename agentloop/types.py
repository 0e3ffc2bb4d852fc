from dataclasses import dataclass
from enum import Enum


class ToolStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ErrorCode:
    NOT_FOUND = "not_found"
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    TOOL_ERROR = "tool_error"
    TOOL_EXCEPTION = "tool_exception"
    TIMEOUT = "timeout"


@dataclass
class ToolResult:
    tool_name: str
    status: ToolStatus
    output: str
    error_code: str | None = None

    @classmethod
    def ok(cls, tool_name: str, output: str) -> "ToolResult":
        return cls(tool_name=tool_name, status=ToolStatus.SUCCESS, output=output)

    @classmethod
    def fail(cls, tool_name: str, message: str, error_code: str) -> "ToolResult":
        return cls(
            tool_name=tool_name,
            status=ToolStatus.ERROR,
            output=message,
            error_code=error_code,
        )

    @property
    def success(self) -> bool:
        return self.status is ToolStatus.SUCCESS

    @property
    def is_not_found(self) -> bool:
        return self.error_code == ErrorCode.NOT_FOUND

    @property
    def content(self) -> str:
        """Text fed back to the model in the matching ``tool`` message."""
        return self.output

    def to_dict(self) -> dict:
        d: dict = {"tool": self.tool_name, "status": self.status.value}
        if self.success:
            d["output"] = self.output
        else:
            d["error"] = self.output
            d["error_code"] = self.error_code
        return d
