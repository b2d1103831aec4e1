from dataclasses import dataclass


@dataclass
class ToolResult:
    success: bool
    content: str
    data: dict | list | None = None
    error: str | None = None
    error_code: str | None = None

    def as_message_content(self) -> str:
        if not self.success:
            return f"[Error: {self.error_code}] {self.error or self.content}"
        return self.content

    @classmethod
    def failure(cls, error: str, error_code: str) -> "ToolResult":
        return cls(success=False, content=error, error=error, error_code=error_code)


class ErrorCode:
    INVALID_ARGUMENTS = "invalid_arguments"
    UNKNOWN_TOOL = "unknown_tool"
    TIMEOUT = "timeout"
    TOOL_EXCEPTION = "tool_exception"
    UPSTREAM_ERROR = "upstream_error"
