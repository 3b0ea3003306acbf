"""Error types raised while validating and dispatching tool calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ErrorCode:
    """Constants for error codes used in tool responses."""

    UNKNOWN_TOOL = "unknown_tool"
    MISSING_ARGUMENT = "missing_argument"
    INVALID_ARGUMENT_TYPE = "invalid_argument_type"
    WORKSPACE_UNAVAILABLE = "workspace_unavailable"


@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON tool responses."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class UnknownToolError(ToolError):
    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Tool is not registered")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use one of the tools listed in the request")

    tool_name: str = ""

    def __post_init__(self) -> None:
        if self.tool_name and self.message == "Tool is not registered":
            self.message = f"Unknown tool: {self.tool_name}"
        ToolError.__post_init__(self)


@dataclass
class MissingArgumentError(ToolError):
    """Raised when a required parameter is absent or null."""

    error_code: str = field(default=ErrorCode.MISSING_ARGUMENT)
    message: str = field(default="")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    argument: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Missing required argument: {self.argument}"
        ToolError.__post_init__(self)


@dataclass
class InvalidArgumentTypeError(ToolError):
    """Raised when a parameter value does not match its declared JSON type."""

    error_code: str = field(default=ErrorCode.INVALID_ARGUMENT_TYPE)
    message: str = field(default="")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    argument: str = ""
    expected: str = ""
    actual: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = (
                f"Invalid type for argument '{self.argument}': expected {self.expected}, got {self.actual}"
            )
        ToolError.__post_init__(self)


@dataclass
class WorkspaceUnavailableError(ToolError):
    error_code: str = field(default=ErrorCode.WORKSPACE_UNAVAILABLE)
    message: str = field(default="No workspace is currently open")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Open a workspace folder first")


__all__ = [
    "ErrorCode",
    "ToolError",
    "UnknownToolError",
    "MissingArgumentError",
    "InvalidArgumentTypeError",
    "WorkspaceUnavailableError",
]
