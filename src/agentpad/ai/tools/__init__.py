"""The fixed vocabulary of tools available to the agent."""

from __future__ import annotations

from .base import BaseTool, ToolContext
from .errors import (
    ErrorCode,
    InvalidArgumentTypeError,
    MissingArgumentError,
    ToolError,
    UnknownToolError,
    WorkspaceUnavailableError,
)
from .list_workspace import ListWorkspaceTool, render_tree
from .read_document import ReadDocumentTool
from .read_workspace_file import ReadWorkspaceFileTool
from .registry import ParameterSchema, ToolRegistration, ToolRegistry, ToolSchema
from .replace_text import ReplaceTextTool
from .search_document import SearchDocumentTool
from .write_document import WriteDocumentTool

DEFAULT_TOOLS: tuple[type[BaseTool], ...] = (
    ReadDocumentTool,
    WriteDocumentTool,
    ReadWorkspaceFileTool,
    SearchDocumentTool,
    ReplaceTextTool,
    ListWorkspaceTool,
)


def build_default_registry() -> ToolRegistry:
    """Return a registry holding ``read``, ``write``, ``read_workspace_file``, ``grep``, ``replace`` and ``ls``."""

    registry = ToolRegistry()
    for tool_cls in DEFAULT_TOOLS:
        registry.register(tool_cls())
    return registry


__all__ = [
    "BaseTool",
    "DEFAULT_TOOLS",
    "ErrorCode",
    "InvalidArgumentTypeError",
    "ListWorkspaceTool",
    "MissingArgumentError",
    "ParameterSchema",
    "ReadDocumentTool",
    "ReadWorkspaceFileTool",
    "ReplaceTextTool",
    "SearchDocumentTool",
    "ToolContext",
    "ToolError",
    "ToolRegistration",
    "ToolRegistry",
    "ToolSchema",
    "UnknownToolError",
    "WorkspaceUnavailableError",
    "WriteDocumentTool",
    "build_default_registry",
    "render_tree",
]
