"""``read_workspace_file`` tool: read any workspace file by relative path."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping

from .base import BaseTool, ToolContext
from .registry import ParameterSchema, ToolSchema


class ReadWorkspaceFileTool(BaseTool):
    """Reads a file without touching the active document."""

    schema: ClassVar[ToolSchema] = ToolSchema(
        name="read_workspace_file",
        description="Read the complete content of any file in the workspace by relative path",
        parameters=[
            ParameterSchema(
                name="path",
                type="string",
                description="The relative path to the file in the workspace",
                required=True,
            ),
        ],
    )

    async def run(self, context: ToolContext, params: Mapping[str, Any]) -> str:
        workspace = context.require_workspace()
        ref = workspace.resolve_path(params["path"])
        return await workspace.read_text(ref)


__all__ = ["ReadWorkspaceFileTool"]
