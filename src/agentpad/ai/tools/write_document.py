"""``write`` tool: append text to the active document."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping

from .base import BaseTool, ToolContext
from .registry import ParameterSchema, ToolSchema


class WriteDocumentTool(BaseTool):
    """Appends ``content`` as a single document mutation."""

    schema: ClassVar[ToolSchema] = ToolSchema(
        name="write",
        description="Append new content to the end of the currently active document",
        parameters=[
            ParameterSchema(
                name="content",
                type="string",
                description="The content to append to the current document",
                required=True,
            ),
        ],
        writes_document=True,
    )

    async def run(self, context: ToolContext, params: Mapping[str, Any]) -> dict[str, Any]:
        content = params["content"]
        snapshot = context.document.append(content, message_id=context.message_id)
        return {
            "success": True,
            "message": f"Appended {len(content)} characters to current document",
            "snapshot_id": snapshot.id,
        }


__all__ = ["WriteDocumentTool"]
