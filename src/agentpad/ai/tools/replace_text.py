"""``replace`` tool: literal find-and-replace in the active document."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping

from .base import BaseTool, ToolContext
from .registry import ParameterSchema, ToolSchema


class ReplaceTextTool(BaseTool):
    """Replaces the first exact occurrence of ``target``; no fuzzy matching."""

    schema: ClassVar[ToolSchema] = ToolSchema(
        name="replace",
        description="Replace target content with new content in the currently active document",
        parameters=[
            ParameterSchema(
                name="target",
                type="string",
                description="The exact text to find and replace in the current document",
                required=True,
            ),
            ParameterSchema(
                name="newContent",
                type="string",
                description="The new content to replace the target with",
                required=True,
            ),
        ],
        writes_document=True,
    )

    async def run(self, context: ToolContext, params: Mapping[str, Any]) -> dict[str, Any]:
        snapshot = context.document.replace(
            params["target"], params["newContent"], message_id=context.message_id
        )
        return {
            "success": True,
            "message": "Successfully replaced content in current document",
            "snapshot_id": snapshot.id,
        }


__all__ = ["ReplaceTextTool"]
