"""``read`` tool: return the full content of the active document."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping

from .base import BaseTool, ToolContext
from .registry import ToolSchema


class ReadDocumentTool(BaseTool):
    schema: ClassVar[ToolSchema] = ToolSchema(
        name="read",
        description="Read the complete content of the currently active document in the editor",
    )

    async def run(self, context: ToolContext, params: Mapping[str, Any]) -> str:
        return context.document.get_content()


__all__ = ["ReadDocumentTool"]
