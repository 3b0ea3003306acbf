"""``grep`` tool: regex search over the active document."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping

from .base import BaseTool, ToolContext
from .registry import ParameterSchema, ToolSchema


class SearchDocumentTool(BaseTool):
    schema: ClassVar[ToolSchema] = ToolSchema(
        name="grep",
        description="Search for a regex pattern within the currently active document",
        parameters=[
            ParameterSchema(
                name="pattern",
                type="string",
                description="The regex pattern to search for in the current document",
                required=True,
            ),
        ],
    )

    async def run(self, context: ToolContext, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        return [match.to_dict() for match in context.document.search(params["pattern"])]


__all__ = ["SearchDocumentTool"]
