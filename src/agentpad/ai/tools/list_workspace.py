"""``ls`` tool: render the workspace tree as an indented listing."""

from __future__ import annotations

from typing import Any, ClassVar, Iterable, Mapping

from ...services.workspace import FileTreeNode
from .base import BaseTool, ToolContext
from .registry import ToolSchema

INDENT = "  "


def render_tree(nodes: Iterable[FileTreeNode], *, depth: int = 0) -> str:
    """Render ``nodes`` one per line, two spaces per level, directories with a trailing ``/``."""

    lines: list[str] = []
    _render(nodes, depth, lines)
    return "\n".join(lines)


def _render(nodes: Iterable[FileTreeNode], depth: int, lines: list[str]) -> None:
    for node in nodes:
        suffix = "/" if node.is_directory else ""
        lines.append(f"{INDENT * depth}{node.name}{suffix}")
        if node.children:
            _render(node.children, depth + 1, lines)


class ListWorkspaceTool(BaseTool):
    schema: ClassVar[ToolSchema] = ToolSchema(
        name="ls",
        description="List the complete file tree structure of the workspace",
    )

    async def run(self, context: ToolContext, params: Mapping[str, Any]) -> str:
        workspace = context.require_workspace()
        tree = await workspace.list_tree()
        if not tree.children:
            return "(empty workspace)"
        return render_tree(tree.children)


__all__ = ["ListWorkspaceTool", "render_tree"]
