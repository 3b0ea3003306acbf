"""Workspace collaborator used by the document service and the agent tools."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Protocol, runtime_checkable

from ..utils import file_io

__all__ = [
    "FileTreeNode",
    "Workspace",
    "LocalWorkspace",
    "WorkspacePathError",
    "DEFAULT_TREE_DEPTH",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_TREE_DEPTH = 10

NodeKind = Literal["file", "directory"]


class WorkspacePathError(ValueError):
    """Raised when a relative path is empty or escapes the workspace root."""


@dataclass(slots=True)
class FileTreeNode:
    """One entry of the workspace tree; ``path`` is relative to the root."""

    name: str
    kind: NodeKind
    path: str
    children: List["FileTreeNode"] = field(default_factory=list)

    @property
    def is_directory(self) -> bool:
        return self.kind == "directory"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "kind": self.kind, "path": self.path}
        if self.is_directory:
            payload["children"] = [child.to_dict() for child in self.children]
        return payload


@runtime_checkable
class Workspace(Protocol):
    """Contract the core requires from the file-system layer.

    ``ref`` values are whatever :meth:`resolve_path` returns; callers never
    build them by hand.
    """

    def resolve_path(self, relative_path: str) -> Any:
        ...

    async def read_text(self, ref: Any) -> str:
        ...

    async def write_text(self, ref: Any, text: str) -> None:
        ...

    async def list_tree(self, ref: Any | None = None) -> FileTreeNode:
        ...


class LocalWorkspace:
    """:class:`Workspace` backed by a directory on the local disk.

    Blocking filesystem calls run in a worker thread so the event loop only
    suspends while they are in flight.
    """

    def __init__(self, root: Path | str, *, max_depth: int = DEFAULT_TREE_DEPTH) -> None:
        self._root = Path(root).expanduser().resolve()
        self._max_depth = max(1, int(max_depth))
        # On-disk layout of every file read so far; writes reproduce it.
        self._formats: Dict[Path, file_io.TextFormat] = {}

    @property
    def root(self) -> Path:
        return self._root

    def resolve_path(self, relative_path: str) -> Path:
        normalized = (relative_path or "").replace("\\", "/").strip()
        segments = [segment for segment in normalized.split("/") if segment and segment != "."]
        if not segments:
            raise WorkspacePathError(f"Invalid file path: {relative_path!r}")
        candidate = self._root.joinpath(*segments).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise WorkspacePathError(f"Path escapes the workspace: {relative_path}")
        return candidate

    async def read_text(self, ref: Path) -> str:
        raw = await asyncio.to_thread(Path(ref).read_bytes)
        decoded = file_io.decode_text(raw)
        self._formats[Path(ref)] = decoded.format
        return decoded.text

    async def write_text(self, ref: Path, text: str) -> None:
        text_format = self.text_format(ref)
        try:
            await asyncio.to_thread(file_io.write_text, ref, text, text_format=text_format)
        except UnicodeEncodeError:
            LOGGER.warning("Content of %s does not fit %s; saving as UTF-8", ref, text_format.encoding)
            text_format = file_io.TextFormat(newline=text_format.newline)
            await asyncio.to_thread(file_io.write_text, ref, text, text_format=text_format)
        self._formats[Path(ref)] = text_format
        LOGGER.debug("Wrote %s characters to %s (%s)", len(text), ref, text_format.encoding)

    def text_format(self, ref: Path) -> file_io.TextFormat:
        """Encoding, BOM and newline style last seen for ``ref`` (UTF-8/LF for new files)."""

        return self._formats.get(Path(ref), file_io.DEFAULT_FORMAT)

    async def list_tree(self, ref: Path | None = None) -> FileTreeNode:
        start = Path(ref) if ref is not None else self._root
        return await asyncio.to_thread(self._build_tree, start)

    def relative(self, ref: Path) -> str:
        return Path(ref).relative_to(self._root).as_posix()

    def _build_tree(self, start: Path) -> FileTreeNode:
        if not start.is_dir():
            raise NotADirectoryError(f"Not a directory: {start}")
        rel = "" if start == self._root else self.relative(start)
        node = FileTreeNode(name=start.name, kind="directory", path=rel)
        node.children = self._scan(start, rel, depth=0)
        return node

    def _scan(self, directory: Path, base: str, *, depth: int) -> List[FileTreeNode]:
        if depth >= self._max_depth:
            return []
        nodes: List[FileTreeNode] = []
        for entry in directory.iterdir():
            path = f"{base}/{entry.name}" if base else entry.name
            if entry.is_dir():
                children = self._scan(entry, path, depth=depth + 1)
                nodes.append(FileTreeNode(name=entry.name, kind="directory", path=path, children=children))
            elif entry.is_file():
                nodes.append(FileTreeNode(name=entry.name, kind="file", path=path))
        nodes.sort(key=lambda item: (not item.is_directory, item.name.lower()))
        return nodes
