"""Base classes for agent tools.

Tools are small objects carrying a :class:`ToolSchema` and an async
:meth:`BaseTool.run` coroutine. The dispatcher validates arguments against the
schema before ``run`` is awaited, so implementations can rely on required
parameters being present and correctly typed.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping

from ...editor.document_service import DocumentService
from ...services.workspace import Workspace
from .errors import WorkspaceUnavailableError
from .registry import ToolSchema

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolContext:
    """Runtime context provided to tool execution.

    Attributes:
        document: Service owning the active document.
        workspace: Workspace collaborator for path-qualified reads and listing;
            ``None`` when no folder is open.
        message_id: Assistant message that requested the call, recorded on
            the snapshots created by write tools.
    """

    document: DocumentService
    workspace: Workspace | None = None
    message_id: str | None = None

    def require_workspace(self) -> Workspace:
        if self.workspace is None:
            raise WorkspaceUnavailableError()
        return self.workspace


class BaseTool(ABC):
    """Abstract base class for all agent tools.

    Example:
        class EchoTool(BaseTool):
            schema = ToolSchema(name="echo", description="Echo back text")

            async def run(self, context, params):
                return params
    """

    schema: ClassVar[ToolSchema]

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def writes_document(self) -> bool:
        return self.schema.writes_document

    @abstractmethod
    async def run(self, context: ToolContext, params: Mapping[str, Any]) -> Any:
        """Execute the tool and return a JSON-serializable result."""


__all__ = ["BaseTool", "ToolContext"]
