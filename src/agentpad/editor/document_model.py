"""Dataclasses representing the active document and its snapshots."""

from __future__ import annotations

import hashlib
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

MAX_CONTENT_SIZE = 10 * 1024 * 1024
MAX_SNAPSHOTS = 10

SnapshotTrigger = Literal["manual_save", "tool_execution", "auto_save"]


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def sanitize_content(text: str) -> str:
    """Normalize every line-ending variant to ``\\n`` and strip null bytes."""

    if "\r" in text:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
    if "\x00" in text:
        text = text.replace("\x00", "")
    return text


@dataclass(slots=True, frozen=True)
class DocumentSnapshot:
    """Immutable copy of the document content at a point in time."""

    content: str
    trigger_event: SnapshotTrigger
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=_utcnow)
    message_id: Optional[str] = None

    @property
    def content_hash(self) -> str:
        return _hash_text(self.content)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "trigger_event": self.trigger_event,
            "length": len(self.content),
        }
        if self.message_id:
            payload["message_id"] = self.message_id
        return payload


@dataclass(slots=True)
class DocumentState:
    """The single live document owned by :class:`DocumentService`.

    ``handle`` is whatever reference the workspace collaborator resolved for
    ``path``; the document service treats it as opaque.
    """

    handle: Any
    path: str
    content: str = ""
    is_dirty: bool = False
    last_saved: Optional[datetime] = None
    snapshots: deque[DocumentSnapshot] = field(default_factory=lambda: deque(maxlen=MAX_SNAPSHOTS))

    @property
    def content_hash(self) -> str:
        return _hash_text(self.content)

    def record_snapshot(
        self, trigger: SnapshotTrigger, *, message_id: Optional[str] = None
    ) -> DocumentSnapshot:
        """Append a snapshot of the current content; the oldest falls off past the bound."""

        snapshot = DocumentSnapshot(content=self.content, trigger_event=trigger, message_id=message_id)
        self.snapshots.append(snapshot)
        return snapshot

    def find_snapshot(self, snapshot_id: str) -> Optional[DocumentSnapshot]:
        for snapshot in self.snapshots:
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    def copy(self) -> "DocumentState":
        """Return a detached copy (snapshots are immutable and shared)."""

        return DocumentState(
            handle=self.handle,
            path=self.path,
            content=self.content,
            is_dirty=self.is_dirty,
            last_saved=self.last_saved,
            snapshots=deque(self.snapshots, maxlen=MAX_SNAPSHOTS),
        )


@dataclass(slots=True, frozen=True)
class MatchResult:
    """One regex match inside the document (1-based line and column)."""

    line: int
    column: int
    match: str
    context: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "column": self.column,
            "match": self.match,
            "context": self.context,
        }


__all__ = [
    "MAX_CONTENT_SIZE",
    "MAX_SNAPSHOTS",
    "SnapshotTrigger",
    "DocumentSnapshot",
    "DocumentState",
    "MatchResult",
    "sanitize_content",
]
