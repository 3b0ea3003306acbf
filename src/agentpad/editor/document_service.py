"""Service owning the single active document.

All mutation paths (user edits and agent tools alike) go through the methods
here so the dirty flag, the snapshot ring and the change notifications stay
consistent no matter who edits the document.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..events import ContentChanged, DocumentFailed, DocumentLoaded, DocumentSaved, EventBus
from ..services.workspace import Workspace
from .content_cache import CacheConfig, CacheStats, ContentCache
from .document_model import (
    MAX_CONTENT_SIZE,
    DocumentSnapshot,
    DocumentState,
    MatchResult,
    SnapshotTrigger,
    _utcnow,
    sanitize_content,
)
from .errors import (
    ContentTooLargeError,
    DocumentError,
    FileReadError,
    FileWriteError,
    InvalidPatternError,
    InvalidRangeError,
    NoDocumentLoadedError,
    SnapshotNotFoundError,
    TargetNotFoundError,
    format_error_message,
)

__all__ = ["DocumentService", "RetryPolicy", "normalize_document_path"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that will not go away by waiting.
_PERMANENT_IO_ERRORS: tuple[type[BaseException], ...] = (
    FileNotFoundError,
    PermissionError,
    IsADirectoryError,
    NotADirectoryError,
)


def _is_transient_io_error(exc: BaseException) -> bool:
    return isinstance(exc, OSError) and not isinstance(exc, _PERMANENT_IO_ERRORS)


def normalize_document_path(path: str) -> str:
    """Canonical form of a workspace-relative path, e.g. ``./a\\b.md`` becomes ``a/b.md``."""
    cleaned = (path or "").replace("\\", "/").strip()
    if not cleaned:
        return cleaned
    return posixpath.normpath(cleaned).lstrip("/")


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Bounded exponential backoff applied to document load and save."""

    attempts: int = 3
    min_seconds: float = 1.0
    max_seconds: float = 8.0


class DocumentService:
    """Owns the content, snapshots and save state of the active document."""

    def __init__(
        self,
        workspace: Workspace,
        *,
        event_bus: EventBus | None = None,
        cache: ContentCache | None = None,
        retry: RetryPolicy | None = None,
        max_content_size: int = MAX_CONTENT_SIZE,
    ) -> None:
        self._workspace = workspace
        self._events = event_bus
        self._cache = cache or ContentCache(CacheConfig())
        self._retry = retry or RetryPolicy()
        self._max_content_size = max_content_size
        self._state: DocumentState | None = None
        self._autosave_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def workspace(self) -> Workspace:
        return self._workspace

    @property
    def is_loaded(self) -> bool:
        return self._state is not None

    @property
    def is_dirty(self) -> bool:
        return bool(self._state and self._state.is_dirty)

    @property
    def current_path(self) -> str | None:
        return self._state.path if self._state else None

    @property
    def autosave_enabled(self) -> bool:
        return self._autosave_task is not None and not self._autosave_task.done()

    def current_document(self) -> DocumentState | None:
        """Return a detached copy of the active document, if any."""
        return self._state.copy() if self._state else None

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    async def open(self, relative_path: str) -> DocumentState:
        """Resolve ``relative_path`` in the workspace and load it."""
        try:
            ref = self._workspace.resolve_path(relative_path)
        except (OSError, ValueError) as exc:
            raise self._fail(
                FileReadError(message=f"Failed to read file '{relative_path}': {exc}", path=relative_path)
            ) from exc
        return await self.load(ref, relative_path)

    async def load(self, ref: Any, path: str) -> DocumentState:
        """Make ``path`` the active document, discarding any previous one.

        The body is served from the content cache when possible; otherwise it
        is read through the workspace with bounded retry on transient errors.
        """
        path = normalize_document_path(path)
        content = self._cache.get(path)
        from_cache = content is not None
        if content is None:
            try:
                content = await self._retry_io(lambda: self._workspace.read_text(ref))
            except (OSError, ValueError) as exc:
                raise self._fail(
                    FileReadError(
                        message=f"Failed to read file '{path}': {exc}",
                        path=path,
                        details={"reason": type(exc).__name__},
                    )
                ) from exc
            self._cache.set(path, content)

        content = sanitize_content(content)
        self._check_size(len(content))

        if self._state is not None:
            LOGGER.debug("Discarding active document %s", self._state.path)
        state = DocumentState(handle=ref, path=path, content=content, last_saved=_utcnow())
        state.record_snapshot("manual_save")
        self._state = state
        LOGGER.info("Loaded %s (%d chars, cached=%s)", path, len(content), from_cache)
        self._publish(DocumentLoaded(path=path, length=len(content), from_cache=from_cache))
        return state.copy()

    async def save(self) -> DocumentSnapshot:
        """Persist the active document, clearing the dirty flag on success."""
        return await self._save("manual_save")

    async def _save(self, trigger: SnapshotTrigger) -> DocumentSnapshot:
        state = self._require_document()
        self._check_size(len(state.content))
        content = state.content
        try:
            await self._retry_io(lambda: self._workspace.write_text(state.handle, content))
        except (OSError, ValueError) as exc:
            raise self._fail(
                FileWriteError(
                    message=f"Failed to write file '{state.path}': {exc}",
                    path=state.path,
                    details={"reason": type(exc).__name__},
                )
            ) from exc

        state.is_dirty = state.content != content
        state.last_saved = _utcnow()
        self._cache.set(state.path, content)
        snapshot = state.record_snapshot(trigger)
        LOGGER.info("Saved %s (%s)", state.path, trigger)
        self._publish(DocumentSaved(path=state.path, trigger=trigger))
        return snapshot

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get_content(self) -> str:
        return self._require_document().content

    def snapshots(self) -> List[DocumentSnapshot]:
        """Snapshots of the active document, oldest first."""
        if self._state is None:
            return []
        return list(self._state.snapshots)

    def search(self, pattern: str, *, ignore_case: bool = True) -> List[MatchResult]:
        """Run ``pattern`` against every line of the document.

        The expression is compiled once and each line is scanned once, so the
        cost stays linear in the document size. Columns and lines are 1-based.
        """
        state = self._require_document()
        flags = re.IGNORECASE if ignore_case else 0
        try:
            compiled = re.compile(pattern, flags)
        except re.error as exc:
            raise self._fail(
                InvalidPatternError(message=f"Invalid search pattern: {exc}", pattern=pattern)
            ) from exc

        results: List[MatchResult] = []
        for index, line in enumerate(state.content.split("\n"), start=1):
            for match in compiled.finditer(line):
                results.append(
                    MatchResult(line=index, column=match.start() + 1, match=match.group(0), context=line)
                )
        return results

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append(self, text: str, *, message_id: str | None = None) -> DocumentSnapshot:
        state = self._require_document()
        return self._apply(state, state.content + sanitize_content(text), message_id=message_id)

    def insert_at(self, position: int, text: str, *, message_id: str | None = None) -> DocumentSnapshot:
        state = self._require_document()
        length = len(state.content)
        if position < 0 or position > length:
            raise self._fail(
                InvalidRangeError(
                    message=f"Insert position {position} is outside the document (length {length})",
                    start=position,
                    end=position,
                    length=length,
                )
            )
        updated = state.content[:position] + sanitize_content(text) + state.content[position:]
        return self._apply(state, updated, message_id=message_id)

    def delete_range(self, start: int, end: int, *, message_id: str | None = None) -> DocumentSnapshot:
        state = self._require_document()
        self._check_range(state, start, end)
        return self._apply(state, state.content[:start] + state.content[end:], message_id=message_id)

    def replace_range(
        self, start: int, end: int, text: str, *, message_id: str | None = None
    ) -> DocumentSnapshot:
        state = self._require_document()
        self._check_range(state, start, end)
        updated = state.content[:start] + sanitize_content(text) + state.content[end:]
        return self._apply(state, updated, message_id=message_id)

    def replace(self, target: str, text: str, *, message_id: str | None = None) -> DocumentSnapshot:
        """Replace the first literal occurrence of ``target``."""
        state = self._require_document()
        needle = sanitize_content(target)
        index = state.content.find(needle) if needle else -1
        if index < 0:
            raise self._fail(
                TargetNotFoundError(message=f"Target text not found: {target!r}", target=target)
            )
        updated = state.content[:index] + sanitize_content(text) + state.content[index + len(needle):]
        return self._apply(state, updated, message_id=message_id)

    def revert(self, snapshot_id: str) -> DocumentSnapshot:
        """Restore a snapshot; the document is dirty afterwards."""
        state = self._require_document()
        snapshot = state.find_snapshot(snapshot_id)
        if snapshot is None:
            raise self._fail(
                SnapshotNotFoundError(message=f"Snapshot not found: {snapshot_id}", snapshot_id=snapshot_id)
            )
        state.content = snapshot.content
        state.is_dirty = True
        restored = state.record_snapshot("manual_save")
        LOGGER.info("Reverted %s to snapshot %s", state.path, snapshot_id)
        self._publish(
            ContentChanged(path=state.path, length=len(state.content), snapshot_id=restored.id, trigger="manual_save")
        )
        return restored

    def clear(self) -> None:
        if self._state is not None:
            LOGGER.debug("Cleared active document %s", self._state.path)
        self._state = None

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def clear_cache(self) -> int:
        return self._cache.clear()

    def cache_stats(self) -> CacheStats | None:
        return self._cache.stats

    # ------------------------------------------------------------------
    # Auto-save
    # ------------------------------------------------------------------

    def enable_autosave(self, interval: float) -> None:
        """Save the document every ``interval`` seconds while it is dirty.

        Must be called from a running event loop. Re-enabling replaces the
        previous timer.
        """
        if interval <= 0:
            raise ValueError("Auto-save interval must be positive")
        self.disable_autosave()
        self._autosave_task = asyncio.get_running_loop().create_task(
            self._autosave_loop(interval), name="agentpad-autosave"
        )
        LOGGER.debug("Auto-save enabled every %.1fs", interval)

    def disable_autosave(self) -> None:
        task = self._autosave_task
        self._autosave_task = None
        if task is not None and not task.done():
            task.cancel()
            LOGGER.debug("Auto-save disabled")

    async def aclose(self) -> None:
        """Stop the auto-save timer and wait for it to finish."""
        task = self._autosave_task
        self.disable_autosave()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _autosave_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._state is None or not self._state.is_dirty:
                continue
            try:
                await self._save("auto_save")
            except DocumentError as exc:
                LOGGER.warning("Auto-save failed: %s", exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _apply(self, state: DocumentState, updated: str, *, message_id: str | None) -> DocumentSnapshot:
        self._check_size(len(updated))
        state.content = updated
        state.is_dirty = True
        snapshot = state.record_snapshot("tool_execution", message_id=message_id)
        self._publish(
            ContentChanged(path=state.path, length=len(updated), snapshot_id=snapshot.id, trigger="tool_execution")
        )
        return snapshot

    def _require_document(self) -> DocumentState:
        if self._state is None:
            raise self._fail(NoDocumentLoadedError())
        return self._state

    def _check_size(self, size: int) -> None:
        if size > self._max_content_size:
            raise self._fail(
                ContentTooLargeError(
                    message=(
                        f"Document content exceeds maximum size of {self._max_content_size} characters "
                        f"(got {size})"
                    ),
                    size=size,
                    limit=self._max_content_size,
                )
            )

    def _check_range(self, state: DocumentState, start: int, end: int) -> None:
        length = len(state.content)
        if start < 0 or end > length or start > end:
            raise self._fail(
                InvalidRangeError(
                    message=f"Invalid range {start}..{end} for document of length {length}",
                    start=start,
                    end=end,
                    length=length,
                )
            )

    async def _retry_io(self, operation: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._retry.attempts)),
            wait=wait_exponential(multiplier=self._retry.min_seconds, max=self._retry.max_seconds),
            retry=retry_if_exception(_is_transient_io_error),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
        )
        result: Optional[T] = None
        async for attempt in retrying:
            with attempt:
                result = await operation()
        return result  # type: ignore[return-value]

    def _fail(self, error: DocumentError) -> DocumentError:
        LOGGER.debug("Document error [%s]: %s", error.error_code, error.message)
        self._publish(
            DocumentFailed(
                code=error.error_code,
                message=format_error_message(error),
                recoverable=error.recoverable,
            )
        )
        return error

    def _publish(self, event: Any) -> None:
        if self._events is not None:
            self._events.publish(event)
