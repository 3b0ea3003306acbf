"""Error types raised by the document model.

Every error carries a machine-readable code, a human-readable message and
optional recovery suggestions so the same object can be raised to the caller
and rendered for a listener.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence


class DocumentErrorCode:
    """Constants for document error codes."""

    NO_DOCUMENT_LOADED = "no_document_loaded"
    CONTENT_TOO_LARGE = "content_too_large"
    TARGET_NOT_FOUND = "target_not_found"
    INVALID_RANGE = "invalid_range"
    INVALID_PATTERN = "invalid_pattern"
    SNAPSHOT_NOT_FOUND = "snapshot_not_found"
    FILE_READ_ERROR = "file_read_error"
    FILE_WRITE_ERROR = "file_write_error"


@dataclass
class DocumentError(Exception):
    """Base exception for document model failures.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        recoverable: Whether the caller can continue after this error.
        suggestions: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = ()

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestions:
            result["suggestions"] = list(self.suggestions)
        return result

    def __str__(self) -> str:
        return self.message


@dataclass
class NoDocumentLoadedError(DocumentError):
    error_code: str = field(default=DocumentErrorCode.NO_DOCUMENT_LOADED)
    message: str = field(default="No document is loaded")
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = ("Open a file from the workspace first",)


@dataclass
class ContentTooLargeError(DocumentError):
    """Raised when a mutation would push the document past the size ceiling."""

    error_code: str = field(default=DocumentErrorCode.CONTENT_TOO_LARGE)
    message: str = field(default="Document content exceeds the maximum size")
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = ("Split the content into smaller files",)

    size: int = 0
    limit: int = 0

    def __post_init__(self) -> None:
        if self.size and "size" not in self.details:
            self.details = {**self.details, "size": self.size, "limit": self.limit}
        DocumentError.__post_init__(self)


@dataclass
class TargetNotFoundError(DocumentError):
    error_code: str = field(default=DocumentErrorCode.TARGET_NOT_FOUND)
    message: str = field(default="Target text was not found in the document")
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = ("Read the document again and copy the exact text to replace",)

    target: str = ""


@dataclass
class InvalidRangeError(DocumentError):
    error_code: str = field(default=DocumentErrorCode.INVALID_RANGE)
    message: str = field(default="Range is outside the document")
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = ()

    start: int = 0
    end: int = 0
    length: int = 0


@dataclass
class InvalidPatternError(DocumentError):
    error_code: str = field(default=DocumentErrorCode.INVALID_PATTERN)
    message: str = field(default="Search pattern is not a valid regular expression")
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = ("Escape special characters such as ( [ * + ?",)

    pattern: str = ""


@dataclass
class SnapshotNotFoundError(DocumentError):
    error_code: str = field(default=DocumentErrorCode.SNAPSHOT_NOT_FOUND)
    message: str = field(default="Snapshot does not exist")
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = ("Only the 10 most recent snapshots are kept",)

    snapshot_id: str = ""


@dataclass
class FileReadError(DocumentError):
    error_code: str = field(default=DocumentErrorCode.FILE_READ_ERROR)
    message: str = field(default="Failed to read file")
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = (
        "Check that the file path is correct",
        "Verify the file exists in the workspace",
    )

    path: str = ""


@dataclass
class FileWriteError(DocumentError):
    error_code: str = field(default=DocumentErrorCode.FILE_WRITE_ERROR)
    message: str = field(default="Failed to write file")
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    suggestions: Sequence[str] = ("Check file permissions", "Retry the operation")

    path: str = ""


def format_error_message(error: DocumentError) -> str:
    """Render ``error`` for display, appending its suggestions as a bullet list."""

    text = error.message
    if error.suggestions:
        bullets = "\n".join(f"  - {item}" for item in error.suggestions)
        text = f"{text}\n\nSuggestions:\n{bullets}"
    return text


__all__ = [
    "DocumentErrorCode",
    "DocumentError",
    "NoDocumentLoadedError",
    "ContentTooLargeError",
    "TargetNotFoundError",
    "InvalidRangeError",
    "InvalidPatternError",
    "SnapshotNotFoundError",
    "FileReadError",
    "FileWriteError",
    "format_error_message",
]
