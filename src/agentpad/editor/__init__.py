"""Editor package containing the active-document model and service."""

from .content_cache import CacheConfig, ContentCache
from .document_model import DocumentSnapshot, DocumentState, MatchResult
from .document_service import DocumentService, RetryPolicy

__all__ = [
    "CacheConfig",
    "ContentCache",
    "DocumentService",
    "DocumentSnapshot",
    "DocumentState",
    "MatchResult",
    "RetryPolicy",
]
