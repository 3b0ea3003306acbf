"""AI client, tool registry and dispatch."""

from .client import AIClient, AIStreamEvent, ClientSettings
from .errors import AIClientError, ApiError, AuthError, RateLimitedError, StreamError

__all__ = [
    "AIClient",
    "AIStreamEvent",
    "ClientSettings",
    "AIClientError",
    "ApiError",
    "AuthError",
    "RateLimitedError",
    "StreamError",
]
