"""Typed failures raised by :class:`~agentpad.ai.client.AIClient`."""

from __future__ import annotations

from typing import Any, Mapping


class AIClientError(Exception):
    """Base class for provider failures.

    Attributes:
        message: Human-readable description, including the provider's own
            message when one could be extracted.
        status_code: HTTP status of the failing response, if any.
        provider_message: Raw error text reported by the provider.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        provider_message: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.provider_message = provider_message
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        if self.provider_message:
            payload["provider_message"] = self.provider_message
        return payload


class AuthError(AIClientError):
    """The provider rejected the credentials (401/403)."""


class RateLimitedError(AIClientError):
    """The provider throttled the request (429)."""


class ApiError(AIClientError):
    """Server-side failure, unexpected status, network failure or malformed payload."""


class StreamError(AIClientError):
    """The streaming body was absent or broke off mid-read."""


__all__ = [
    "AIClientError",
    "AuthError",
    "RateLimitedError",
    "ApiError",
    "StreamError",
]
