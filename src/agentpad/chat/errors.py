"""Errors raised by :class:`~agentpad.chat.session_manager.ChatSessionManager`."""

from __future__ import annotations


class SessionError(Exception):
    """Base class for conversation engine errors."""

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.message = message


class SessionNotFoundError(SessionError):
    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Session not found: {session_id}")


class SessionBusyError(SessionError):
    """Raised when a session is asked to start work while a turn is still in flight."""

    def __init__(self, session_id: str, state: str) -> None:
        super().__init__(session_id, f"Session {session_id} is busy ({state})")
        self.state = state


__all__ = ["SessionError", "SessionNotFoundError", "SessionBusyError"]
