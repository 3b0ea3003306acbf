"""Conversation sessions and message models.

The session manager lives in :mod:`agentpad.chat.session_manager`; it is not
re-exported here because it depends on the AI client, which in turn imports
the message models from this package.
"""

from .errors import SessionBusyError, SessionError, SessionNotFoundError
from .message_model import ChatMessage, ChatRole, ChatSession, SessionState, ToolCall

__all__ = [
    "ChatMessage",
    "ChatRole",
    "ChatSession",
    "SessionBusyError",
    "SessionError",
    "SessionNotFoundError",
    "SessionState",
    "ToolCall",
]
