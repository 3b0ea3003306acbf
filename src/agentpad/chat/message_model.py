"""Chat message, tool call and session data models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


ChatRole = Literal["user", "assistant", "system", "tool"]


@dataclass(slots=True)
class ToolCall:
    """A function call requested by the assistant.

    ``id`` is the identifier the model assigned; tool result messages are
    correlated back to the call through it. A call is *pending* until
    :meth:`settle` runs, after which ``result`` holds the tool output or an
    ``{"error": ...}`` mapping.
    """

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    result: Any = None
    settled: bool = False

    def settle(self, result: Any) -> None:
        self.result = result
        self.settled = True

    def fail(self, message: str) -> None:
        self.settle({"error": message})

    @property
    def failed(self) -> bool:
        return self.settled and isinstance(self.result, dict) and "error" in self.result

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}
        if self.settled:
            payload["result"] = self.result
        return payload


@dataclass(slots=True)
class ChatMessage:
    """Represents a row inside the chat history list."""

    role: ChatRole
    content: Optional[str] = None
    id: str = field(default_factory=lambda: _new_id("msg"))
    timestamp: datetime = field(default_factory=_utcnow)
    tool_calls: List[ToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        payload: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.tool_calls:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return payload


class SessionState(str, Enum):
    """Conversation state machine positions."""

    IDLE = "idle"
    AWAITING_ASSISTANT = "awaiting_assistant"
    EXECUTING_TOOLS = "executing_tools"


@dataclass(slots=True)
class ChatSession:
    """A conversation; its message list is append-only outside of clearing."""

    selected_model: str
    tools_enabled: bool = True
    id: str = field(default_factory=lambda: _new_id("session"))
    messages: List[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    state: SessionState = SessionState.IDLE

    @property
    def is_idle(self) -> bool:
        return self.state is SessionState.IDLE

    def find_message(self, message_id: str) -> Optional[ChatMessage]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "selected_model": self.selected_model,
            "tools_enabled": self.tools_enabled,
            "created_at": self.created_at.isoformat(),
            "messages": [message.to_dict() for message in self.messages],
        }


__all__ = [
    "ChatRole",
    "ToolCall",
    "ChatMessage",
    "SessionState",
    "ChatSession",
]
