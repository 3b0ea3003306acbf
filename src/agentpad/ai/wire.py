"""Mapping between chat models and the OpenAI-compatible wire format.

Outbound, every :class:`ChatMessage` becomes one wire message and each
settled tool call adds a ``role: tool`` message directly after its parent
assistant message. Inbound, tool call argument strings are parsed into
mappings the same way for streamed and whole responses.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..chat.message_model import ChatMessage, ToolCall
from .errors import ApiError

LOGGER = logging.getLogger(__name__)

__all__ = [
    "to_wire_messages",
    "to_wire_tool_call",
    "from_wire_completion",
    "from_wire_message",
    "parse_tool_arguments",
    "build_tool_call",
    "serialize_result",
]


def to_wire_messages(messages: Iterable[ChatMessage]) -> List[Dict[str, Any]]:
    wire: List[Dict[str, Any]] = []
    for message in messages:
        payload: Dict[str, Any] = {"role": message.role}
        if message.role == "assistant" and message.tool_calls:
            payload["content"] = message.content
            payload["tool_calls"] = [to_wire_tool_call(call) for call in message.tool_calls]
        else:
            payload["content"] = message.content or ""
        wire.append(payload)

        for call in message.tool_calls:
            if not call.settled:
                continue
            wire.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "name": call.name,
                    "content": serialize_result(call.result),
                }
            )
    return wire


def to_wire_tool_call(call: ToolCall) -> Dict[str, Any]:
    return {
        "id": call.id,
        "type": "function",
        "function": {
            "name": call.name,
            "arguments": json.dumps(call.arguments, ensure_ascii=False),
        },
    }


def serialize_result(result: Any) -> str:
    """JSON-encode a tool result; values JSON cannot express fall back to ``str``."""

    return json.dumps(result, ensure_ascii=False, default=str)


def parse_tool_arguments(raw: str | None, *, tool_name: str = "") -> Optional[Dict[str, Any]]:
    """Parse a function-call argument string.

    Returns ``{}`` for an empty string and ``None`` (after logging) when the
    text is not a JSON object.
    """

    text = (raw or "").strip()
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        LOGGER.warning("Dropping tool call %s: arguments are not valid JSON (%s)", tool_name or "?", exc)
        return None
    if not isinstance(parsed, dict):
        LOGGER.warning("Dropping tool call %s: arguments are not a JSON object", tool_name or "?")
        return None
    return parsed


def build_tool_call(call_id: str, name: str, raw_arguments: str | None) -> Optional[ToolCall]:
    arguments = parse_tool_arguments(raw_arguments, tool_name=name)
    if arguments is None:
        return None
    return ToolCall(id=call_id, name=name, arguments=arguments)


def from_wire_message(message: Mapping[str, Any]) -> ChatMessage:
    """Build an assistant :class:`ChatMessage` from a wire ``message`` mapping."""

    tool_calls: List[ToolCall] = []
    for raw in message.get("tool_calls") or ():
        function = raw.get("function") or {}
        call_id = raw.get("id")
        name = function.get("name")
        if not call_id or not name:
            LOGGER.warning("Dropping tool call without id or name: %s", raw)
            continue
        call = build_tool_call(call_id, name, function.get("arguments"))
        if call is not None:
            tool_calls.append(call)
    return ChatMessage(role="assistant", content=message.get("content") or "", tool_calls=tool_calls)


def from_wire_completion(completion: Mapping[str, Any]) -> ChatMessage:
    """Map a whole (non-streamed) chat completion body to an assistant message."""

    choices: Sequence[Any] = completion.get("choices") or ()
    if not choices:
        raise ApiError("Malformed response from provider: no choices returned")
    message = choices[0].get("message") if isinstance(choices[0], Mapping) else None
    if not isinstance(message, Mapping):
        raise ApiError("Malformed response from provider: choice has no message")
    return from_wire_message(message)
