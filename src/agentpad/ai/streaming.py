"""Incremental decoding of server-sent chat completion streams.

:class:`SSEDecoder` turns raw body bytes into ``data:`` payloads, correctly
handling UTF-8 sequences and lines split across reads.
:class:`StreamAssembler` folds the decoded chunks into text deltas and,
at the end, one assistant :class:`ChatMessage`.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from ..chat.message_model import ChatMessage, ToolCall
from .wire import build_tool_call

LOGGER = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

__all__ = ["SSEDecoder", "ToolCallAccumulator", "StreamAssembler", "DONE_SENTINEL"]


class SSEDecoder:
    """Split a byte stream into ``data:`` payload strings.

    Blank lines, non-data fields (``event:``, ``id:``, comments) and the
    ``[DONE]`` sentinel are skipped.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.done = False

    def feed(self, data: bytes) -> List[str]:
        return self._consume(self._decoder.decode(data))

    def flush(self) -> List[str]:
        """Decode whatever is buffered once the body has ended."""
        payloads = self._consume(self._decoder.decode(b"", final=True))
        tail, self._pending = self._pending, ""
        payload = self._payload(tail)
        if payload is not None:
            payloads.append(payload)
        return payloads

    def _consume(self, text: str) -> List[str]:
        if not text:
            return []
        lines = (self._pending + text).split("\n")
        self._pending = lines.pop()
        payloads: List[str] = []
        for line in lines:
            payload = self._payload(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def _payload(self, line: str) -> str | None:
        stripped = line.strip()
        if not stripped or not stripped.startswith("data:"):
            return None
        payload = stripped[5:].strip()
        if payload == DONE_SENTINEL:
            self.done = True
            return None
        return payload or None


@dataclass(slots=True)
class _PendingToolCall:
    index: int
    id: str | None = None
    name: str | None = None
    arguments_parts: List[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Merge tool call fragments by slot index.

    ``id`` and ``name`` are taken from whichever fragment carries them;
    argument fragments are concatenated in arrival order.
    """

    def __init__(self) -> None:
        self._slots: Dict[int, _PendingToolCall] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def add(self, delta: Mapping[str, Any]) -> None:
        index = delta.get("index")
        if not isinstance(index, int):
            index = len(self._slots)
        slot = self._slots.get(index)
        if slot is None:
            slot = self._slots[index] = _PendingToolCall(index=index)
        if delta.get("id"):
            slot.id = delta["id"]
        function = delta.get("function") or {}
        if function.get("name"):
            slot.name = function["name"]
        fragment = function.get("arguments")
        if fragment:
            slot.arguments_parts.append(fragment)

    def finalize(self) -> List[ToolCall]:
        """Return completed calls in slot order, dropping unresolved or unparseable slots."""
        calls: List[ToolCall] = []
        for index in sorted(self._slots):
            slot = self._slots[index]
            if not slot.id or not slot.name:
                LOGGER.warning(
                    "Dropping streamed tool call in slot %s: missing %s",
                    index,
                    "id" if not slot.id else "name",
                )
                continue
            call = build_tool_call(slot.id, slot.name, "".join(slot.arguments_parts))
            if call is not None:
                calls.append(call)
        return calls


class StreamAssembler:
    """Accumulate streamed chunks into a final assistant message."""

    def __init__(self) -> None:
        self._content_parts: List[str] = []
        self._tool_calls = ToolCallAccumulator()
        self.chunk_count = 0
        self.skipped_chunks = 0

    @property
    def content(self) -> str:
        return "".join(self._content_parts)

    def feed_payload(self, payload: str) -> str | None:
        """Apply one ``data:`` payload and return its text delta, if any.

        A payload that is not valid JSON is logged and skipped.
        """
        try:
            chunk = json.loads(payload)
        except json.JSONDecodeError as exc:
            self.skipped_chunks += 1
            LOGGER.warning("Skipping malformed stream chunk (%s): %.200s", exc, payload)
            return None
        if not isinstance(chunk, Mapping):
            self.skipped_chunks += 1
            LOGGER.warning("Skipping non-object stream chunk: %.200s", payload)
            return None
        return self.feed_chunk(chunk)

    def feed_chunk(self, chunk: Mapping[str, Any]) -> str | None:
        self.chunk_count += 1
        choices = chunk.get("choices") or ()
        if not choices or not isinstance(choices[0], Mapping):
            return None
        delta = choices[0].get("delta") or {}
        for fragment in delta.get("tool_calls") or ():
            if isinstance(fragment, Mapping):
                self._tool_calls.add(fragment)
        text = delta.get("content")
        if isinstance(text, str) and text:
            self._content_parts.append(text)
            return text
        return None

    def finish(self) -> ChatMessage:
        return ChatMessage(role="assistant", content=self.content, tool_calls=self._tool_calls.finalize())
