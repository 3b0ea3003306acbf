"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files::

    from tests.helpers import MemoryWorkspace, ScriptedTransport
"""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Callable, Iterable, Mapping

import httpx

from agentpad.editor.document_service import RetryPolicy
from agentpad.events import Event, EventBus
from agentpad.services.workspace import FileTreeNode


class MemoryWorkspace:
    """In-memory workspace; queue exceptions in ``read_failures``/``write_failures``."""

    def __init__(self, files: Mapping[str, str] | None = None) -> None:
        self.files: dict[str, str] = dict(files or {})
        self.reads = 0
        self.writes: list[tuple[str, str]] = []
        self.read_failures: list[BaseException] = []
        self.write_failures: list[BaseException] = []

    def resolve_path(self, relative_path: str) -> str:
        segments = [part for part in (relative_path or "").replace("\\", "/").strip().split("/") if part not in ("", ".")]
        if not segments or ".." in segments:
            raise ValueError(f"Invalid file path: {relative_path!r}")
        return "/".join(segments)

    async def read_text(self, ref: str) -> str:
        self.reads += 1
        if self.read_failures:
            raise self.read_failures.pop(0)
        try:
            return self.files[ref]
        except KeyError:
            raise FileNotFoundError(ref) from None

    async def write_text(self, ref: str, text: str) -> None:
        if self.write_failures:
            raise self.write_failures.pop(0)
        self.files[ref] = text
        self.writes.append((ref, text))

    async def list_tree(self, ref: str | None = None) -> FileTreeNode:
        root = FileTreeNode(name="", kind="directory", path="")
        for path in sorted(self.files):
            parent = root
            parts = path.split("/")
            for depth, part in enumerate(parts):
                node_path = "/".join(parts[: depth + 1])
                is_file = depth == len(parts) - 1
                existing = next((child for child in parent.children if child.name == part), None)
                if existing is None:
                    existing = FileTreeNode(name=part, kind="file" if is_file else "directory", path=node_path)
                    parent.children.append(existing)
                parent = existing
        _sort_tree(root)
        return root


def _sort_tree(node: FileTreeNode) -> None:
    node.children.sort(key=lambda item: (not item.is_directory, item.name.lower()))
    for child in node.children:
        _sort_tree(child)


class EventRecorder:
    """Collects every published event of the subscribed types, in order."""

    def __init__(self, bus: EventBus, *event_types: type[Event]) -> None:
        self.events: list[Event] = []
        self.by_type: dict[type[Event], list[Event]] = defaultdict(list)
        self._unsubscribers = [bus.subscribe(event_type, self._record) for event_type in event_types]

    def _record(self, event: Event) -> None:
        self.events.append(event)
        self.by_type[type(event)].append(event)

    def of(self, event_type: type[Event]) -> list[Any]:
        return list(self.by_type.get(event_type, []))

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()


NO_WAIT_RETRY = RetryPolicy(attempts=3, min_seconds=0.0, max_seconds=0.0)


# ---------------------------------------------------------------------------
# Wire helpers
# ---------------------------------------------------------------------------


def completion_body(content: str | None = "", tool_calls: Iterable[Mapping[str, Any]] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": content}
    calls = list(tool_calls or [])
    if calls:
        message["tool_calls"] = calls
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "test-model",
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if calls else "stop",
            }
        ],
    }


def wire_tool_call(call_id: str, name: str, arguments: Mapping[str, Any] | str) -> dict[str, Any]:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": raw}}


def stream_chunk(content: str | None = None, tool_calls: Iterable[Mapping[str, Any]] | None = None) -> dict[str, Any]:
    delta: dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = list(tool_calls)
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 0,
        "model": "test-model",
        "choices": [{"index": 0, "delta": delta, "finish_reason": None}],
    }


def sse_body(chunks: Iterable[Mapping[str, Any] | str], *, done: bool = True) -> bytes:
    lines = []
    for chunk in chunks:
        payload = chunk if isinstance(chunk, str) else json.dumps(chunk)
        lines.append(f"data: {payload}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def sse_response(chunks: Iterable[Mapping[str, Any] | str], *, done: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        content=sse_body(chunks, done=done),
    )


class ScriptedTransport:
    """``httpx.MockTransport`` handler replaying queued responses and recording requests."""

    def __init__(self, *responses: httpx.Response | Callable[[httpx.Request], httpx.Response]) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        response = self.responses.pop(0)
        if callable(response) and not isinstance(response, httpx.Response):
            return response(request)
        return response

    def json_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))
