"""Tests for the conversation engine."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Mapping, Sequence

import pytest

from agentpad.ai.client import AIClient, AIStreamEvent, ClientSettings
from agentpad.ai.errors import ApiError
from agentpad.ai.orchestration.tool_dispatcher import ToolDispatcher
from agentpad.ai.tools import ToolContext, build_default_registry
from agentpad.ai.wire import to_wire_messages
from agentpad.chat.errors import SessionBusyError, SessionNotFoundError
from agentpad.chat.message_model import ChatMessage, SessionState, ToolCall
from agentpad.chat.session_manager import ChatSessionManager
from agentpad.editor.document_service import DocumentService
from agentpad.events import (
    ConversationFailed,
    EventBus,
    MessageAdded,
    MessageUpdated,
    SessionStateChanged,
    StreamingChunk,
)
from agentpad.services.settings import ProviderProfile, SecretVault
from tests.helpers import EventRecorder, MemoryWorkspace, ScriptedTransport, sse_response, stream_chunk


def _assistant(content: str = "", *calls: ToolCall) -> ChatMessage:
    return ChatMessage(role="assistant", content=content, tool_calls=list(calls))


class ScriptedClient:
    """Replays canned assistant replies; an exception in the script is raised instead."""

    def __init__(self, *replies: ChatMessage | Exception) -> None:
        self.replies = list(replies)
        self.requests: list[list[dict[str, Any]]] = []
        self.tools: list[Any] = []
        self.gate: asyncio.Event | None = None
        self.complete_calls = 0

    def _next(self, messages: Sequence[ChatMessage], tools: Any) -> ChatMessage:
        self.requests.append(to_wire_messages(messages))
        self.tools.append(tools)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def stream_chat(
        self,
        provider: ProviderProfile,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> AsyncIterator[AIStreamEvent]:
        if self.gate is not None:
            await self.gate.wait()
        reply = self._next(messages, tools)
        for word in (reply.content or "").split(" "):
            if word:
                yield AIStreamEvent(type="content.delta", content=word)
        yield AIStreamEvent(type="message.done", message=reply)

    async def complete(
        self,
        provider: ProviderProfile,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> ChatMessage:
        self.complete_calls += 1
        return self._next(messages, tools)


class _StreamBreaksClient(ScriptedClient):
    """Streams ``deltas`` and then raises ``error`` instead of finishing."""

    def __init__(self, deltas: Sequence[str], error: Exception) -> None:
        super().__init__()
        self.deltas = list(deltas)
        self.error = error

    async def stream_chat(
        self,
        provider: ProviderProfile,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> AsyncIterator[AIStreamEvent]:
        self.requests.append(to_wire_messages(messages))
        for delta in self.deltas:
            yield AIStreamEvent(type="content.delta", content=delta)
        raise self.error


class _GatedDispatcher(ToolDispatcher):
    """Holds every dispatch until ``gate`` opens."""

    def __init__(self) -> None:
        super().__init__(build_default_registry())
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def dispatch(self, tool_name: str, arguments: Mapping[str, Any] | None, context: ToolContext) -> Any:
        self.started.set()
        await self.gate.wait()
        return await super().dispatch(tool_name, arguments, context)


@pytest.fixture
def context(loaded_document: DocumentService, memory_workspace: MemoryWorkspace) -> ToolContext:
    return ToolContext(document=loaded_document, workspace=memory_workspace)


def _manager(client: Any, event_bus: EventBus, **kwargs: Any) -> ChatSessionManager:
    return ChatSessionManager(client, ToolDispatcher(build_default_registry()), event_bus=event_bus, **kwargs)


class TestConversationLoop:
    @pytest.mark.asyncio
    async def test_plain_reply_settles_to_idle(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(_assistant("Hello there"))
        manager = _manager(client, event_bus)
        recorder = EventRecorder(event_bus, MessageAdded, MessageUpdated, StreamingChunk)
        session = manager.create_session("test-model")

        reply = await manager.send_message(session.id, "Hi", provider, context=context)

        assert reply is not None and reply.content == "Hello there"
        assert session.state is SessionState.IDLE
        assert [m.role for m in manager.get_messages(session.id)] == ["user", "assistant"]
        placeholder = recorder.of(MessageAdded)[1].message
        assert placeholder.id == reply.id
        assert [chunk.content for chunk in recorder.of(StreamingChunk)] == ["Hello", "there"]
        assert client.requests[0] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_two_tool_rounds_then_final_reply(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(
            _assistant("", ToolCall(id="c1", name="read")),
            _assistant("Searching", ToolCall(id="c2", name="grep", arguments={"pattern": "hello"})),
            _assistant("All done"),
        )
        manager = _manager(client, event_bus)
        recorder = EventRecorder(event_bus, SessionStateChanged)
        session = manager.create_session("test-model")

        reply = await manager.send_message(session.id, "Look around", provider, context=context)

        states = [event.current for event in recorder.of(SessionStateChanged)]
        assert states == [
            "awaiting_assistant",
            "executing_tools",
            "awaiting_assistant",
            "executing_tools",
            "awaiting_assistant",
            "idle",
        ]
        assert states.count("executing_tools") == 2
        messages = manager.get_messages(session.id)
        assert [m.role for m in messages] == ["user", "assistant", "assistant", "assistant"]
        assert reply is messages[-1] and reply.content == "All done"
        assert messages[1].tool_calls[0].result == "# Notes\nhello world\n"
        assert messages[2].tool_calls[0].result[0]["line"] == 2

    @pytest.mark.asyncio
    async def test_history_sent_each_turn_includes_tool_results(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(_assistant("", ToolCall(id="c1", name="read")), _assistant("ok"))
        manager = _manager(client, event_bus)
        session = manager.create_session("test-model")

        await manager.send_message(session.id, "Read it", provider, context=context)

        second = client.requests[1]
        assert [item["role"] for item in second] == ["user", "assistant", "tool"]
        assert second[2]["tool_call_id"] == "c1"
        assert json.loads(second[2]["content"]) == "# Notes\nhello world\n"

    @pytest.mark.asyncio
    async def test_tool_failure_is_reported_to_the_model(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(
            _assistant("", ToolCall(id="c1", name="write"), ToolCall(id="c2", name="write", arguments={"content": "!"})),
            _assistant("Fixed"),
        )
        manager = _manager(client, event_bus)
        session = manager.create_session("test-model")

        await manager.send_message(session.id, "Write", provider, context=context)

        failed, succeeded = manager.get_messages(session.id)[1].tool_calls
        assert failed.result == {"error": "Missing required argument: content"}
        assert failed.failed is True
        assert succeeded.result["success"] is True
        assert context.document.get_content().endswith("!")
        tool_messages = [item for item in client.requests[1] if item["role"] == "tool"]
        assert json.loads(tool_messages[0]["content"]) == {"error": "Missing required argument: content"}

    @pytest.mark.asyncio
    async def test_write_snapshot_is_tagged_with_assistant_message(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(
            _assistant("", ToolCall(id="c1", name="write", arguments={"content": "more"})),
            _assistant("done"),
        )
        manager = _manager(client, event_bus)
        session = manager.create_session("test-model")

        await manager.send_message(session.id, "Append", provider, context=context)

        requesting = manager.get_messages(session.id)[1]
        assert context.document.snapshots()[-1].message_id == requesting.id

    @pytest.mark.asyncio
    async def test_tools_disabled_sends_no_definitions(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(_assistant("plain"))
        manager = _manager(client, event_bus)
        session = manager.create_session("test-model", tools_enabled=False)

        await manager.send_message(session.id, "Hi", provider, context=context)

        assert client.tools == [None]

    @pytest.mark.asyncio
    async def test_non_streaming_mode_uses_complete(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(_assistant("whole"))
        manager = _manager(client, event_bus, stream_responses=False)
        session = manager.create_session("test-model")

        reply = await manager.send_message(session.id, "Hi", provider, context=context)

        assert client.complete_calls == 1
        assert reply is not None and reply.content == "whole"

    @pytest.mark.asyncio
    async def test_iteration_cap_stops_the_loop(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(
            _assistant("", ToolCall(id="c1", name="read")),
            _assistant("", ToolCall(id="c2", name="read"), ToolCall(id="c3", name="ls")),
            _assistant("Picking up again"),
        )
        manager = _manager(client, event_bus, max_tool_iterations=1)
        session = manager.create_session("test-model")

        reply = await manager.send_message(session.id, "Loop", provider, context=context)

        assert session.state is SessionState.IDLE
        assert len(client.requests) == 2
        assert reply is not None
        assert [call.result for call in reply.tool_calls] == [{"error": "Tool iteration limit reached"}] * 2

        follow_up = await manager.send_message(session.id, "Continue", provider, context=context)

        assert follow_up is not None and follow_up.content == "Picking up again"
        wire = client.requests[2]
        requested = [call["id"] for item in wire if item["role"] == "assistant" for call in item.get("tool_calls", [])]
        answered = [item["tool_call_id"] for item in wire if item["role"] == "tool"]
        assert requested == answered == ["c1", "c2", "c3"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_provider_error_rolls_back_placeholder(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(ApiError("Provider error (500)", status_code=500))
        manager = _manager(client, event_bus)
        recorder = EventRecorder(event_bus, ConversationFailed)
        session = manager.create_session("test-model")

        reply = await manager.send_message(session.id, "Hi", provider, context=context)

        assert reply is None
        assert session.state is SessionState.IDLE
        assert [m.role for m in manager.get_messages(session.id)] == ["user"]
        [failure] = recorder.of(ConversationFailed)
        assert failure.message == "Provider error (500)"
        assert failure.error_type == "ApiError"

    @pytest.mark.asyncio
    async def test_failure_after_tool_round_keeps_settled_history(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(_assistant("", ToolCall(id="c1", name="read")), ApiError("boom"))
        manager = _manager(client, event_bus)
        session = manager.create_session("test-model")

        await manager.send_message(session.id, "Hi", provider, context=context)

        messages = manager.get_messages(session.id)
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].tool_calls[0].settled is True

    @pytest.mark.asyncio
    async def test_unknown_session(self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext) -> None:
        manager = _manager(ScriptedClient(), event_bus)
        recorder = EventRecorder(event_bus, ConversationFailed)

        with pytest.raises(SessionNotFoundError):
            await manager.send_message("session-missing", "Hi", provider, context=context)

        assert recorder.of(ConversationFailed)[0].session_id == "session-missing"

    @pytest.mark.asyncio
    async def test_concurrent_send_is_rejected(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(_assistant("slow"))
        client.gate = asyncio.Event()
        manager = _manager(client, event_bus)
        session = manager.create_session("test-model")

        first = asyncio.create_task(manager.send_message(session.id, "one", provider, context=context))
        await asyncio.sleep(0)

        with pytest.raises(SessionBusyError):
            await manager.send_message(session.id, "two", provider, context=context)
        with pytest.raises(SessionBusyError):
            manager.clear_session(session.id)

        client.gate.set()
        reply = await first
        assert reply is not None and reply.content == "slow"
        assert [m.content for m in manager.get_messages(session.id)] == ["one", "slow"]

    @pytest.mark.asyncio
    async def test_cancellation_returns_to_idle(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(_assistant("never"))
        client.gate = asyncio.Event()
        manager = _manager(client, event_bus)
        session = manager.create_session("test-model")

        task = asyncio.create_task(manager.send_message(session.id, "one", provider, context=context))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.state is SessionState.IDLE
        assert [m.role for m in manager.get_messages(session.id)] == ["user"]

    @pytest.mark.asyncio
    async def test_error_after_streamed_deltas_rolls_back(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = _StreamBreaksClient(["Partial ", "answer"], ApiError("Provider error (502)", status_code=502))
        manager = _manager(client, event_bus)
        recorder = EventRecorder(event_bus, StreamingChunk, ConversationFailed)
        session = manager.create_session("test-model")

        reply = await manager.send_message(session.id, "Hi", provider, context=context)

        assert reply is None
        assert session.state is SessionState.IDLE
        assert [m.role for m in manager.get_messages(session.id)] == ["user"]
        assert [type(event).__name__ for event in recorder.events] == [
            "StreamingChunk",
            "StreamingChunk",
            "ConversationFailed",
        ]
        assert recorder.of(ConversationFailed)[0].message == "Provider error (502)"

    @pytest.mark.asyncio
    async def test_cancellation_during_tools_answers_every_call(
        self, event_bus: EventBus, provider: ProviderProfile, context: ToolContext
    ) -> None:
        client = ScriptedClient(
            _assistant("", ToolCall(id="c1", name="read"), ToolCall(id="c2", name="ls")),
            _assistant("Fresh start"),
        )
        dispatcher = _GatedDispatcher()
        manager = ChatSessionManager(client, dispatcher, event_bus=event_bus)
        session = manager.create_session("test-model")

        task = asyncio.create_task(manager.send_message(session.id, "Go", provider, context=context))
        await dispatcher.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.state is SessionState.IDLE
        calls = manager.get_messages(session.id)[1].tool_calls
        assert [call.result for call in calls] == [{"error": "Tool execution cancelled"}] * 2

        dispatcher.gate.set()
        await manager.send_message(session.id, "Again", provider, context=context)

        answered = [item["tool_call_id"] for item in client.requests[1] if item["role"] == "tool"]
        assert answered == ["c1", "c2"]


class TestSessionBookkeeping:
    def test_update_clear_and_delete(self, event_bus: EventBus) -> None:
        manager = _manager(ScriptedClient(), event_bus)
        session = manager.create_session("a")
        session.messages.append(ChatMessage(role="user", content="x"))

        manager.update_session(session.id, selected_model="b", tools_enabled=False)
        manager.clear_session(session.id)

        assert (session.selected_model, session.tools_enabled) == ("b", False)
        assert manager.get_messages(session.id) == []
        assert manager.delete_session(session.id) is True
        assert manager.delete_session(session.id) is False
        assert manager.get_session(session.id) is None
        with pytest.raises(SessionNotFoundError):
            manager.get_messages(session.id)

    def test_get_messages_returns_copy(self, event_bus: EventBus) -> None:
        manager = _manager(ScriptedClient(), event_bus)
        session = manager.create_session("a")

        manager.get_messages(session.id).append(ChatMessage(role="user", content="sneaky"))

        assert session.messages == []

    def test_rejects_non_positive_iteration_cap(self, event_bus: EventBus) -> None:
        with pytest.raises(ValueError):
            _manager(ScriptedClient(), event_bus, max_tool_iterations=0)


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_streamed_tool_round_trip_over_http(
        self,
        event_bus: EventBus,
        vault: SecretVault,
        provider: ProviderProfile,
        context: ToolContext,
    ) -> None:
        transport = ScriptedTransport(
            sse_response(
                [
                    stream_chunk(tool_calls=[{"index": 0, "id": "call_1", "function": {"name": "write", "arguments": '{"con'}}]),
                    stream_chunk(tool_calls=[{"index": 0, "function": {"arguments": 'tent": " appended"}'}}]),
                ]
            ),
            sse_response([stream_chunk("Done"), stream_chunk(".")]),
        )
        client = AIClient(vault, settings=ClientSettings(), http_client=transport.client())
        manager = _manager(client, event_bus)
        session = manager.create_session("test-model")

        reply = await manager.send_message(session.id, "Append something", provider, context=context)

        assert reply is not None and reply.content == "Done."
        assert context.document.get_content().endswith(" appended")
        second = transport.json_bodies()[1]
        assert [item["role"] for item in second["messages"]] == ["user", "assistant", "tool"]
        assert second["messages"][1]["tool_calls"][0]["function"] == {
            "name": "write",
            "arguments": '{"content": " appended"}',
        }
        assert json.loads(second["messages"][2]["content"])["success"] is True
        assert {tool["function"]["name"] for tool in second["tools"]} >= {"read", "write", "ls"}
        await client.aclose()
