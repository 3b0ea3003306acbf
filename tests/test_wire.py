"""Tests for the chat message <-> wire format mapping."""

from __future__ import annotations

import json

import pytest

from agentpad.ai.errors import ApiError
from agentpad.ai.wire import (
    from_wire_completion,
    parse_tool_arguments,
    serialize_result,
    to_wire_messages,
)
from agentpad.chat.message_model import ChatMessage, ToolCall
from tests.helpers import completion_body, wire_tool_call


class TestOutbound:
    def test_plain_messages(self) -> None:
        wire = to_wire_messages([ChatMessage(role="system", content="Be brief"), ChatMessage(role="user", content="hi")])

        assert wire == [{"role": "system", "content": "Be brief"}, {"role": "user", "content": "hi"}]

    def test_settled_tool_calls_follow_their_parent(self) -> None:
        first = ToolCall(id="call_1", name="read")
        first.settle("document text")
        second = ToolCall(id="call_2", name="write", arguments={"content": "x"})
        second.fail("Missing required argument: content")
        assistant = ChatMessage(role="assistant", content="", tool_calls=[first, second])

        wire = to_wire_messages([ChatMessage(role="user", content="go"), assistant, ChatMessage(role="user", content="next")])

        assert [item["role"] for item in wire] == ["user", "assistant", "tool", "tool", "user"]
        assert wire[1]["tool_calls"][1] == {
            "id": "call_2",
            "type": "function",
            "function": {"name": "write", "arguments": '{"content": "x"}'},
        }
        assert wire[2] == {"role": "tool", "tool_call_id": "call_1", "name": "read", "content": '"document text"'}
        assert json.loads(wire[3]["content"]) == {"error": "Missing required argument: content"}

    def test_pending_calls_emit_no_tool_message(self) -> None:
        assistant = ChatMessage(role="assistant", content=None, tool_calls=[ToolCall(id="c", name="ls")])

        wire = to_wire_messages([assistant])

        assert len(wire) == 1
        assert wire[0]["content"] is None

    def test_null_result_is_still_reported(self) -> None:
        call = ToolCall(id="c", name="noop")
        call.settle(None)

        wire = to_wire_messages([ChatMessage(role="assistant", tool_calls=[call])])

        assert wire[-1]["content"] == "null"

    def test_serialize_result_keeps_unicode(self) -> None:
        assert serialize_result({"text": "naïve"}) == '{"text": "naïve"}'


class TestInbound:
    def test_completion_with_tool_calls(self) -> None:
        message = from_wire_completion(
            completion_body(None, [wire_tool_call("call_1", "read_workspace_file", {"path": "test.txt"})])
        )

        assert message.role == "assistant"
        assert message.content == ""
        assert message.tool_calls[0].arguments == {"path": "test.txt"}
        assert message.tool_calls[0].settled is False

    def test_malformed_arguments_drop_the_call(self) -> None:
        message = from_wire_completion(
            completion_body(
                "hi",
                [wire_tool_call("bad", "grep", "{oops"), wire_tool_call("good", "read", "")],
            )
        )

        assert [call.id for call in message.tool_calls] == ["good"]
        assert message.tool_calls[0].arguments == {}

    def test_missing_choices_raise(self) -> None:
        with pytest.raises(ApiError):
            from_wire_completion({"choices": []})

    @pytest.mark.parametrize("raw", ["[1, 2]", "not json", '"text"'])
    def test_parse_tool_arguments_rejects_non_objects(self, raw: str) -> None:
        assert parse_tool_arguments(raw) is None

    def test_round_trip_reproduces_message(self) -> None:
        original = ChatMessage(
            role="assistant",
            content="Working on it",
            tool_calls=[ToolCall(id="call_7", name="replace", arguments={"target": "a", "newContent": "b"})],
        )
        [wire] = to_wire_messages([original])

        decoded = from_wire_completion({"choices": [{"index": 0, "message": wire}]})

        assert decoded.content == original.content
        assert [(c.id, c.name, c.arguments) for c in decoded.tool_calls] == [
            (c.id, c.name, c.arguments) for c in original.tool_calls
        ]
