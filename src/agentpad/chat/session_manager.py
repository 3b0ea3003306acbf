"""Conversation engine: drives the user -> assistant -> tools -> assistant loop.

Each session runs a small state machine::

    idle -> awaiting_assistant -> (executing_tools -> awaiting_assistant)* -> idle

While a turn is awaited the session holds a placeholder assistant message that
fills in as stream deltas arrive. Tool calls requested by the model are
dispatched one at a time in the order the model listed them and their results
are recorded on the calls themselves, so the wire history sent on the next
request carries one ``tool`` message per settled call. Calls that never run
because of the iteration limit or a cancellation are settled with an error
result, so no call id is left unanswered.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Sequence

from ..ai.client import AIClient
from ..ai.errors import AIClientError
from ..ai.orchestration.tool_dispatcher import ToolDispatcher
from ..ai.tools.base import ToolContext
from ..events import (
    ConversationFailed,
    EventBus,
    MessageAdded,
    MessageUpdated,
    SessionStateChanged,
    SessionUpdated,
    StreamingChunk,
)
from ..services.settings import ProviderProfile
from .errors import SessionBusyError, SessionNotFoundError
from .message_model import ChatMessage, ChatSession, SessionState, ToolCall

LOGGER = logging.getLogger(__name__)

TOOL_LIMIT_REACHED = "Tool iteration limit reached"
TOOL_CANCELLED = "Tool execution cancelled"


class ChatSessionManager:
    """Owns chat sessions and runs assistant turns against a provider.

    Example:
        manager = ChatSessionManager(client, dispatcher, event_bus=bus)
        session = manager.create_session("gpt-4o-mini")
        reply = await manager.send_message(session.id, "Tidy this up", provider, context=ctx)
    """

    def __init__(
        self,
        client: AIClient,
        dispatcher: ToolDispatcher,
        *,
        event_bus: EventBus | None = None,
        max_tool_iterations: int | None = None,
        stream_responses: bool = True,
    ) -> None:
        if max_tool_iterations is not None and max_tool_iterations < 1:
            raise ValueError("max_tool_iterations must be at least 1")
        self._client = client
        self._dispatcher = dispatcher
        self._event_bus = event_bus
        self._max_tool_iterations = max_tool_iterations
        self._stream_responses = stream_responses
        self._sessions: Dict[str, ChatSession] = {}

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    def create_session(self, model: str, *, tools_enabled: bool = True) -> ChatSession:
        session = ChatSession(selected_model=model, tools_enabled=tools_enabled)
        self._sessions[session.id] = session
        LOGGER.debug("Created session %s (model=%s)", session.id, model)
        self._publish(SessionUpdated(session_id=session.id))
        return session

    def get_session(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    def sessions(self) -> List[ChatSession]:
        return list(self._sessions.values())

    def get_messages(self, session_id: str) -> List[ChatMessage]:
        """Return a copy of the session's message list."""

        return list(self._require(session_id).messages)

    def update_session(
        self,
        session_id: str,
        *,
        selected_model: str | None = None,
        tools_enabled: bool | None = None,
    ) -> ChatSession:
        session = self._require(session_id)
        if selected_model is not None:
            session.selected_model = selected_model
        if tools_enabled is not None:
            session.tools_enabled = tools_enabled
        self._publish(SessionUpdated(session_id=session_id))
        return session

    def clear_session(self, session_id: str) -> None:
        """Drop every message from an idle session."""

        session = self._require(session_id)
        if not session.is_idle:
            raise SessionBusyError(session_id, session.state.value)
        session.messages.clear()
        self._publish(SessionUpdated(session_id=session_id))

    def delete_session(self, session_id: str) -> bool:
        """Forget a session. A turn in flight for it stops at its next step."""

        removed = self._sessions.pop(session_id, None)
        if removed is None:
            return False
        LOGGER.debug("Deleted session %s", session_id)
        self._publish(SessionUpdated(session_id=session_id))
        return True

    # ------------------------------------------------------------------
    # Conversation loop
    # ------------------------------------------------------------------

    async def send_message(
        self,
        session_id: str,
        text: str,
        provider: ProviderProfile,
        *,
        context: ToolContext,
        model: str | None = None,
    ) -> ChatMessage | None:
        """Append a user message and run the turn until the assistant stops calling tools.

        Returns the final assistant message, or ``None`` when a provider error
        rolled the turn back (a :class:`ConversationFailed` event describes it).

        Raises:
            SessionNotFoundError: ``session_id`` is unknown.
            SessionBusyError: The session is already running a turn.
        """

        session = self._sessions.get(session_id)
        if session is None:
            error = SessionNotFoundError(session_id)
            self._publish(
                ConversationFailed(session_id=session_id, message=error.message, error_type=type(error).__name__)
            )
            raise error
        if not session.is_idle:
            raise SessionBusyError(session_id, session.state.value)

        model_name = model or session.selected_model
        user_message = ChatMessage(role="user", content=text)
        session.messages.append(user_message)
        self._publish(MessageAdded(session_id=session_id, message=user_message))

        reply: ChatMessage | None = None
        iterations = 0
        self._transition(session, SessionState.AWAITING_ASSISTANT)
        try:
            while True:
                reply = await self._run_assistant_turn(session, provider, model_name)
                if reply is None:
                    return None
                if not reply.has_tool_calls or not self._is_live(session):
                    break
                if self._max_tool_iterations is not None and iterations >= self._max_tool_iterations:
                    LOGGER.warning(
                        "Session %s reached the tool iteration limit (%s); skipping %s call(s)",
                        session_id,
                        self._max_tool_iterations,
                        len(reply.tool_calls),
                    )
                    self._abandon_pending_calls(session, reply, TOOL_LIMIT_REACHED)
                    break
                self._transition(session, SessionState.EXECUTING_TOOLS)
                iterations += 1
                await self._execute_tool_calls(session, reply, context)
                if not self._is_live(session):
                    break
                self._transition(session, SessionState.AWAITING_ASSISTANT)
        finally:
            if reply is not None:
                # Every tool_call id must be answered before the next request.
                self._abandon_pending_calls(session, reply, TOOL_CANCELLED)
            self._transition(session, SessionState.IDLE)
        return reply

    async def _run_assistant_turn(
        self,
        session: ChatSession,
        provider: ProviderProfile,
        model: str,
    ) -> ChatMessage | None:
        history = list(session.messages)
        tools = self._dispatcher.tool_definitions() if session.tools_enabled else None

        placeholder = ChatMessage(role="assistant", content="")
        session.messages.append(placeholder)
        self._publish(MessageAdded(session_id=session.id, message=placeholder))

        try:
            if self._stream_responses:
                final = await self._stream_reply(session, placeholder, provider, model, history, tools)
            else:
                final = await self._client.complete(provider, model, history, tools=tools)
        except AIClientError as exc:
            LOGGER.error("Assistant turn failed for session %s: %s", session.id, exc)
            self._rollback(session, placeholder)
            self._transition(session, SessionState.IDLE)
            self._publish(
                ConversationFailed(session_id=session.id, message=exc.message, error_type=type(exc).__name__)
            )
            return None
        except BaseException:
            self._rollback(session, placeholder)
            raise

        placeholder.content = final.content or ""
        placeholder.tool_calls = list(final.tool_calls)
        self._publish(MessageUpdated(session_id=session.id, message=placeholder))
        return placeholder

    async def _stream_reply(
        self,
        session: ChatSession,
        placeholder: ChatMessage,
        provider: ProviderProfile,
        model: str,
        history: Sequence[ChatMessage],
        tools: Sequence[Mapping[str, Any]] | None,
    ) -> ChatMessage:
        final: ChatMessage | None = None
        async for event in self._client.stream_chat(provider, model, history, tools=tools):
            if event.type == "content.delta" and event.content:
                placeholder.content = (placeholder.content or "") + event.content
                self._publish(
                    StreamingChunk(session_id=session.id, message_id=placeholder.id, content=event.content)
                )
            elif event.type == "message.done" and event.message is not None:
                final = event.message
        if final is None:
            final = ChatMessage(role="assistant", content=placeholder.content or "")
        return final

    async def _execute_tool_calls(self, session: ChatSession, message: ChatMessage, context: ToolContext) -> None:
        call_context = dataclasses.replace(context, message_id=message.id)
        for call in message.tool_calls:
            if not self._is_live(session):
                LOGGER.info("Session %s was deleted; abandoning remaining tool calls", session.id)
                return
            await self._execute_tool_call(call, call_context)
            self._publish(MessageUpdated(session_id=session.id, message=message))

    async def _execute_tool_call(self, call: ToolCall, context: ToolContext) -> None:
        try:
            outcome = await self._dispatcher.dispatch(call.name, call.arguments, context)
        except Exception as exc:
            reason = getattr(exc, "message", None) or str(exc) or "Tool execution failed"
            LOGGER.warning("Tool call %s (%s) failed: %s", call.id, call.name, reason)
            call.fail(reason)
            return
        call.settle(outcome.result)

    def _abandon_pending_calls(self, session: ChatSession, message: ChatMessage, reason: str) -> None:
        pending = [call for call in message.tool_calls if not call.settled]
        if not pending:
            return
        for call in pending:
            call.fail(reason)
        LOGGER.info("Session %s: settled %d unexecuted tool call(s): %s", session.id, len(pending), reason)
        self._publish(MessageUpdated(session_id=session.id, message=message))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, session_id: str) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _is_live(self, session: ChatSession) -> bool:
        return self._sessions.get(session.id) is session

    def _rollback(self, session: ChatSession, placeholder: ChatMessage) -> None:
        session.messages = [message for message in session.messages if message.id != placeholder.id]
        self._publish(SessionUpdated(session_id=session.id))

    def _transition(self, session: ChatSession, state: SessionState) -> None:
        previous = session.state
        if previous is state:
            return
        session.state = state
        LOGGER.debug("Session %s: %s -> %s", session.id, previous.value, state.value)
        self._publish(SessionStateChanged(session_id=session.id, previous=previous.value, current=state.value))

    def _publish(self, event: Any) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)


__all__ = ["ChatSessionManager"]
