"""Tool dispatcher: validate a tool call against its schema, then run it.

Validation happens in a fixed order: the tool must exist and be enabled,
every required parameter must be present and non-null, and every supplied
parameter must match its declared JSON type. Only then is the tool awaited.
Errors raised by the tool itself (document or workspace failures) propagate
unchanged.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from ..tools.base import ToolContext
from ..tools.errors import InvalidArgumentTypeError, MissingArgumentError, ToolError, UnknownToolError
from ..tools.registry import ToolRegistration, ToolRegistry, ToolSchema

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Dispatch Result
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class DispatchResult:
    """Result of a successful tool dispatch.

    Attributes:
        tool_name: Name of the tool executed.
        result: The tool's return value.
        execution_time_ms: Execution time in milliseconds.
        writes_document: Whether the tool mutates the document.
    """

    tool_name: str
    result: Any
    execution_time_ms: float = 0.0
    writes_document: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tool_name": self.tool_name,
            "result": self.result,
            "execution_time_ms": self.execution_time_ms,
        }
        if self.metadata:
            data["metadata"] = self.metadata
        return data


# -----------------------------------------------------------------------------
# Dispatch Listener
# -----------------------------------------------------------------------------


class DispatchListener(Protocol):
    """Callback protocol for dispatch events."""

    def on_tool_start(self, tool_name: str, arguments: Mapping[str, Any]) -> None:
        ...

    def on_tool_complete(self, result: DispatchResult) -> None:
        ...

    def on_tool_error(self, tool_name: str, error: Exception) -> None:
        ...


# -----------------------------------------------------------------------------
# Argument validation
# -----------------------------------------------------------------------------


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def matches_type(value: Any, expected: str) -> bool:
    """Return ``True`` when ``value`` fits the JSON Schema primitive ``expected``."""

    if expected == "string":
        return isinstance(value, str)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "object":
        return isinstance(value, Mapping)
    if expected == "array":
        return isinstance(value, (list, tuple))
    return True


def validate_arguments(schema: ToolSchema, arguments: Mapping[str, Any]) -> None:
    """Raise if a required parameter is missing or a supplied value has the wrong type."""

    for param in schema.parameters:
        if param.required and arguments.get(param.name) is None:
            raise MissingArgumentError(argument=param.name)
    for param in schema.parameters:
        value = arguments.get(param.name)
        if value is None:
            continue
        if not matches_type(value, param.type):
            raise InvalidArgumentTypeError(argument=param.name, expected=param.type, actual=_type_name(value))


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Routes tool calls to registered implementations.

    Example:
        dispatcher = ToolDispatcher(build_default_registry())
        result = await dispatcher.dispatch("read", {}, context)
    """

    def __init__(self, registry: ToolRegistry, *, listener: DispatchListener | None = None) -> None:
        self._registry = registry
        self._listener = listener

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def set_listener(self, listener: DispatchListener | None) -> None:
        self._listener = listener

    def tool_definitions(self) -> list[dict[str, Any]]:
        """Enabled tools in the format sent to the model."""
        return self._registry.to_openai_tools()

    async def dispatch(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None,
        context: ToolContext,
    ) -> DispatchResult:
        """Validate and execute one tool call.

        Raises:
            UnknownToolError: The tool is not registered or is disabled.
            MissingArgumentError: A required parameter is absent or null.
            InvalidArgumentTypeError: A parameter has the wrong JSON type.
        """
        params = dict(arguments or {})
        start = time.perf_counter()
        self._notify("on_tool_start", tool_name, params)

        try:
            registration = self._resolve(tool_name)
            validate_arguments(registration.schema, params)
            LOGGER.debug("Executing tool %s", tool_name)
            value = await registration.impl.run(context, params)
        except Exception as exc:
            if isinstance(exc, ToolError):
                LOGGER.info("Tool %s rejected: %s", tool_name, exc)
            else:
                LOGGER.info("Tool %s failed: %s", tool_name, exc)
            self._notify("on_tool_error", tool_name, exc)
            raise

        result = DispatchResult(
            tool_name=tool_name,
            result=value,
            execution_time_ms=(time.perf_counter() - start) * 1000.0,
            writes_document=registration.schema.writes_document,
        )
        self._notify("on_tool_complete", result)
        return result

    def _resolve(self, tool_name: str) -> ToolRegistration:
        registration = self._registry.get_registration(tool_name)
        if registration is None or not registration.enabled:
            raise UnknownToolError(tool_name=tool_name)
        return registration

    def _notify(self, hook: str, *args: Any) -> None:
        if self._listener is None:
            return
        try:
            getattr(self._listener, hook)(*args)
        except Exception:
            LOGGER.debug("Listener %s failed", hook, exc_info=True)


__all__ = [
    "DispatchListener",
    "DispatchResult",
    "ToolDispatcher",
    "matches_type",
    "validate_arguments",
]
