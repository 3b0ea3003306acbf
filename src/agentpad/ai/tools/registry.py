"""Declarative registry for the agent's tools.

Each tool is registered with a :class:`ToolSchema` describing its parameters;
the dispatcher validates arguments against that schema and the client sends
it to the model in OpenAI function-calling format.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

LOGGER = logging.getLogger(__name__)

JSON_TYPES = ("string", "integer", "number", "boolean", "object", "array")


# -----------------------------------------------------------------------------
# Tool Schema Types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ParameterSchema:
    """Schema for a single tool parameter.

    Attributes:
        name: Parameter name.
        type: JSON Schema type (string, integer, number, boolean, object, array).
        description: Human-readable description shown to the model.
        required: Whether the parameter must be present and non-null.
    """

    name: str
    type: str
    description: str
    required: bool = False

    def __post_init__(self) -> None:
        if self.type not in JSON_TYPES:
            raise ValueError(f"Unsupported parameter type {self.type!r} for {self.name}")

    def to_json_schema(self) -> dict[str, Any]:
        return {"type": self.type, "description": self.description}


@dataclass(slots=True)
class ToolSchema:
    """Complete schema for a tool.

    Attributes:
        name: Tool name (identifier).
        description: Human-readable description shown to the model.
        parameters: Declared parameters.
        writes_document: Whether the tool mutates the active document.
    """

    name: str
    description: str
    parameters: Sequence[ParameterSchema] = field(default_factory=list)
    writes_document: bool = False

    @property
    def required_parameters(self) -> list[str]:
        return [param.name for param in self.parameters if param.required]

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format for OpenAI function calling."""
        properties: dict[str, Any] = {}
        required: list[str] = []

        for param in self.parameters:
            properties[param.name] = param.to_json_schema()
            if param.required:
                required.append(param.name)

        schema: dict[str, Any] = {
            "type": "object",
            "properties": properties,
        }
        if required:
            schema["required"] = required
        return schema


# -----------------------------------------------------------------------------
# Tool Registration
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolRegistration:
    """A registered tool with its implementation and schema."""

    schema: ToolSchema
    impl: Any
    enabled: bool = True

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def description(self) -> str:
        return self.schema.description


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry for agent tools.

    Example:
        registry = ToolRegistry()
        registry.register(ReadDocumentTool())
        registry.to_openai_tools()
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolRegistration] = {}

    def register(self, tool: Any, *, schema: ToolSchema | None = None, enabled: bool = True) -> None:
        """Register ``tool``; its schema defaults to ``tool.schema``."""
        tool_schema = schema or getattr(tool, "schema", None)
        if not isinstance(tool_schema, ToolSchema):
            raise TypeError(f"Tool {tool!r} does not provide a ToolSchema")
        if tool_schema.name in self._tools:
            LOGGER.debug("Replacing registered tool: %s", tool_schema.name)
        self._tools[tool_schema.name] = ToolRegistration(schema=tool_schema, impl=tool, enabled=enabled)
        LOGGER.debug("Registered tool: %s", tool_schema.name)

    def unregister(self, name: str) -> bool:
        if self._tools.pop(name, None) is None:
            return False
        LOGGER.debug("Unregistered tool: %s", name)
        return True

    def set_enabled(self, name: str, enabled: bool) -> None:
        registration = self._tools.get(name)
        if registration is None:
            raise KeyError(name)
        registration.enabled = enabled

    def get_registration(self, name: str) -> ToolRegistration | None:
        return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered and enabled."""
        reg = self._tools.get(name)
        return reg is not None and reg.enabled

    def list_tools(self, *, enabled_only: bool = True) -> list[str]:
        return [name for name, reg in self._tools.items() if reg.enabled or not enabled_only]

    def get_all_schemas(self, *, enabled_only: bool = True) -> list[ToolSchema]:
        return [reg.schema for reg in self._tools.values() if reg.enabled or not enabled_only]

    def to_openai_tools(self, *, enabled_only: bool = True) -> list[dict[str, Any]]:
        """Convert registered tools to OpenAI function calling format."""
        tools: list[dict[str, Any]] = []
        for schema in self.get_all_schemas(enabled_only=enabled_only):
            tools.append({
                "type": "function",
                "function": {
                    "name": schema.name,
                    "description": schema.description,
                    "parameters": schema.to_json_schema(),
                },
            })
        return tools


__all__ = [
    "JSON_TYPES",
    "ParameterSchema",
    "ToolSchema",
    "ToolRegistration",
    "ToolRegistry",
]
