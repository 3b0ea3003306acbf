"""Tool dispatch used by the conversation engine."""

from .tool_dispatcher import DispatchListener, DispatchResult, ToolDispatcher

__all__ = ["DispatchListener", "DispatchResult", "ToolDispatcher"]
