"""Tools exposing the agent memory to the model."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from nivuus_agent.exceptions import MemoryPathError
from nivuus_agent.logging import get_logger
from nivuus_agent.memory import NOT_FOUND
from nivuus_agent.tools.registry import Tool, ToolResult

if TYPE_CHECKING:
    from nivuus_agent.runtime_context import AgentContext

log = get_logger(__name__)


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class GetMemoryKeysTool(Tool):
    """List the keys stored under a memory path."""

    name = "get_memory_keys"
    description = (
        "List the keys of the memory object at a dot-separated path "
        "(the memory root when no path is given)."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Dot-separated memory path, e.g. 'system_info' (optional)",
            },
        },
        "required": [],
    }

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        path = kwargs.get("path")
        try:
            keys = context.memory.get_keys(str(path) if path else None)
        except MemoryPathError as e:
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=True, content=_dumps(keys))


class GetMemoryValueTool(Tool):
    """Read one value from memory."""

    name = "get_memory_value"
    description = "Read the value stored at a dot-separated memory path, e.g. 'system_info.os'."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Dot-separated memory path",
            },
        },
        "required": ["path"],
    }

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        path = str(kwargs["path"])
        try:
            value = context.memory.get_value(path)
        except MemoryPathError as e:
            return ToolResult(success=False, error=str(e))
        if value is NOT_FOUND:
            return ToolResult(success=False, error=f"Path not found in memory: {path}")
        return ToolResult(success=True, content=_dumps(value))


class SetMemoryValueTool(Tool):
    """Store a value in memory."""

    name = "set_memory_value"
    description = (
        "Store a value at a dot-separated memory path, creating intermediate objects. "
        "Use it to remember facts, preferences and notes across sessions."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Dot-separated memory path, e.g. 'notes' or 'projects.web.url'",
            },
            "value": {
                "description": "Value to store (any JSON value)",
            },
        },
        "required": ["path", "value"],
    }

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        path = str(kwargs["path"])
        try:
            context.memory.set_value(path, kwargs["value"])
        except MemoryPathError as e:
            return ToolResult(success=False, error=str(e))
        log.info("Memory value set", path=path)
        return ToolResult(success=True, content=f"Memory updated at path: {path}")
