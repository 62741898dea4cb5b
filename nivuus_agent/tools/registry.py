"""Tool registry and base tool class."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, model_validator

from nivuus_agent.exceptions import ToolArgumentError, ToolNotFoundError
from nivuus_agent.logging import get_logger
from nivuus_agent.memory import ActionStatus

if TYPE_CHECKING:
    from nivuus_agent.runtime_context import AgentContext

log = get_logger(__name__)

_TOOL_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    content: str = ""
    error: str | None = None
    status: ActionStatus | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self

    @property
    def outcome(self) -> ActionStatus:
        """Status to record in the action log."""
        if self.status is not None:
            return self.status
        return ActionStatus.SUCCESS if self.success else ActionStatus.FAILURE

    @property
    def payload(self) -> str:
        """Text handed back to the model as the tool-result content."""
        if self.success:
            return self.content
        if self.content and self.content.strip() != (self.error or "").strip():
            return f"Error: {self.error}\n{self.content}"
        return f"Error: {self.error}"


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    # Interactive tools hand their answer to the orchestrator as the next user turn.
    interactive: bool = False

    @abstractmethod
    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            context: Shared agent context (memory, history, config, human I/O)
            **kwargs: Tool-specific arguments, bound by declared name

        Returns:
            ToolResult with success status and content
        """
        pass

    @property
    def parameter_names(self) -> list[str]:
        return list((self.parameters.get("properties") or {}).keys())

    @property
    def required_parameters(self) -> list[str]:
        return list(self.parameters.get("required") or [])

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition for LLM.

        Returns:
            OpenAI function-style definition
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Check that every required parameter is present.

        Raises:
            ToolArgumentError if any required parameter is missing
        """
        missing = [field for field in self.required_parameters if arguments.get(field) is None]
        if missing:
            raise ToolArgumentError(self.name, f"Missing required argument(s): {', '.join(missing)}")

    def bind_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Keep only declared parameters, keyed by their exact names."""
        declared = set(self.parameter_names)
        extra = sorted(key for key in arguments if key not in declared)
        if extra:
            log.warning("Ignoring undeclared tool arguments", tool=self.name, arguments=extra)
        return {key: value for key, value in arguments.items() if key in declared}


class ToolRegistry:
    """Registry mapping tool names to their schema and executor."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    @staticmethod
    def _validate_tool(tool: Tool) -> None:
        if not tool.name:
            raise ValueError("Tool must have a name")
        if not _TOOL_NAME_RE.match(tool.name):
            raise ValueError(f"Invalid tool name: {tool.name!r}")
        schema = tool.parameters
        if not isinstance(schema, dict) or schema.get("type") != "object":
            raise ValueError(f"Tool '{tool.name}' parameters must be an object schema")
        properties = schema.get("properties") or {}
        if not isinstance(properties, dict):
            raise ValueError(f"Tool '{tool.name}' properties must be a mapping")
        undeclared = [field for field in schema.get("required") or [] if field not in properties]
        if undeclared:
            raise ValueError(
                f"Tool '{tool.name}' requires undeclared parameter(s): {', '.join(undeclared)}"
            )

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register

        Raises:
            ValueError if the tool schema is invalid or the name is taken
        """
        self._validate_tool(tool)
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        """Unregister a tool.

        Args:
            name: Tool name to unregister
        """
        self._tools.pop(name, None)

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by exact name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools)

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions for LLM.

        Returns:
            List of OpenAI function-style definitions
        """
        return [tool.get_definition() for tool in self._tools.values()]

    async def close(self) -> None:
        """Release resources held by tools (HTTP clients)."""
        for tool in self._tools.values():
            closer = getattr(tool, "close", None)
            if callable(closer):
                await closer()
