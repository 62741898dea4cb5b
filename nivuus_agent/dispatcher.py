"""Sequential execution of the tool calls requested by one assistant turn."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from nivuus_agent.conversation import ToolCallRequest, ToolResultTurn
from nivuus_agent.exceptions import ToolArgumentError, ToolExecutionError, ToolNotFoundError
from nivuus_agent.logging import get_logger
from nivuus_agent.memory import ActionStatus
from nivuus_agent.runtime_context import AgentContext
from nivuus_agent.tools.registry import ToolRegistry, ToolResult

log = get_logger(__name__)


@dataclass
class DispatchOutcome:
    """Tool-result turns of one batch, plus the operator's answer if one was asked."""

    turns: list[ToolResultTurn] = field(default_factory=list)
    interactive_answer: str | None = None

    @property
    def asked_user(self) -> bool:
        return self.interactive_answer is not None


def parse_arguments(raw: str) -> dict[str, Any]:
    """Decode a tool-call argument string into a JSON object.

    Raises:
        ValueError if the string is not a JSON object
    """
    text = (raw or "").strip()
    if not text:
        return {}
    decoded = json.loads(text)
    if not isinstance(decoded, dict):
        raise ValueError(f"expected a JSON object, got {type(decoded).__name__}")
    return decoded


class ToolDispatcher:
    """Run tool calls one at a time, recording every attempt and outcome.

    No error raised while handling a single call leaves this class: each one
    becomes a ``Failure`` log entry and an error tool-result turn, and the
    batch moves on to the next request.
    """

    def __init__(self, registry: ToolRegistry, context: AgentContext):
        self.registry = registry
        self.context = context

    @staticmethod
    def _action_type(name: str) -> str:
        return f"Tool: {name}"

    def _record(self, request: ToolCallRequest, content: str) -> ToolResultTurn:
        turn = ToolResultTurn(tool_call_id=request.id, name=request.name, content=content)
        self.context.history.append(turn)
        return turn

    def _fail(self, request: ToolCallRequest, target: str, message: str) -> ToolResultTurn:
        self.context.memory.log_action(
            self._action_type(request.name), target, ActionStatus.FAILURE, message
        )
        return self._record(request, f"Error: {message}")

    async def _dispatch_one(self, request: ToolCallRequest) -> tuple[ToolResultTurn, ToolResult | None]:
        memory = self.context.memory
        action_type = self._action_type(request.name)

        try:
            arguments = parse_arguments(request.arguments)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            log.warning("Malformed tool arguments", tool=request.name, error=str(e))
            message = f"Invalid JSON arguments for tool {request.name}: {e}"
            return self._fail(request, request.arguments, message), None

        target = json.dumps(arguments, ensure_ascii=False)
        memory.log_action(action_type, target, ActionStatus.ATTEMPTED)

        try:
            tool = self.registry.get(request.name)
            tool.validate_arguments(arguments)
        except (ToolNotFoundError, ToolArgumentError) as e:
            log.warning("Tool call rejected", tool=request.name, error=str(e))
            return self._fail(request, target, str(e)), None

        self.context.io.show_tool_call(request.name, arguments)
        log.info("Executing tool", tool=request.name, call_id=request.id)
        try:
            result = await tool.execute(self.context, **tool.bind_arguments(arguments))
        except Exception as e:
            error = ToolExecutionError(request.name, str(e))
            log.error("Tool execution failed", tool=request.name, error=str(e), exc_info=True)
            return self._fail(request, target, str(error)), None

        memory.log_action(
            action_type,
            target,
            result.outcome,
            None if result.success else result.error,
        )
        return self._record(request, result.payload), result

    async def dispatch(self, requests: list[ToolCallRequest]) -> DispatchOutcome:
        """Execute ``requests`` strictly in order and append one result turn each."""
        outcome = DispatchOutcome()
        for request in requests:
            turn, result = await self._dispatch_one(request)
            outcome.turns.append(turn)
            if result is None or not result.success:
                continue
            if self.registry.has_tool(request.name) and self.registry.get(request.name).interactive:
                outcome.interactive_answer = result.content
        return outcome
