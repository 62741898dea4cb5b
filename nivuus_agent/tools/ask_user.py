"""Interactive question tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from nivuus_agent.tools.registry import Tool, ToolResult

if TYPE_CHECKING:
    from nivuus_agent.runtime_context import AgentContext


class AskUserTool(Tool):
    """Ask the operator a question and wait for the answer.

    The answer becomes the next user turn; no follow-up completion is
    requested in between.
    """

    name = "ask_user"
    description = "Ask the operator a question and wait for their answer."
    parameters = {
        "type": "object",
        "properties": {
            "question": {
                "type": "string",
                "description": "The question to ask",
            },
        },
        "required": ["question"],
    }
    interactive = True

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        answer = await context.io.ask(str(kwargs["question"]))
        return ToolResult(success=True, content=answer)
