"""Turn orchestration: the conversation loop between operator, model and tools."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from nivuus_agent.conversation import AssistantTurn, Turn, UserTurn
from nivuus_agent.dispatcher import ToolDispatcher
from nivuus_agent.exceptions import ErrorKind, classify_error
from nivuus_agent.instructions import InstructionLoader
from nivuus_agent.llm import LLMProvider, LLMResponse
from nivuus_agent.logging import get_logger
from nivuus_agent.memory import ActionStatus, render_memory_summary
from nivuus_agent.runtime_context import AgentContext
from nivuus_agent.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from nivuus_agent.persistence import ShutdownGuard

log = get_logger(__name__)

QUIT_COMMAND = "quit"


class TurnState(str, Enum):
    """Where the orchestrator currently is in the turn cycle."""

    INIT = "init"
    AWAITING_USER_TURN = "awaiting_user_turn"
    CALLING_COMPLETION = "calling_completion"
    DISPATCHING_TOOLS = "dispatching_tools"
    TERMINATED = "terminated"


def is_quit(content: str) -> bool:
    return content.strip().lower() == QUIT_COMMAND


class TurnOrchestrator:
    """Drive the loop until the operator quits or a fatal error occurs.

    Each iteration appends one user turn (an opener, the operator's answer
    to an ``ask_user`` question, or the auto-continue instruction), then
    calls the model and dispatches whatever tools it requests until it
    replies with free text, asks the operator a question, or the tool-round
    cap is reached.
    """

    def __init__(
        self,
        context: AgentContext,
        provider: LLMProvider,
        registry: ToolRegistry,
        instructions: InstructionLoader,
        guard: ShutdownGuard | None = None,
    ):
        self.context = context
        self.provider = provider
        self.registry = registry
        self.instructions = instructions
        self.guard = guard
        self.dispatcher = ToolDispatcher(registry, context)
        self.state = TurnState.INIT
        self._first_iteration = True
        self._pending_answer: str | None = None

    @property
    def history(self):
        return self.context.history

    @property
    def memory(self):
        return self.context.memory

    def next_user_content(self) -> str:
        """Pick the content of the next user turn and consume the pending answer."""
        if self._first_iteration:
            self._first_iteration = False
            self._pending_answer = None
            if self.memory.is_empty() and self.history.only_system():
                return self.instructions.proactive_discovery()
            return self.instructions.resume()
        if self._pending_answer is not None:
            answer, self._pending_answer = self._pending_answer, None
            return answer
        return self.instructions.auto_continue()

    def build_projection(self) -> list[Turn]:
        """Turns sent with one completion call; the memory reminder is never stored."""
        turns = self.history.turns
        if self.memory.is_empty():
            return turns
        summary = render_memory_summary(self.memory, self.context.config.memory.summary_entries)
        reminder = UserTurn(content=self.instructions.memory_reminder(summary))
        return [*turns[:1], reminder, *turns[1:]]

    async def _complete(self) -> LLMResponse:
        self.state = TurnState.CALLING_COMPLETION
        projection = self.build_projection()
        with self.context.io.status("Thinking..."):
            return await self.provider.complete(projection, tools=self.registry.get_definitions())

    def _handle_reply(self, turn: AssistantTurn) -> None:
        content = turn.content or ""
        self.memory.log_action("API Response", self.provider.model, ActionStatus.SUCCESS)
        self.context.io.show_assistant(content)
        updated = self.memory.update_system_info_from_text(content)
        if updated:
            self.context.io.show_info(f"Memory updated: {', '.join(updated)}")

    async def run_turn(self) -> str | None:
        """Complete the current user turn.

        Returns:
            The operator's answer when ``ask_user`` was called, else None
        """
        max_rounds = self.context.config.agent.max_tool_rounds
        rounds = 0
        while True:
            response = await self._complete()
            turn = response.to_turn()
            self.history.append(turn)

            if not turn.has_tool_calls:
                self._handle_reply(turn)
                return None

            self.memory.log_action("Tool Call Decision", self.provider.model, ActionStatus.SUCCESS)
            if turn.content:
                self.context.io.show_assistant(turn.content)

            self.state = TurnState.DISPATCHING_TOOLS
            outcome = await self.dispatcher.dispatch(turn.tool_calls)
            if outcome.asked_user:
                return outcome.interactive_answer

            rounds += 1
            if rounds >= max_rounds:
                log.warning("Tool round limit reached", rounds=rounds)
                self.context.io.show_warning(f"Stopped after {rounds} consecutive tool rounds.")
                return None

    def _recover(self, error: Exception) -> bool:
        """Record a turn-level error and rewind history.

        Returns:
            True if the loop may continue, False if the error is fatal
        """
        classified = classify_error(error)
        action_type = "Network" if classified.kind is ErrorKind.NETWORK else "System"
        self.memory.log_action(action_type, classified.target, ActionStatus.FAILURE, classified.message)

        if classified.fatal:
            log.error("Fatal error, stopping", kind=classified.kind.value, error=classified.message)
            self.context.io.show_error(
                f"{classified.kind.value}: {classified.message}\nCheck the API key and try again."
            )
            return False

        log.warning(
            "Turn failed, retrying",
            kind=classified.kind.value,
            target=classified.target,
            error=classified.message,
            exc_info=classified.kind is ErrorKind.UNKNOWN,
        )
        self.context.io.show_error(f"{classified.kind.value}: {classified.message}")
        self.history.truncate_before_last_user()
        self._pending_answer = None
        return True

    def _terminate(self, reason: str, exit_code: int) -> int:
        self.state = TurnState.TERMINATED
        if self.guard is not None:
            self.guard.flush(reason)
        return exit_code

    async def run(self) -> int:
        """Run the loop.

        Returns:
            Process exit code: 0 on quit, 1 on a fatal error
        """
        while True:
            self.state = TurnState.AWAITING_USER_TURN
            content = self.next_user_content()
            if is_quit(content):
                log.info("Operator quit")
                self.context.io.show_info("Goodbye.")
                return self._terminate("quit", 0)

            self.history.append(UserTurn(content=content))
            try:
                self._pending_answer = await self.run_turn()
            except Exception as e:
                if not self._recover(e):
                    return self._terminate("fatal error", 1)
