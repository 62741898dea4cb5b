from contextlib import nullcontext
from pathlib import Path
from typing import Any

import pytest
import structlog

from nivuus_agent.config import Config, PersistenceConfig
from nivuus_agent.conversation import ConversationHistory, SystemTurn
from nivuus_agent.memory import AgentMemory
from nivuus_agent.runtime_context import AgentContext


class ScriptedIO:
    """HumanIO double: canned answers and confirmations, recorded output."""

    def __init__(self, answers: list[str] | None = None, confirmations: list[bool] | None = None):
        self.answers = list(answers or [])
        self.confirmations = list(confirmations or [])
        self.questions: list[str] = []
        self.confirm_messages: list[str] = []
        self.assistant: list[str] = []
        self.tool_calls: list[tuple[str, dict[str, Any]]] = []
        self.tool_outputs: list[str] = []
        self.infos: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []

    async def ask(self, question: str) -> str:
        self.questions.append(question)
        return self.answers.pop(0) if self.answers else "quit"

    async def confirm(self, message: str) -> bool:
        self.confirm_messages.append(message)
        return self.confirmations.pop(0) if self.confirmations else False

    def show_assistant(self, content: str) -> None:
        self.assistant.append(content)

    def show_tool_call(self, name: str, arguments: dict[str, Any]) -> None:
        self.tool_calls.append((name, arguments))

    def show_tool_output(self, name: str, output: str) -> None:
        self.tool_outputs.append(output)

    def show_info(self, message: str) -> None:
        self.infos.append(message)

    def show_warning(self, message: str) -> None:
        self.warnings.append(message)

    def show_error(self, message: str) -> None:
        self.errors.append(message)

    def status(self, text: str):
        return nullcontext()


@pytest.fixture
def make_context(tmp_path: Path):
    def _make(
        io: ScriptedIO | None = None,
        memory: AgentMemory | None = None,
        history: ConversationHistory | None = None,
        config: Config | None = None,
    ) -> AgentContext:
        cfg = config or Config(persistence=PersistenceConfig(config_dir=str(tmp_path / "state")))
        return AgentContext(
            config=cfg,
            memory=memory if memory is not None else AgentMemory(max_action_log_entries=cfg.memory.max_action_log_entries),
            history=history if history is not None else ConversationHistory([SystemTurn(content="system prompt")]),
            io=io or ScriptedIO(),
        )

    return _make


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo global logging configuration so no test logs to a closed captured stream."""
    yield
    structlog.reset_defaults()
