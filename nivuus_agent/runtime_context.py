"""Shared mutable runtime state for the interactive session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from nivuus_agent.config import Config
from nivuus_agent.conversation import ConversationHistory
from nivuus_agent.memory import AgentMemory

if TYPE_CHECKING:
    from nivuus_agent.cli import HumanIO


@dataclass
class AgentContext:
    """State owned by the orchestrator for the lifetime of the process.

    The dispatcher and every tool executor receive this object by reference;
    there is no module-level memory or history.
    """

    config: Config
    memory: AgentMemory
    history: ConversationHistory
    io: HumanIO

    def requires_confirmation(self, tool_name: str) -> bool:
        return tool_name in self.config.tools.require_confirmation
