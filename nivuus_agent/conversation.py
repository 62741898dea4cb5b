"""Conversation turns and the ordered history the orchestrator owns."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Union

from nivuus_agent.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool call emitted by the completion service."""

    id: str
    name: str
    arguments: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCallRequest":
        function = data.get("function") or {}
        arguments = function.get("arguments", "")
        if not isinstance(arguments, str):
            # Some OpenAI-compatible servers send decoded objects.
            arguments = json.dumps(arguments)
        return cls(
            id=str(data.get("id", "")),
            name=str(function.get("name", "")),
            arguments=arguments,
        )


@dataclass
class SystemTurn:
    content: str
    role: Literal["system"] = field(default="system", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class UserTurn:
    content: str
    role: Literal["user"] = field(default="user", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class AssistantTurn:
    """Assistant reply: free text, or a non-empty list of tool calls."""

    content: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    role: Literal["assistant"] = field(default="assistant", init=False)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return data


@dataclass
class ToolResultTurn:
    tool_call_id: str
    name: str
    content: str
    role: Literal["tool"] = field(default="tool", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "tool_call_id": self.tool_call_id,
            "name": self.name,
            "content": self.content,
        }


Turn = Union[SystemTurn, UserTurn, AssistantTurn, ToolResultTurn]


def turn_from_dict(data: dict[str, Any]) -> Turn | None:
    """Rebuild a turn from its persisted form; None for unusable records."""
    role = data.get("role")
    content = data.get("content")
    if role == "system" and content is not None:
        return SystemTurn(content=str(content))
    if role == "user" and content is not None:
        return UserTurn(content=str(content))
    if role == "assistant":
        calls = [
            ToolCallRequest.from_dict(item)
            for item in data.get("tool_calls") or []
            if isinstance(item, dict)
        ]
        if not calls and content is None:
            return None
        return AssistantTurn(content=None if content is None else str(content), tool_calls=calls)
    if role == "tool" and data.get("tool_call_id"):
        return ToolResultTurn(
            tool_call_id=str(data["tool_call_id"]),
            name=str(data.get("name") or ""),
            content="null" if content is None else str(content),
        )
    return None


class ConversationHistory:
    """Ordered, append-mostly sequence of turns.

    The first turn is always the single system turn. Truncation drops a
    suffix; turns are never reordered.
    """

    def __init__(self, turns: Iterable[Turn] = ()):
        self._turns: list[Turn] = list(turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(list(self._turns))

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    def append(self, turn: Turn) -> None:
        if isinstance(turn, SystemTurn) and self._turns:
            raise ValueError("The system turn must be the first turn")
        self._turns.append(turn)

    def ensure_system_prompt(self, prompt: str) -> None:
        """Make the current prompt the one system turn, always first."""
        others = [turn for turn in self._turns if not isinstance(turn, SystemTurn)]
        self._turns = [SystemTurn(content=prompt), *others]

    def only_system(self) -> bool:
        return all(isinstance(turn, SystemTurn) for turn in self._turns)

    def truncate_before_last_user(self) -> bool:
        """Drop the most recent user turn and everything after it.

        Without any user turn the history is reset to the system turn.

        Returns:
            True if a user turn was found
        """
        for index in range(len(self._turns) - 1, -1, -1):
            if isinstance(self._turns[index], UserTurn):
                del self._turns[index:]
                return True
        del self._turns[1:]
        return False

    def unresolved_tool_calls_index(self) -> int | None:
        """Index of the last assistant tool-call turn missing any of its results."""
        for index in range(len(self._turns) - 1, -1, -1):
            turn = self._turns[index]
            if isinstance(turn, AssistantTurn) and turn.has_tool_calls:
                answered = [
                    later.tool_call_id
                    for later in self._turns[index + 1:]
                    if isinstance(later, ToolResultTurn)
                ]
                expected = [call.id for call in turn.tool_calls]
                return None if answered[: len(expected)] == expected else index
            if not isinstance(turn, ToolResultTurn):
                return None
        return None

    def drop_unresolved_tool_calls(self) -> bool:
        """Discard a trailing tool-call turn whose results were never recorded."""
        index = self.unresolved_tool_calls_index()
        if index is None:
            return False
        log.info("Discarding unresolved tool-call turn", dropped=len(self._turns) - index)
        del self._turns[index:]
        return True

    def to_list(self) -> list[dict[str, Any]]:
        return [turn.to_dict() for turn in self._turns]

    @classmethod
    def from_list(cls, data: Iterable[Any]) -> "ConversationHistory":
        turns: list[Turn] = []
        for item in data:
            turn = turn_from_dict(item) if isinstance(item, dict) else None
            if turn is None:
                log.warning("Skipping unusable history record", record=item)
                continue
            turns.append(turn)
        return cls(turns)
