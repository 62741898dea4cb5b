"""Agent memory: structured facts, bounded action log and notes."""

from __future__ import annotations

import copy
import json
import re
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Iterable

from nivuus_agent.exceptions import MemoryPathError
from nivuus_agent.logging import get_logger

log = get_logger(__name__)

DEFAULT_MAX_ACTION_LOG_ENTRIES = 30

_SYSTEM_INFO_LINE_RE = re.compile(r"^\s*([\w_.-]+)\s*:\s*(.+)$")
_PATH_SEGMENT_RE = re.compile(r"[^.\[\]]+")
_RESERVED_KEYS = ("system_info", "action_log", "notes")


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


class ActionStatus(str, Enum):
    """Outcome recorded for an action log entry."""

    ATTEMPTED = "Attempted"
    SUCCESS = "Success"
    FAILURE = "Failure"
    CANCELLED = "Cancelled"
    SUCCESS_NO_RESULTS = "Success (No Results)"


@dataclass(frozen=True)
class ActionLogEntry:
    """One immutable record in the action log."""

    timestamp: str
    action_type: str
    target: str
    status: ActionStatus
    error_msg: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "actionType": self.action_type,
            "target": self.target,
            "status": self.status.value,
        }
        if self.error_msg:
            data["errorMsg"] = self.error_msg
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActionLogEntry":
        return cls(
            timestamp=str(data.get("timestamp") or _utcnow_iso()),
            action_type=str(data.get("actionType", "")),
            target=str(data.get("target", "")),
            status=ActionStatus(data.get("status", ActionStatus.ATTEMPTED.value)),
            error_msg=data.get("errorMsg") or None,
        )


class _NotFound:
    """Sentinel type for memory lookups that resolve to nothing."""

    _instance: "_NotFound | None" = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


def split_memory_path(path: str | None) -> list[str]:
    """Split ``a.b[0].c`` into ``["a", "b", "0", "c"]``."""
    return _PATH_SEGMENT_RE.findall(str(path or "").strip())


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _step(node: Any, segment: str) -> Any:
    """Descend one path segment, returning NOT_FOUND when it does not exist."""
    if isinstance(node, dict):
        return node[segment] if segment in node else NOT_FOUND
    if isinstance(node, list) and segment.isdigit():
        index = int(segment)
        return node[index] if index < len(node) else NOT_FOUND
    return NOT_FOUND


class AgentMemory:
    """In-process memory shared by the orchestrator, dispatcher and tools.

    ``system_info`` holds flat string facts, ``action_log`` is an append-only
    FIFO bounded by ``max_action_log_entries`` and ``notes`` is free text. Any
    other top-level key is created on demand by :meth:`set_value`.
    """

    def __init__(
        self,
        system_info: dict[str, str] | None = None,
        action_log: Iterable[ActionLogEntry] = (),
        notes: str = "",
        extra: dict[str, Any] | None = None,
        max_action_log_entries: int = DEFAULT_MAX_ACTION_LOG_ENTRIES,
    ):
        self.system_info: dict[str, str] = dict(system_info or {})
        self._action_log: deque[ActionLogEntry] = deque(action_log, maxlen=max(1, max_action_log_entries))
        self.notes = notes or ""
        self.extra: dict[str, Any] = dict(extra or {})

    @property
    def capacity(self) -> int:
        return self._action_log.maxlen or DEFAULT_MAX_ACTION_LOG_ENTRIES

    @property
    def action_log(self) -> list[ActionLogEntry]:
        return list(self._action_log)

    def log_action(
        self,
        action_type: str,
        target: str,
        status: ActionStatus,
        error_msg: str | None = None,
    ) -> ActionLogEntry:
        """Append an entry, evicting the oldest one beyond capacity."""
        entry = ActionLogEntry(
            timestamp=_utcnow_iso(),
            action_type=action_type,
            target=target,
            status=status,
            error_msg=error_msg or None,
        )
        self._action_log.append(entry)
        log.debug("Action logged", action_type=action_type, status=status.value)
        return entry

    def is_empty(self) -> bool:
        return not (self.system_info or self._action_log or self.notes or self.extra)

    # Path-addressed access

    def _tree(self) -> dict[str, Any]:
        return {
            "system_info": self.system_info,
            "action_log": [entry.to_dict() for entry in self._action_log],
            "notes": self.notes,
            **self.extra,
        }

    def _resolve(self, segments: list[str]) -> Any:
        node: Any = self._tree()
        for segment in segments:
            node = _step(node, segment)
            if node is NOT_FOUND:
                break
        return node

    def get_keys(self, path: str | None = None) -> list[str]:
        """Return the keys of the object at ``path`` (root when omitted).

        Raises:
            MemoryPathError if the path resolves to a non-object value
        """
        segments = split_memory_path(path)
        target = self._resolve(segments)
        if target is NOT_FOUND or target is None:
            return []
        if isinstance(target, dict):
            return list(target.keys())
        if isinstance(target, list):
            return [str(index) for index in range(len(target))]
        raise MemoryPathError(path or "", "value is not an object")

    def get_value(self, path: str) -> Any:
        """Return a copy of the value at ``path`` or ``NOT_FOUND``."""
        segments = split_memory_path(path)
        if not segments:
            raise MemoryPathError("", "a path is required")
        value = self._resolve(segments)
        if value is NOT_FOUND:
            return NOT_FOUND
        return copy.deepcopy(value)

    def set_value(self, path: str, value: Any) -> None:
        """Set the value at ``path``, creating intermediate objects."""
        segments = split_memory_path(path)
        if not segments:
            raise MemoryPathError("", "a path is required")
        head, rest = segments[0], segments[1:]

        if head == "action_log":
            raise MemoryPathError(path, "the action log is append-only")
        if head == "notes":
            if rest:
                raise MemoryPathError(path, "notes is plain text")
            self.notes = _as_text(value)
            return
        if head == "system_info":
            if not rest:
                if not isinstance(value, dict):
                    raise MemoryPathError(path, "system_info must be an object")
                self.system_info = {str(k): _as_text(v) for k, v in value.items()}
            elif len(rest) == 1:
                self.system_info[rest[0]] = _as_text(value)
            else:
                raise MemoryPathError(path, "system_info holds flat key/value facts")
            return

        container: Any = self.extra
        for index, segment in enumerate(segments[:-1]):
            child = _step(container, segment)
            if not isinstance(child, (dict, list)):
                child = {}
                self._assign(container, segment, child, segments[: index + 1])
            container = child
        self._assign(container, segments[-1], copy.deepcopy(value), segments)

    @staticmethod
    def _assign(container: Any, segment: str, value: Any, segments: list[str]) -> None:
        if isinstance(container, dict):
            container[segment] = value
            return
        if isinstance(container, list) and segment.isdigit():
            index = int(segment)
            if index < len(container):
                container[index] = value
                return
            if index == len(container):
                container.append(value)
                return
        raise MemoryPathError(".".join(segments), "cannot assign into this value")

    # System-info extraction

    def update_system_info_from_text(self, content: str) -> dict[str, str]:
        """Record every ``key: value`` line of ``content`` in ``system_info``.

        Returns:
            The facts that were added or changed
        """
        updated: dict[str, str] = {}
        for line in (content or "").splitlines():
            match = _SYSTEM_INFO_LINE_RE.match(line)
            if not match:
                continue
            key = match.group(1).strip()
            value = match.group(2).strip()
            if self.system_info.get(key) != value:
                self.system_info[key] = value
                updated[key] = value
        if updated:
            log.debug("system_info updated from reply", keys=list(updated))
        return updated

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._tree())

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any] | None,
        max_action_log_entries: int = DEFAULT_MAX_ACTION_LOG_ENTRIES,
    ) -> "AgentMemory":
        """Build memory from a persisted document, skipping malformed entries."""
        data = data if isinstance(data, dict) else {}
        raw_info = data.get("system_info")
        system_info = {str(k): _as_text(v) for k, v in raw_info.items()} if isinstance(raw_info, dict) else {}

        entries: list[ActionLogEntry] = []
        raw_log = data.get("action_log")
        for item in raw_log if isinstance(raw_log, list) else []:
            if not isinstance(item, dict):
                continue
            try:
                entries.append(ActionLogEntry.from_dict(item))
            except ValueError:
                log.warning("Skipping malformed action log entry", entry=item)

        notes = data.get("notes")
        extra = {k: v for k, v in data.items() if k not in _RESERVED_KEYS}
        return cls(
            system_info=system_info,
            action_log=entries,
            notes=notes if isinstance(notes, str) else "",
            extra=extra,
            max_action_log_entries=max_action_log_entries,
        )


def render_memory_summary(memory: AgentMemory, max_entries: int = 5) -> str:
    """Render the memory digest injected ahead of each completion call."""
    lines = ["--- Agent memory summary ---"]
    if memory.system_info:
        lines.append(f"System info: {json.dumps(memory.system_info, ensure_ascii=False)}")
    if memory.notes:
        lines.append(f"Notes: {memory.notes}")
    if memory.extra:
        lines.append(f"Other stored keys: {', '.join(memory.extra)}")

    entries = memory.action_log
    recent = entries[-max_entries:] if max_entries > 0 else []
    if recent:
        lines.append(f"Recent actions ({len(recent)} of {len(entries)}):")
        for entry in recent:
            time_part = entry.timestamp.split("T", 1)[-1].split(".", 1)[0][:8] or "??:??:??"
            detail = entry.target[:80]
            error_info = ""
            if entry.status is ActionStatus.FAILURE and entry.error_msg:
                error_info = f" (Err: {entry.error_msg[:50]}...)"
            lines.append(f"- [{time_part}] {entry.action_type} {entry.status.value}: {detail}{error_info}")
    lines.append("--- End of memory summary ---")
    return "\n".join(lines)
