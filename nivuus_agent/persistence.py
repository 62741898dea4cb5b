"""Durable storage of the conversation history and agent memory.

Both documents are plain JSON files rewritten as a whole on every flush.
Writes go to a temporary file in the same directory followed by an atomic
``os.replace`` so a crash mid-write never leaves a truncated document.

:class:`ShutdownGuard` routes every way the process can end (operator quit,
Ctrl+C / SIGTERM, an uncaught exception, interpreter exit) through one
re-entrancy-guarded flush.
"""

from __future__ import annotations

import atexit
import json
import os
import signal
import sys
import tempfile
from pathlib import Path
from types import FrameType, TracebackType
from typing import Any, Callable

from nivuus_agent.config import Config
from nivuus_agent.conversation import ConversationHistory
from nivuus_agent.exceptions import PersistenceError
from nivuus_agent.logging import get_logger
from nivuus_agent.memory import DEFAULT_MAX_ACTION_LOG_ENTRIES, AgentMemory
from nivuus_agent.runtime_context import AgentContext

log = get_logger(__name__)

_MISSING = object()


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialize ``data`` to ``path`` through a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(data, ensure_ascii=False, indent=2)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as tf:
        temp_path = Path(tf.name)
        try:
            tf.write(payload)
            tf.flush()
            os.fsync(tf.fileno())
        except BaseException:
            tf.close()
            temp_path.unlink(missing_ok=True)
            raise
    try:
        os.replace(str(temp_path), str(path))
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


class PersistenceManager:
    """Load and flush the history and memory documents."""

    def __init__(
        self,
        history_path: Path | str,
        memory_path: Path | str,
        max_action_log_entries: int = DEFAULT_MAX_ACTION_LOG_ENTRIES,
    ):
        self.history_path = Path(history_path).expanduser()
        self.memory_path = Path(memory_path).expanduser()
        self.max_action_log_entries = max_action_log_entries

    @classmethod
    def from_config(cls, config: Config) -> "PersistenceManager":
        return cls(
            history_path=config.persistence.history_path,
            memory_path=config.persistence.memory_path,
            max_action_log_entries=config.memory.max_action_log_entries,
        )

    def ensure_directory(self) -> None:
        """Create the directories holding both documents."""
        for path in (self.history_path, self.memory_path):
            path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _read_json(path: Path) -> Any:
        """Return the decoded document, or ``_MISSING`` if absent or unusable."""
        if not path.exists():
            log.info("No saved document, starting fresh", path=str(path))
            return _MISSING
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            log.error("Could not load saved document, using defaults", path=str(path), error=str(e))
            return _MISSING

    def load_memory(self) -> AgentMemory:
        data = self._read_json(self.memory_path)
        if data is not _MISSING and not isinstance(data, dict):
            log.error("Saved memory is not an object, using defaults", path=str(self.memory_path))
            data = _MISSING
        if data is _MISSING:
            return AgentMemory(max_action_log_entries=self.max_action_log_entries)
        return AgentMemory.from_dict(data, max_action_log_entries=self.max_action_log_entries)

    def load_history(self, system_prompt: str) -> ConversationHistory:
        data = self._read_json(self.history_path)
        if data is not _MISSING and not isinstance(data, list):
            log.error("Saved history is not a list, using defaults", path=str(self.history_path))
            data = _MISSING
        history = ConversationHistory() if data is _MISSING else ConversationHistory.from_list(data)
        history.drop_unresolved_tool_calls()
        history.ensure_system_prompt(system_prompt)
        return history

    def load(self, system_prompt: str) -> tuple[ConversationHistory, AgentMemory]:
        """Load both documents; never raises for missing or corrupt files."""
        self.ensure_directory()
        memory = self.load_memory()
        history = self.load_history(system_prompt)
        log.info(
            "Session loaded",
            turns=len(history),
            action_log=len(memory.action_log),
            system_info=len(memory.system_info),
        )
        return history, memory

    def flush(self, history: ConversationHistory, memory: AgentMemory) -> None:
        """Write both documents synchronously.

        Raises:
            PersistenceError if either document cannot be written
        """
        history_data = history.to_list()
        memory_data = memory.to_dict()
        try:
            write_json_atomic(self.memory_path, memory_data)
            write_json_atomic(self.history_path, history_data)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not save session: {e}") from e
        log.debug("Session flushed", turns=len(history_data), memory=str(self.memory_path))


class ShutdownGuard:
    """Flush the session from every termination path, exactly once at a time."""

    def __init__(
        self,
        persistence: PersistenceManager,
        context: AgentContext,
        exit_func: Callable[[int], Any] = os._exit,
    ):
        self.persistence = persistence
        self.context = context
        self._exit = exit_func
        self._flushing = False
        self._installed = False
        self._previous_handlers: dict[int, Any] = {}
        self._previous_excepthook: Callable[..., Any] | None = None
        self._deferred_signal: str | None = None
        self.flush_count = 0

    def flush(self, reason: str) -> bool:
        """Persist history and memory; a nested call while flushing is a no-op.

        Returns:
            True if the documents were written
        """
        if self._flushing:
            log.debug("Flush already in progress", reason=reason)
            return False
        self._flushing = True
        try:
            self.persistence.flush(self.context.history, self.context.memory)
            self.flush_count += 1
            log.info("Session saved", reason=reason)
            return True
        except PersistenceError as e:
            log.error("Session save failed", reason=reason, error=str(e))
            return False
        finally:
            self._flushing = False
            if self._deferred_signal is not None:
                self._exit_after_signal(self._deferred_signal)

    def _exit_after_signal(self, name: str) -> None:
        self.context.io.show_info(f"\n{name} received, session saved. Exiting.")
        self._exit(0)

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        name = signal.Signals(signum).name
        if self._flushing:
            # The interrupted flush finishes both documents, then exits.
            log.info("Signal received during flush, exiting after it completes", signal=name)
            self._deferred_signal = name
            return
        self.flush(f"signal {name}")
        self._exit_after_signal(name)

    def _excepthook(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        self.flush(f"uncaught {exc_type.__name__}")
        hook = self._previous_excepthook or sys.__excepthook__
        hook(exc_type, exc, tb)

    def _atexit(self) -> None:
        self.flush("interpreter exit")

    def install(self, signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)) -> None:
        """Install the signal handlers, the exception hook and the exit hook."""
        if self._installed:
            return
        for sig in signals:
            self._previous_handlers[sig] = signal.signal(sig, self._handle_signal)
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        atexit.register(self._atexit)
        self._installed = True

    def uninstall(self) -> None:
        """Restore whatever was installed before :meth:`install`."""
        if not self._installed:
            return
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        atexit.unregister(self._atexit)
        self._installed = False
