"""Load and render the instruction texts sent to the model.

Supports a two-layer override system:
  1. Personal overrides in ``~/.config/nivuus-agent/instructions/`` (highest priority)
  2. Defaults shipped inside the package, ``nivuus_agent/instructions/``

The orchestrator only ever asks for a handful of texts: the system prompt,
the proactive-discovery and resume openers, the auto-continue instruction
and the memory reminder wrapped around the memory summary.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Mapping


_PERSONAL_DIR = Path("~/.config/nivuus-agent/instructions").expanduser()

SYSTEM_PROMPT = "system_prompt.md"
PROACTIVE_DISCOVERY = "proactive_discovery.md"
RESUME = "resume.md"
AUTO_CONTINUE = "auto_continue.md"
MEMORY_REMINDER = "memory_reminder.md"


class _SafeFormatDict(dict[str, str]):
    """Leave unknown placeholders untouched instead of raising KeyError."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class InstructionLoader:
    """Read and render instruction templates with personal-override support."""

    def __init__(
        self,
        base_dir: Path | str | None = None,
        personal_dir: Path | str | None = None,
    ):
        self.base_dir = self._resolve_base_dir(base_dir)
        self.personal_dir: Path = (
            Path(personal_dir).expanduser().resolve()
            if personal_dir is not None
            else _PERSONAL_DIR.resolve()
        )
        self._cache: dict[str, str] = {}

    @staticmethod
    def _resolve_base_dir(base_dir: Path | str | None) -> Path:
        if base_dir is not None:
            return Path(base_dir).expanduser().resolve()
        env_dir = os.getenv("NIVUUS_INSTRUCTIONS_DIR")
        if env_dir:
            return Path(env_dir).expanduser().resolve()
        return (Path(__file__).resolve().parent / "instructions").resolve()

    def _path(self, name: str) -> Path:
        personal = self.personal_dir / name
        if personal.is_file():
            return personal
        return self.base_dir / name

    def is_overridden(self, name: str) -> bool:
        """Return ``True`` if a personal override exists for *name*."""
        return (self.personal_dir / name).is_file()

    def load(self, name: str) -> str:
        """Load instruction template content by filename."""
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self._path(name)
        if not path.is_file():
            raise FileNotFoundError(f"Instruction template not found: {path}")
        content = path.read_text(encoding="utf-8").strip()
        self._cache[name] = content
        return content

    def render(self, name: str, /, **variables: object) -> str:
        """Render template with simple ``str.format`` placeholder substitution."""
        template = self.load(name)
        values: Mapping[str, str] = {k: str(v) for k, v in variables.items()}
        return template.format_map(_SafeFormatDict(values))

    # Named texts

    def system_prompt(self, tool_names: Iterable[str]) -> str:
        return self.render(SYSTEM_PROMPT, tool_names=", ".join(tool_names))

    def proactive_discovery(self) -> str:
        return self.load(PROACTIVE_DISCOVERY)

    def resume(self) -> str:
        return self.load(RESUME)

    def auto_continue(self) -> str:
        return self.load(AUTO_CONTINUE)

    def memory_reminder(self, summary: str) -> str:
        return self.render(MEMORY_REMINDER, summary=summary)
