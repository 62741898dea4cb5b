"""Directory listing tool."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from nivuus_agent.logging import get_logger
from nivuus_agent.tools.registry import Tool, ToolResult

if TYPE_CHECKING:
    from nivuus_agent.runtime_context import AgentContext

log = get_logger(__name__)


class ListDirectoryTool(Tool):
    """List the entries of a directory."""

    name = "list_directory"
    description = "List the files and sub-directories of a directory. Directories end with '/'."
    parameters = {
        "type": "object",
        "properties": {
            "directoryPath": {
                "type": "string",
                "description": "Path of the directory to list",
            },
        },
        "required": ["directoryPath"],
    }

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        dir_path = Path(str(kwargs["directoryPath"])).expanduser().resolve()

        if not dir_path.exists():
            return ToolResult(success=False, error=f"Directory not found: {dir_path}")
        if not dir_path.is_dir():
            return ToolResult(success=False, error=f"Not a directory: {dir_path}")

        try:
            entries = sorted(dir_path.iterdir(), key=lambda entry: entry.name)
        except OSError as e:
            log.warning("Directory listing failed", path=str(dir_path), error=str(e))
            return ToolResult(success=False, error=f"Cannot list {dir_path}: {e}")

        lines = [f"Contents of {dir_path}:"]
        if not entries:
            lines.append("(empty directory)")
        for entry in entries:
            lines.append(f"- {entry.name}{'/' if entry.is_dir() else ''}")
        return ToolResult(success=True, content="\n".join(lines))
