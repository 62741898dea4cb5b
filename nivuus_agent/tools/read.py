"""Read tool for reading text file contents."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from nivuus_agent.config import ReadToolConfig
from nivuus_agent.logging import get_logger
from nivuus_agent.tools.registry import Tool, ToolResult

if TYPE_CHECKING:
    from nivuus_agent.runtime_context import AgentContext

log = get_logger(__name__)


def decode_text(data: bytes) -> str:
    """Decode file bytes as UTF-8, falling back to Latin-1.

    Raises:
        ValueError if the data looks binary (contains NUL bytes)
    """
    if b"\x00" in data:
        raise ValueError("File appears to be binary")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


class ReadFileTool(Tool):
    """Read file contents."""

    name = "read_file"
    description = "Read the contents of a text file on the local machine."
    parameters = {
        "type": "object",
        "properties": {
            "filepath": {
                "type": "string",
                "description": "Path to the file to read",
            },
        },
        "required": ["filepath"],
    }

    def __init__(self, config: ReadToolConfig | None = None):
        self.config = config or ReadToolConfig()

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        path = str(kwargs["filepath"])
        file_path = Path(path).expanduser().resolve()

        if not file_path.exists():
            return ToolResult(success=False, error=f"File not found: {file_path}")
        if not file_path.is_file():
            return ToolResult(success=False, error=f"Not a file: {file_path}")

        file_size = file_path.stat().st_size
        max_size = self.config.max_bytes
        if file_size > max_size:
            return ToolResult(
                success=False,
                error=f"File too large: {file_size} bytes (max {max_size})",
            )

        try:
            content = decode_text(file_path.read_bytes())
        except (OSError, ValueError) as e:
            log.warning("Read failed", path=str(file_path), error=str(e))
            return ToolResult(success=False, error=f"Cannot read {file_path}: {e}")

        log.debug("File read", path=str(file_path), chars=len(content))
        return ToolResult(success=True, content=f"[{file_path} {len(content)} chars]\n{content}")
