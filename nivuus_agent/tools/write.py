"""Write tool for creating or overwriting files after operator confirmation."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from nivuus_agent.logging import get_logger
from nivuus_agent.memory import ActionStatus
from nivuus_agent.tools.registry import Tool, ToolResult

if TYPE_CHECKING:
    from nivuus_agent.runtime_context import AgentContext

log = get_logger(__name__)

PREVIEW_CHARS = 200


def content_preview(content: str, limit: int = PREVIEW_CHARS) -> str:
    return content[:limit] + ("..." if len(content) > limit else "")


class WriteFileTool(Tool):
    """Write content to files."""

    name = "write_file"
    description = (
        "Create or overwrite a file with the given content. "
        "The operator is asked to confirm before anything is written."
    )
    parameters = {
        "type": "object",
        "properties": {
            "filepath": {
                "type": "string",
                "description": "Path to the file to write",
            },
            "content": {
                "type": "string",
                "description": "Content to write to the file",
            },
        },
        "required": ["filepath", "content"],
    }

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        file_path = Path(str(kwargs["filepath"])).expanduser().resolve()
        content = kwargs["content"]
        if not isinstance(content, str):
            content = str(content)

        if context.requires_confirmation(self.name):
            approved = await context.io.confirm(
                f"Write file: {file_path}\nContent:\n{content_preview(content)}\nWrite?"
            )
            if not approved:
                log.info("File write refused by operator", path=str(file_path))
                return ToolResult(
                    success=True,
                    content="File write cancelled by the operator.",
                    status=ActionStatus.CANCELLED,
                )

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")
        except OSError as e:
            log.error("Write failed", path=str(file_path), error=str(e))
            return ToolResult(success=False, error=f"Cannot write {file_path}: {e}")

        log.info("File written", path=str(file_path), chars=len(content))
        return ToolResult(success=True, content=f"Wrote {len(content)} chars to {file_path}")
