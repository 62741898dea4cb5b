"""Shell tool for executing commands after operator confirmation."""

from __future__ import annotations

import asyncio
import os
import re
from typing import TYPE_CHECKING, Any

from nivuus_agent.config import ShellToolConfig
from nivuus_agent.logging import get_logger
from nivuus_agent.memory import ActionStatus
from nivuus_agent.tools.registry import Tool, ToolResult

if TYPE_CHECKING:
    from nivuus_agent.runtime_context import AgentContext

log = get_logger(__name__)


def _pattern_regex(pattern: str) -> re.Pattern[str]:
    """Match the pattern's words in sequence, not as part of a longer path or word."""
    body = r"\s+".join(re.escape(token) for token in pattern.split())
    return re.compile(rf"(?<![\w/-]){body}(?![\w/])")


def matches_blocked_pattern(command: str, pattern: str) -> bool:
    if not pattern.strip():
        return False
    if _pattern_regex(pattern).search(command):
        return True
    # Punctuation-only patterns (fork bombs) are compared with whitespace removed.
    if not any(ch.isalnum() for ch in pattern):
        return "".join(pattern.split()) in "".join(command.split())
    return False


class RunCommandTool(Tool):
    """Execute shell commands."""

    name = "run_bash_command"
    description = (
        "Execute a shell command on the local machine and return its output. "
        "The operator is asked to confirm before it runs."
    )
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute",
            },
            "purpose": {
                "type": "string",
                "description": "Short explanation of why the command is needed",
            },
        },
        "required": ["command", "purpose"],
    }

    def __init__(self, config: ShellToolConfig | None = None):
        self.config = config or ShellToolConfig()

    def _blocked_pattern(self, command: str) -> str | None:
        for pattern in self.config.blocked:
            if matches_blocked_pattern(command, pattern):
                return pattern
        return None

    def _format_output(self, stdout: str, stderr: str, returncode: int | None) -> str:
        sections = []
        if stdout:
            sections.append(f"STDOUT:\n{stdout}")
        if stderr:
            sections.append(f"STDERR:\n{stderr}")
        output = "\n".join(sections)
        if not output:
            output = "Command succeeded with no output." if returncode == 0 else (
                f"Command exited with code {returncode} and no output."
            )

        limit = self.config.max_output_chars
        if len(output) > limit:
            output = output[:limit] + f"\n... [truncated, {len(output)} total chars]"
        return output

    async def _run(self, command: str, timeout: int) -> ToolResult:
        env = os.environ.copy()
        env["PATH"] = os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin")

        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            log.warning("Shell command timed out", command=command, timeout=timeout)
            return ToolResult(success=False, error=f"Command timed out after {timeout}s")
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        stdout_text = stdout.decode("utf-8", errors="replace").strip()
        stderr_text = stderr.decode("utf-8", errors="replace").strip()
        output = self._format_output(stdout_text, stderr_text, process.returncode)

        if process.returncode != 0:
            return ToolResult(
                success=False,
                content=output,
                error=stderr_text[:500] or f"Command exited with code {process.returncode}",
            )
        return ToolResult(success=True, content=output)

    async def execute(self, context: AgentContext, **kwargs: Any) -> ToolResult:
        """Execute a shell command.

        Args:
            context: Agent context (used for the confirmation gate)
            command: Shell command to execute
            purpose: Why the command is being run

        Returns:
            ToolResult with the STDOUT/STDERR sections
        """
        command = str(kwargs["command"]).strip()
        purpose = str(kwargs.get("purpose") or "").strip() or "not specified"

        if not command:
            return ToolResult(success=False, error="Command is empty")

        matched = self._blocked_pattern(command)
        if matched:
            log.warning("Blocked unsafe command", command=command, pattern=matched)
            return ToolResult(success=False, error=f"Command blocked: matches blocked pattern: {matched}")

        if context.requires_confirmation(self.name):
            approved = await context.io.confirm(
                f"Run command: {command}\nPurpose: {purpose}\nExecute?"
            )
            if not approved:
                log.info("Command refused by operator", command=command)
                return ToolResult(
                    success=True,
                    content="Execution cancelled by the operator.",
                    status=ActionStatus.CANCELLED,
                )

        timeout = max(1, int(self.config.timeout))
        log.info("Executing shell command", command=command, timeout=timeout)
        with context.io.status(f"Running: {command}"):
            result = await self._run(command, timeout)
        context.io.show_tool_output(self.name, result.payload)
        return result
