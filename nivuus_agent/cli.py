"""Console I/O for Nivuus Agent: rendering, questions and confirmations."""

import asyncio
import json
from contextlib import AbstractContextManager
from typing import Any, Protocol

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.text import Text

from nivuus_agent.logging import get_logger

log = get_logger(__name__)

_TOOL_OUTPUT_PREVIEW_CHARS = 500


class HumanIO(Protocol):
    """What the orchestrator and tools need from the operator's terminal."""

    async def ask(self, question: str) -> str: ...

    async def confirm(self, message: str) -> bool: ...

    def show_assistant(self, content: str) -> None: ...

    def show_tool_call(self, name: str, arguments: dict[str, Any]) -> None: ...

    def show_tool_output(self, name: str, output: str) -> None: ...

    def show_info(self, message: str) -> None: ...

    def show_warning(self, message: str) -> None: ...

    def show_error(self, message: str) -> None: ...

    def status(self, text: str) -> AbstractContextManager[Any]: ...


class ConsoleIO:
    """Terminal implementation of :class:`HumanIO` built on rich."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(highlight=False)

    async def ask(self, question: str) -> str:
        """Show a question from the assistant and wait for the operator's answer."""
        self.console.print(Text("? ", style="bold magenta") + Text(question))
        try:
            answer = await asyncio.to_thread(Prompt.ask, "[green]Your answer[/green]", console=self.console)
        except EOFError:
            log.info("EOF while waiting for an answer; treating as quit")
            return "quit"
        return (answer or "").strip()

    async def confirm(self, message: str) -> bool:
        """Ask a yes/no question; anything but an explicit yes is a refusal."""
        try:
            return await asyncio.to_thread(Confirm.ask, Text(message), console=self.console, default=False)
        except EOFError:
            log.info("EOF while waiting for confirmation; refusing")
            return False

    def show_banner(self, model: str, source: str) -> None:
        self.console.print(
            Panel(
                Text(f"Model: {model}\nCredential: {source}\nPress Ctrl+C to save and exit."),
                title="Nivuus Agent",
                border_style="blue",
            )
        )

    def show_assistant(self, content: str) -> None:
        if not (content or "").strip():
            return
        self.console.print(Panel(Text(content), title="Assistant", border_style="cyan"))

    def show_tool_call(self, name: str, arguments: dict[str, Any]) -> None:
        rendered = json.dumps(arguments, ensure_ascii=False)
        self.console.print(Text(f"-> {name} {rendered}", style="yellow"))

    def show_tool_output(self, name: str, output: str) -> None:
        preview = output[:_TOOL_OUTPUT_PREVIEW_CHARS]
        if len(output) > _TOOL_OUTPUT_PREVIEW_CHARS:
            preview += "..."
        self.console.print(Text(preview, style="grey50"))

    def show_info(self, message: str) -> None:
        self.console.print(Text(message, style="dim"))

    def show_warning(self, message: str) -> None:
        self.console.print(Text(message, style="bold yellow"))

    def show_error(self, message: str) -> None:
        self.console.print(Text(message, style="bold red"))

    def status(self, text: str) -> AbstractContextManager[Any]:
        return self.console.status(Text(text), spinner="dots")
