"""Tools package for Nivuus Agent."""

from nivuus_agent.config import Config
from nivuus_agent.logging import get_logger
from nivuus_agent.tools.registry import Tool, ToolRegistry, ToolResult
from nivuus_agent.tools.shell import RunCommandTool
from nivuus_agent.tools.read import ReadFileTool
from nivuus_agent.tools.write import WriteFileTool
from nivuus_agent.tools.list_directory import ListDirectoryTool
from nivuus_agent.tools.web_search import WebSearchTool
from nivuus_agent.tools.ask_user import AskUserTool
from nivuus_agent.tools.memory_tools import (
    GetMemoryKeysTool,
    GetMemoryValueTool,
    SetMemoryValueTool,
)

log = get_logger(__name__)


def build_default_registry(config: Config) -> ToolRegistry:
    """Create a registry holding every tool enabled in the configuration."""
    factories = {
        "run_bash_command": lambda: RunCommandTool(config.tools.shell),
        "read_file": lambda: ReadFileTool(config.tools.read),
        "write_file": WriteFileTool,
        "list_directory": ListDirectoryTool,
        "web_search": lambda: WebSearchTool(config.tools.web_search),
        "ask_user": AskUserTool,
        "get_memory_keys": GetMemoryKeysTool,
        "get_memory_value": GetMemoryValueTool,
        "set_memory_value": SetMemoryValueTool,
    }

    registry = ToolRegistry()
    for name in config.tools.enabled:
        factory = factories.get(name)
        if factory is None:
            log.warning("Unknown tool in configuration", tool=name)
            continue
        registry.register(factory())
    return registry


__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "RunCommandTool",
    "ReadFileTool",
    "WriteFileTool",
    "ListDirectoryTool",
    "WebSearchTool",
    "AskUserTool",
    "GetMemoryKeysTool",
    "GetMemoryValueTool",
    "SetMemoryValueTool",
    "build_default_registry",
]
