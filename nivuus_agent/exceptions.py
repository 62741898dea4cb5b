"""Custom exceptions and error classification for Nivuus Agent."""

import json
from dataclasses import dataclass
from enum import Enum

import httpx


class ErrorKind(str, Enum):
    """Closed set of turn-level error categories."""

    AUTH = "AuthError"
    RATE_LIMIT = "RateLimit"
    NETWORK = "NetworkError"
    MALFORMED_TOOL_ARGUMENTS = "MalformedToolArguments"
    UNKNOWN = "Unknown"


class NivuusError(Exception):
    """Base exception for Nivuus Agent."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class ConfigurationError(NivuusError):
    """Configuration-related errors."""

    pass


class LLMError(NivuusError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        if status_code in (401, 403):
            self.kind = ErrorKind.AUTH
        elif status_code == 429:
            self.kind = ErrorKind.RATE_LIMIT
        else:
            self.kind = ErrorKind.UNKNOWN


class LLMNetworkError(LLMError):
    """The completion service could not be reached."""

    kind = ErrorKind.NETWORK


class ToolError(NivuusError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolArgumentError(ToolError):
    """Tool-call arguments could not be parsed or are incomplete."""

    kind = ErrorKind.MALFORMED_TOOL_ARGUMENTS

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Invalid arguments for '{tool_name}': {message}")
        self.tool_name = tool_name


class MemoryPathError(NivuusError):
    """A memory path resolved to something that cannot be used that way."""

    def __init__(self, path: str, message: str):
        super().__init__(f"Memory path '{path or 'root'}': {message}")
        self.path = path


class PersistenceError(NivuusError):
    """Durable documents could not be written."""

    pass


@dataclass(frozen=True)
class ClassifiedError:
    """Outcome of classifying an exception raised during a turn."""

    kind: ErrorKind
    target: str
    message: str

    @property
    def fatal(self) -> bool:
        return self.kind is ErrorKind.AUTH


def classify_error(error: BaseException) -> ClassifiedError:
    """Map any exception surfacing from a turn onto an ``ErrorKind``."""
    message = str(error) or error.__class__.__name__

    if isinstance(error, LLMAPIError):
        status = error.status_code if error.status_code is not None else "unknown"
        return ClassifiedError(error.kind, f"Completion API error: {status}", message)
    if isinstance(error, NivuusError):
        return ClassifiedError(error.kind, error.__class__.__name__, message)
    if isinstance(error, httpx.TransportError):
        return ClassifiedError(ErrorKind.NETWORK, f"Network error: {error.__class__.__name__}", message)
    if isinstance(error, httpx.HTTPStatusError):
        wrapped = LLMAPIError(message, status_code=error.response.status_code)
        return ClassifiedError(wrapped.kind, f"HTTP error: {error.response.status_code}", message)
    if isinstance(error, json.JSONDecodeError):
        return ClassifiedError(ErrorKind.MALFORMED_TOOL_ARGUMENTS, "Tool argument parsing", message)
    return ClassifiedError(ErrorKind.UNKNOWN, "Unexpected loop error", message)
