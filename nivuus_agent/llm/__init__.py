"""Completion client - direct HTTP calls to an OpenAI-compatible chat API."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from nivuus_agent.conversation import AssistantTurn, ToolCallRequest, Turn
from nivuus_agent.exceptions import LLMAPIError, LLMError, LLMNetworkError
from nivuus_agent.logging import get_logger

log = get_logger(__name__)


@dataclass
class LLMResponse:
    """Response from the LLM: free text or one or more tool calls."""

    content: str | None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)

    def to_turn(self) -> AssistantTurn:
        if self.tool_calls:
            return AssistantTurn(content=self.content or None, tool_calls=list(self.tool_calls))
        return AssistantTurn(content=self.content or "")


class LLMProvider(ABC):
    """Abstract base class for completion providers."""

    model: str = ""

    @abstractmethod
    async def complete(
        self,
        turns: Sequence[Turn],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        """Request one assistant message for the given turn projection."""
        pass

    async def close(self) -> None:
        return None


class OpenAIChatProvider(LLMProvider):
    """Chat completions provider for OpenAI and compatible servers."""

    def __init__(
        self,
        model: str = "gpt-4.1",
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        temperature: float | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the provider.

        Args:
            model: Model name (e.g., 'gpt-4.1')
            base_url: API base URL, without the ``/chat/completions`` suffix
            api_key: Bearer credential
            temperature: Optional sampling temperature
            timeout: Request timeout in seconds
            client: Optional preconfigured HTTP client
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.temperature = temperature
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @staticmethod
    def _convert_turns(turns: Sequence[Turn]) -> list[dict[str, Any]]:
        """Convert turns to chat-completions messages."""
        result = []
        for turn in turns:
            message = turn.to_dict()
            if message["role"] == "assistant" and not message.get("tool_calls") and message.get("content") is None:
                continue
            result.append(message)
        return result

    @staticmethod
    def _convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Wrap plain function definitions in the ``{"type": "function"}`` envelope."""
        result = []
        for tool in tools:
            if tool.get("type") == "function":
                result.append(tool)
            elif tool.get("name"):
                result.append({"type": "function", "function": tool})
        return result

    @staticmethod
    def _parse_message(data: dict[str, Any]) -> tuple[str | None, list[ToolCallRequest]]:
        choices = data.get("choices") or []
        if not choices:
            raise LLMError("No response received from the completion service")
        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise LLMError("Completion response carried no message")
        calls = [
            ToolCallRequest.from_dict(item)
            for item in message.get("tool_calls") or []
            if isinstance(item, dict)
        ]
        return message.get("content"), calls

    async def complete(
        self,
        turns: Sequence[Turn],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        url = f"{self.base_url}/chat/completions"
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_turns(turns),
        }
        if tools:
            body["tools"] = self._convert_tools(tools)
            body["tool_choice"] = "auto"
        if self.temperature is not None:
            body["temperature"] = self.temperature

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            log.debug("Calling completion API", model=self.model, url=url, msg_count=len(body["messages"]))
            response = await self.client.post(url, json=body, headers=headers)
        except httpx.TransportError as e:
            raise LLMNetworkError(f"Completion service unreachable: {e}") from e
        except httpx.HTTPError as e:
            raise LLMError(f"Completion request failed: {e}") from e

        log.debug("Completion response status", status=response.status_code)
        if not response.is_success:
            detail = response.text.strip()[:500]
            raise LLMAPIError(
                f"Completion API error {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMError(f"Completion response decode error: {e}") from e

        content, calls = self._parse_message(data)
        usage = data.get("usage") or {}
        return LLMResponse(
            content=content,
            tool_calls=calls,
            model=str(data.get("model") or self.model),
            usage={k: int(v) for k, v in usage.items() if isinstance(v, int)},
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(
    provider: str = "openai",
    model: str = "gpt-4.1",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float | None = None,
    timeout: float = 120.0,
) -> LLMProvider:
    """Create a completion provider.

    Args:
        provider: Provider name (openai, ollama)
        model: Model name
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Optional sampling temperature
        timeout: Request timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    name = (provider or "openai").strip().lower()
    if name == "openai":
        return OpenAIChatProvider(
            model=model,
            base_url=base_url or "https://api.openai.com/v1",
            api_key=api_key,
            temperature=temperature,
            timeout=timeout,
        )
    if name == "ollama":
        # Ollama exposes the same API under /v1
        return OpenAIChatProvider(
            model=model,
            base_url=base_url or "http://127.0.0.1:11434/v1",
            api_key=api_key,
            temperature=temperature,
            timeout=timeout,
        )
    raise ValueError(f"Provider '{provider}' not supported. Use 'openai' or 'ollama'.")
