"""Configuration management for Nivuus Agent."""

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_DIR = Path("~/.config/nivuus-agent").expanduser()
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
LOCAL_CONFIG_FILENAME = "config.yaml"

# Placeholder shipped as the last-resort credential; never accepted as valid.
DEFAULT_API_KEY = "sk-YOUR_API_KEY_HERE"
OPENAI_BASE_URL = "https://api.openai.com/v1"


class ModelConfig(BaseModel):
    """Completion service configuration."""

    provider: str = "openai"
    model: str = "gpt-4.1"
    api_key: str = ""
    base_url: str = ""
    temperature: float | None = None
    request_timeout: float = 120.0


class PersistenceConfig(BaseModel):
    """Locations of the durable documents."""

    config_dir: str = str(DEFAULT_CONFIG_DIR)
    history_file: str = "conversation_history.json"
    memory_file: str = "agent_memory.json"

    def resolve(self, filename: str) -> Path:
        """Resolve a document name against the configuration directory."""
        raw = Path(filename).expanduser()
        if raw.is_absolute():
            return raw
        return Path(self.config_dir).expanduser() / raw

    @property
    def history_path(self) -> Path:
        return self.resolve(self.history_file)

    @property
    def memory_path(self) -> Path:
        return self.resolve(self.memory_file)


class MemoryConfig(BaseModel):
    """Agent memory configuration."""

    max_action_log_entries: int = Field(default=30, ge=1)
    summary_entries: int = Field(default=5, ge=0)


class AgentConfig(BaseModel):
    """Turn loop configuration."""

    max_tool_rounds: int = Field(default=10, ge=1)


class ShellToolConfig(BaseModel):
    """Shell tool configuration."""

    timeout: int = 120
    max_output_chars: int = 40000
    blocked: list[str] = [
        "rm -rf /",
        "mkfs",
        ":(){:|:&};:",
    ]


class ReadToolConfig(BaseModel):
    """Read tool configuration."""

    max_bytes: int = 100 * 1024


class WebSearchToolConfig(BaseModel):
    """Web search tool configuration."""

    base_url: str = "https://html.duckduckgo.com/html/"
    max_results: int = 5
    timeout: int = 15


class ToolsConfig(BaseModel):
    """Tools configuration."""

    enabled: list[str] = [
        "run_bash_command",
        "read_file",
        "write_file",
        "list_directory",
        "web_search",
        "ask_user",
        "get_memory_keys",
        "get_memory_value",
        "set_memory_value",
    ]
    require_confirmation: list[str] = ["run_bash_command", "write_file"]
    shell: ShellToolConfig = Field(default_factory=ShellToolConfig)
    read: ReadToolConfig = Field(default_factory=ReadToolConfig)
    web_search: WebSearchToolConfig = Field(default_factory=WebSearchToolConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: Literal["console", "json"] = "console"
    path: str = ""


class Config(BaseSettings):
    """Main configuration for Nivuus Agent."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="NIVUUS_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration; pydantic-settings applies env overrides."""
        return cls.from_yaml(path)

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json", exclude_none=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    def resolved_base_url(self) -> str:
        """Return the completion endpoint base URL for the configured provider."""
        if self.model.base_url.strip():
            return self.model.base_url.strip().rstrip("/")
        if self.model.provider.strip().lower() == "ollama":
            return "http://127.0.0.1:11434/v1"
        return OPENAI_BASE_URL


def resolve_api_key(cli_value: str | None, config: "Config") -> tuple[str, str]:
    """Resolve the completion credential.

    Order: command-line override, ``OPENAI_API_KEY`` environment variable,
    configured ``model.api_key``, built-in placeholder.

    Returns:
        Tuple of (api_key, source label)
    """
    if cli_value and cli_value.strip():
        return cli_value.strip(), "command line"
    env_value = os.environ.get("OPENAI_API_KEY", "").strip()
    if env_value:
        return env_value, "environment variable OPENAI_API_KEY"
    if config.model.api_key.strip():
        return config.model.api_key.strip(), "configuration"
    return DEFAULT_API_KEY, "built-in default"


def is_valid_api_key(api_key: str, config: "Config") -> bool:
    """Reject empty and placeholder keys; OpenAI keys must look like ``sk-...``."""
    key = (api_key or "").strip()
    if not key or key == DEFAULT_API_KEY:
        return False
    if config.resolved_base_url() == OPENAI_BASE_URL:
        return key.startswith("sk-")
    return True


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
