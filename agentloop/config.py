"""Configuration management for agentloop."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.agentloop/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the available tools when they help you "
    "answer, and reply with a plain answer once you are done."
)


class ModelConfig(BaseModel):
    """Model configuration."""

    class AllowedModelConfig(BaseModel):
        """Allowed model entry for live model switching."""

        id: str
        provider: str
        model: str
        base_url: str = ""

    provider: str = "ollama"
    model: str = "llama3.2"
    temperature: float = 0.7
    max_tokens: int = 4096
    api_key: str = ""
    base_url: str = ""
    allowed: list[AllowedModelConfig] = Field(default_factory=list)


class AgentConfig(BaseModel):
    """Agent loop configuration."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_iterations: int = Field(default=10, ge=1)
    # 0 disables history pruning.
    max_messages: int = Field(default=0, ge=0)


class RunCommandToolConfig(BaseModel):
    """run_command tool configuration."""

    timeout: int = 30
    allowed_commands: list[str] = [
        "ls",
        "cat",
        "head",
        "tail",
        "grep",
        "find",
        "wc",
        "kubectl",
        "helm",
        "argocd",
    ]


class ToolsConfig(BaseModel):
    """Tools configuration."""

    enabled: list[str] = [
        "echo",
        "ask_user",
        "read_file",
        "write_file",
        "local_git_status",
        "local_git_diff",
        "run_command",
    ]
    run_command: RunCommandToolConfig = Field(default_factory=RunCommandToolConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["console", "json"] = "console"


class Config(BaseSettings):
    """Main configuration for agentloop."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="AGENTLOOP_",
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

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from YAML; env vars are applied by pydantic-settings."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def find_allowed_model(self, selector: str) -> ModelConfig.AllowedModelConfig | None:
        """Resolve an allowed model by id, `provider:model`/`provider/model`, or bare model name."""
        key = (selector or "").strip().lower()
        if not key:
            return None
        for option in self.model.allowed:
            if option.id.strip().lower() == key:
                return option
        for option in self.model.allowed:
            provider = option.provider.strip().lower()
            model = option.model.strip().lower()
            if key in {f"{provider}:{model}", f"{provider}/{model}", model}:
                return option
        return None


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
