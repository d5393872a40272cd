"""Configuration loading and validation."""

import re
from pathlib import Path
from typing import Annotated, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["shapes", "gemini"]
ShapesClientName = Literal["openai", "http"]


class ChatConfig(BaseModel):
    """Intent resolution configuration."""

    bot_name: str = "tenshi"
    trigger_word: str = "gpt 5"
    random_response_prob: Annotated[float, Field(ge=0.0, le=1.0)] = 0.2
    max_reply_length: Annotated[int, Field(ge=100)] = 2000


class ContextConfig(BaseModel):
    """Conversation context buffer configuration."""

    max_turns: Annotated[int, Field(ge=1)] = 10


class AuthConfig(BaseModel):
    """Account linking and usage gate configuration."""

    free_message_limit: Annotated[int, Field(ge=0)] = 5
    auth_base_url: str = "https://api.shapes.inc/auth"
    app_id: str | None = None
    timeout_seconds: Annotated[float, Field(gt=0)] = 10.0


class ProviderConfig(BaseModel):
    """AI provider configuration."""

    shapes_api_url: str = "https://api.shapes.inc/v1"
    shapes_api_key: SecretStr | None = None
    shape_username: str = "tenshi"
    shapes_client: ShapesClientName = "openai"
    gemini_api_key: SecretStr | None = None
    gemini_model: str = "gemini-2.0-flash"
    primary: ProviderName = "shapes"
    timeout_seconds: Annotated[float, Field(gt=0)] = 60.0


class StorageConfig(BaseModel):
    """Persistence configuration."""

    db_path: Path = Path("./data/tenshi.db")


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TENSHI_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    chat: ChatConfig = Field(default_factory=ChatConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    providers: ProviderConfig = Field(default_factory=ProviderConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (TENSHI_* prefix)
    2. YAML config file
    3. Default values

    Args:
        config_path: Path to YAML config file. If None, tries ./config.yaml

    Returns:
        Validated configuration object
    """
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    yaml_config: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

    # "providers:" with no values parses as None
    yaml_config = {k: v for k, v in yaml_config.items() if v is not None}

    return Config(**yaml_config)


def derive_trigger_forms(word: str) -> tuple[str, str]:
    """Return the (spaced, concatenated) lowercase forms of a trigger word."""
    primary = word.lower()
    secondary = re.sub(r"\s+", "", primary)
    return primary, secondary


class BotSettings:
    """Mutable runtime settings shared by the message pipeline.

    Admin actions change these while the bot runs. A single instance is
    passed by reference to every component that reads it; writes are
    last-write-wins.
    """

    def __init__(
        self,
        trigger_word: str = "gpt 5",
        logging_enabled: bool = True,
        primary_provider: ProviderName = "shapes",
        shapes_client: ShapesClientName = "openai",
        shape_username: str = "tenshi",
    ):
        self.trigger_primary, self.trigger_secondary = derive_trigger_forms(trigger_word)
        self.logging_enabled = logging_enabled
        self.primary_provider: ProviderName = primary_provider
        self.shapes_client: ShapesClientName = shapes_client
        self.shape_username = shape_username

    @classmethod
    def from_config(cls, config: Config) -> "BotSettings":
        """Seed runtime settings from static configuration."""
        return cls(
            trigger_word=config.chat.trigger_word,
            primary_provider=config.providers.primary,
            shapes_client=config.providers.shapes_client,
            shape_username=config.providers.shape_username,
        )

    def set_trigger_word(self, word: str) -> None:
        """Set the trigger word; both spaced and concatenated forms match."""
        if not word.strip():
            raise ValueError("Trigger word must not be empty")
        self.trigger_primary, self.trigger_secondary = derive_trigger_forms(word.strip())

    def get_trigger_word(self) -> str:
        return f"{self.trigger_primary} | {self.trigger_secondary}"

    def is_logging_enabled(self) -> bool:
        return self.logging_enabled

    def set_logging(self, enabled: bool) -> None:
        self.logging_enabled = enabled

    def set_primary_provider(self, provider: str) -> None:
        if provider not in ("shapes", "gemini"):
            raise ValueError(f'Invalid provider: {provider}. Use "shapes" or "gemini".')
        self.primary_provider = provider  # type: ignore[assignment]

    def set_shapes_client(self, client: str) -> None:
        if client not in ("openai", "http"):
            raise ValueError(f'Invalid client: {client}. Use "openai" or "http".')
        self.shapes_client = client  # type: ignore[assignment]

    def set_shape_username(self, username: str) -> None:
        if not username.strip():
            raise ValueError("Shape username must not be empty")
        self.shape_username = username.strip()
