"""Pytest configuration and fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest

from tenshi_bot.config import BotSettings, Config
from tenshi_bot.core.intent import BotIdentity
from tenshi_bot.core.logging import get_session_stats, reset_session_stats
from tenshi_bot.core.providers import ProviderRequest
from tenshi_bot.errors import ProviderError
from tenshi_bot.gateway import IncomingMessage
from tenshi_bot.storage import BotDatabase


class FakeProvider:
    """Provider double that replays scripted replies or errors."""

    def __init__(self, name: str, *outcomes: str | ProviderError):
        self.name = name
        self._outcomes = list(outcomes)
        self.requests: list[ProviderRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def generate(self, request: ProviderRequest) -> str:
        self.requests.append(request)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, ProviderError):
            raise outcome
        return outcome


class FakeReplyTarget:
    """Records everything the pipeline sends back."""

    def __init__(self):
        self.typing = 0
        self.replies: list[str] = []
        self.auth_prompts: list[tuple[str, str]] = []

    async def send_typing(self) -> None:
        self.typing += 1

    async def send_reply(self, text: str) -> None:
        self.replies.append(text)

    async def send_auth_prompt(self, text: str, action_id: str) -> None:
        self.auth_prompts.append((text, action_id))


@pytest.fixture
def fresh_stats():
    """Zeroed session counters for tests that inspect them."""
    reset_session_stats()
    yield get_session_stats()
    reset_session_stats()


@pytest.fixture
def default_config() -> Config:
    """Provide a default configuration for testing."""
    return Config()


@pytest.fixture
def settings() -> BotSettings:
    """Runtime settings with defaults."""
    return BotSettings()


@pytest.fixture
def bot() -> BotIdentity:
    """The bot's own identity."""
    return BotIdentity(user_id="bot-1", name="tenshi")


@pytest.fixture
def db(tmp_path: Path):
    """A fresh SQLite database."""
    database = BotDatabase(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def reply_target() -> FakeReplyTarget:
    return FakeReplyTarget()


@pytest.fixture
def make_message() -> Callable[..., IncomingMessage]:
    """Factory for incoming messages with sensible defaults."""
    counter = iter(range(1, 1_000_000))

    def _make(content: str = "hello there", **overrides) -> IncomingMessage:
        fields = {
            "message_id": str(next(counter)),
            "author_id": "user-1",
            "content": content,
            "channel_id": "chan-1",
            "display_name": "alice",
            "channel_name": "general",
        }
        fields.update(overrides)
        return IncomingMessage(**fields)

    return _make


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_content = """
chat:
  trigger_word: "hey tenshi"
  random_response_prob: 0.05

context:
  max_turns: 4

auth:
  free_message_limit: 3
  app_id: "app-123"

providers:
  shapes_api_key: "shapes-test-key"
  primary: "gemini"
  shapes_client: "http"

storage:
  db_path: "./test-data/tenshi.db"
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(config_content)
    return config_file


@pytest.fixture
def make_provider() -> type[FakeProvider]:
    """Build provider doubles: make_provider("shapes", "reply", error, ...)."""
    return FakeProvider
