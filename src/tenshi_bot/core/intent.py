"""Decides whether the bot should answer a message, and why."""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from tenshi_bot.config import BotSettings
from tenshi_bot.core.logging import get_session_stats

if TYPE_CHECKING:
    from tenshi_bot.gateway import IncomingMessage

logger = logging.getLogger(__name__)

DEFAULT_RANDOM_PROB = 0.2


class IntentReason(str, Enum):
    """Why the resolver reached its decision."""

    SUPPRESSED = "suppressed"
    DISPLAY_NAME = "display_name"
    MENTIONED = "mentioned"
    CONTAINS_KEYWORD = "contains_keyword"
    ACTIVE_CHANNEL = "active_channel"
    RANDOM = "random"
    NONE = "none"


@dataclass(frozen=True)
class BotIdentity:
    """The bot's own account on the chat platform."""

    user_id: str
    name: str = "tenshi"


@dataclass
class IntentResult:
    """Result of intent resolution."""

    respond: bool
    reason: IntentReason
    normalized_content: str
    roll: float | None = None  # Only set when the random draw happened

    def __str__(self) -> str:
        status = "RESPOND" if self.respond else "SKIP"
        roll = f" roll={self.roll:.3f}" if self.roll is not None else ""
        return f"Intent[{status}]: {self.reason.value}{roll}"


class ChannelState(Protocol):
    """Blacklist and activation lookups for the sender and channel.

    Lookups may hit storage, so the resolver awaits each one only when
    the decision actually depends on it.
    """

    async def is_user_blacklisted(self, user_id: str) -> bool: ...

    async def is_channel_blacklisted(self, channel_id: str) -> bool: ...

    async def is_channel_active(self, channel_id: str) -> bool: ...


@dataclass
class StaticChannelState:
    """Channel state with fixed answers, for callers that already know them."""

    user_blacklisted: bool = False
    channel_blacklisted: bool = False
    channel_active: bool = False

    async def is_user_blacklisted(self, user_id: str) -> bool:
        return self.user_blacklisted

    async def is_channel_blacklisted(self, channel_id: str) -> bool:
        return self.channel_blacklisted

    async def is_channel_active(self, channel_id: str) -> bool:
        return self.channel_active


class IntentResolver:
    """Decides whether to answer an incoming message.

    Checks run in a fixed order and the first match wins:
    - Own/bot messages and blacklisted senders or channels are dropped
    - "<display name>:" prefix (explicit address)
    - Bot mention
    - Trigger word, in either its spaced or concatenated form
    - Channel in active mode
    - Random draw with fixed probability
    """

    def __init__(self, settings: BotSettings, random_prob: float = DEFAULT_RANDOM_PROB):
        self._settings = settings
        self._random_prob = random_prob

    def _check_display_name(self, message: "IncomingMessage") -> str | None:
        """Return the content without its "<display name>:" prefix, if present."""
        display_name = message.display_name
        if not display_name:
            return None
        prefix = f"{display_name}:"
        if message.content.startswith(prefix):
            return message.content[len(prefix):].strip()
        return None

    def _check_keyword(self, content: str) -> bool:
        lower = content.lower()
        return (
            self._settings.trigger_primary in lower
            or self._settings.trigger_secondary in lower
        )

    async def _is_suppressed(
        self,
        message: "IncomingMessage",
        bot: BotIdentity,
        state: ChannelState,
    ) -> bool:
        if message.author_id == bot.user_id or message.author_is_bot:
            return True
        if await state.is_user_blacklisted(message.author_id):
            logger.debug(f"Suppressed message from blacklisted user {message.author_id}")
            return True
        if await state.is_channel_blacklisted(message.channel_id):
            logger.debug(f"Suppressed message in blacklisted channel {message.channel_id}")
            return True
        return False

    async def resolve(
        self,
        message: "IncomingMessage",
        bot: BotIdentity,
        state: ChannelState,
        _roll: float | None = None,  # For testing
    ) -> IntentResult:
        """Decide whether to respond to a message.

        Args:
            message: The incoming message
            bot: The bot's own identity
            state: Blacklist/activation lookups
            _roll: Override random roll (for testing)

        Returns:
            IntentResult with the decision, its reason and the content to use
        """
        content = message.content

        if await self._is_suppressed(message, bot, state):
            return IntentResult(False, IntentReason.SUPPRESSED, content)

        result = await self._decide(message, bot, state, _roll)

        if result.respond:
            logger.info(f"INTENT: {result} channel={message.channel_id} user={message.author_id}")
            get_session_stats().increment_reason(result.reason.value)
        else:
            logger.debug(f"INTENT: {result} channel={message.channel_id}")

        return result

    async def _decide(
        self,
        message: "IncomingMessage",
        bot: BotIdentity,
        state: ChannelState,
        _roll: float | None,
    ) -> IntentResult:
        content = message.content

        stripped = self._check_display_name(message)
        if stripped is not None:
            return IntentResult(True, IntentReason.DISPLAY_NAME, stripped)

        if bot.user_id in message.mentions:
            return IntentResult(True, IntentReason.MENTIONED, content)

        if self._check_keyword(content):
            return IntentResult(True, IntentReason.CONTAINS_KEYWORD, content)

        if await state.is_channel_active(message.channel_id):
            return IntentResult(True, IntentReason.ACTIVE_CHANNEL, content)

        roll = _roll if _roll is not None else random.random()
        if roll < self._random_prob:
            return IntentResult(True, IntentReason.RANDOM, content, roll=roll)
        return IntentResult(False, IntentReason.NONE, content, roll=roll)
