"""Per-conversation rolling buffer of prior turns."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from tenshi_bot.core.content import ContentPart, PartKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 10


class Role(str, Enum):
    """Who produced a turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One stored message in a conversation."""

    role: Role
    content: tuple[ContentPart, ...]
    author_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now, compare=False)

    @classmethod
    def user(cls, content: list[ContentPart], author_id: str) -> "Turn":
        return cls(role=Role.USER, content=tuple(content), author_id=author_id)

    @classmethod
    def assistant(cls, text: str) -> "Turn":
        return cls(role=Role.ASSISTANT, content=(ContentPart.text(text),))

    @property
    def text(self) -> str:
        """Text parts joined with newlines; media parts are skipped."""
        return "\n".join(p.value for p in self.content if p.kind == PartKind.TEXT)


@dataclass
class ConversationContext:
    """Bounded FIFO buffer of turns for one conversation."""

    max_turns: int = DEFAULT_MAX_TURNS
    _turns: deque[Turn] = field(default_factory=deque, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def __post_init__(self) -> None:
        self._turns = deque(maxlen=self.max_turns)

    async def append(self, turn: Turn) -> None:
        """Add a turn, evicting the oldest once the cap is exceeded."""
        async with self._lock:
            self._turns.append(turn)

    async def snapshot(self) -> list[Turn]:
        """Return the turns, oldest first."""
        async with self._lock:
            return list(self._turns)

    async def clear(self) -> None:
        async with self._lock:
            self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)


class ContextStore:
    """Maps conversation ids to their context buffers.

    Buffers are created on first append and live for the life of the
    process. Each buffer has its own lock, so appends to one conversation
    are serialized without blocking any other conversation.
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._max_turns = max_turns
        self._contexts: dict[str, ConversationContext] = {}
        self._lock = asyncio.Lock()

    @property
    def max_turns(self) -> int:
        return self._max_turns

    async def _get_context(self, conversation_id: str) -> ConversationContext:
        """Get or create the buffer for a conversation."""
        async with self._lock:
            if conversation_id not in self._contexts:
                self._contexts[conversation_id] = ConversationContext(max_turns=self._max_turns)
            return self._contexts[conversation_id]

    async def append(self, conversation_id: str, turn: Turn) -> None:
        """Append a turn to a conversation."""
        context = await self._get_context(conversation_id)
        await context.append(turn)
        logger.debug(
            f"Added {turn.role.value} turn to {conversation_id} context (size: {len(context)})"
        )

    async def get_turns(self, conversation_id: str) -> list[Turn]:
        """Get the turns of a conversation, oldest first.

        Unknown conversations yield an empty list without creating a buffer.
        """
        async with self._lock:
            context = self._contexts.get(conversation_id)
        if context is None:
            return []
        return await context.snapshot()

    async def clear(self, conversation_id: str) -> bool:
        """Empty a conversation's buffer.

        Returns:
            True if a buffer existed for the conversation, False otherwise
        """
        async with self._lock:
            context = self._contexts.get(conversation_id)
        if context is None:
            return False
        await context.clear()
        logger.info(f"CONTEXT_CLEARED: {conversation_id}")
        return True

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._contexts
