"""Chat-platform boundary: inbound message shape and reply surface."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from tenshi_bot.core.content import Attachment

logger = logging.getLogger(__name__)

# Discord's per-message character limit
MAX_MESSAGE_LENGTH = 2000


@dataclass
class IncomingMessage:
    """A message as delivered by the chat gateway."""

    message_id: str
    author_id: str
    content: str
    channel_id: str
    display_name: str
    author_is_bot: bool = False
    mentions: list[str] = field(default_factory=list)  # User ids mentioned
    attachments: list[Attachment] = field(default_factory=list)
    channel_name: str = ""

    def __str__(self) -> str:
        return f"[{self.channel_name or self.channel_id}] <{self.display_name}> {self.content}"


class ReplyTarget(Protocol):
    """Where replies to one inbound message go."""

    async def send_typing(self) -> None: ...

    async def send_reply(self, text: str) -> None: ...

    async def send_auth_prompt(self, text: str, action_id: str) -> None: ...


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a reply into chunks that fit the platform limit.

    Splits at word boundaries when possible, falling back to hard splits.
    """
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break

        split_at = text.rfind(" ", 0, max_length)
        if split_at == -1 or split_at < max_length // 2:
            split_at = max_length

        chunks.append(text[:split_at].rstrip())
        text = text[split_at:].lstrip()

    return chunks


class ConsoleReplyTarget:
    """Reply target that prints to stdout, for the local chat loop."""

    def __init__(self, bot_name: str = "tenshi"):
        self.bot_name = bot_name

    async def send_typing(self) -> None:
        print(f"  ({self.bot_name} is typing...)")

    async def send_reply(self, text: str) -> None:
        print(f"<{self.bot_name}> {text}")

    async def send_auth_prompt(self, text: str, action_id: str) -> None:
        print(f"<{self.bot_name}> {text}")
        print(f"  [button: {action_id}] run /auth <code> after authorizing")
