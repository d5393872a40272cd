"""Multimodal content assembly for provider requests."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

logger = logging.getLogger(__name__)

# Substrings that mark an attachment as audio when the media type is vague
AUDIO_MARKERS = ("mp3", "wav", "ogg")


class PartKind(str, Enum):
    """Kinds of content part."""

    TEXT = "text"
    IMAGE = "image_url"
    AUDIO = "audio_url"


@dataclass(frozen=True)
class ContentPart:
    """One typed fragment of a multimodal message."""

    kind: PartKind
    value: str  # Text for TEXT parts, a URL otherwise

    @classmethod
    def text(cls, text: str) -> "ContentPart":
        return cls(PartKind.TEXT, text)

    @classmethod
    def image(cls, url: str) -> "ContentPart":
        return cls(PartKind.IMAGE, url)

    @classmethod
    def audio(cls, url: str) -> "ContentPart":
        return cls(PartKind.AUDIO, url)

    def to_api(self) -> dict[str, Any]:
        """Render in the OpenAI-compatible chat content format."""
        if self.kind == PartKind.TEXT:
            return {"type": "text", "text": self.value}
        return {"type": self.kind.value, self.kind.value: {"url": self.value}}


@dataclass(frozen=True)
class Attachment:
    """A file attached to an incoming message."""

    url: str
    content_type: str = ""
    filename: str = ""


def classify_attachment(attachment: Attachment) -> PartKind | None:
    """Map an attachment to a content part kind, or None to ignore it."""
    media_type = (attachment.content_type or "").lower()
    if media_type.startswith("image/"):
        return PartKind.IMAGE
    if media_type.startswith("audio/"):
        return PartKind.AUDIO
    name = (attachment.filename or "").lower()
    if any(marker in media_type or marker in name for marker in AUDIO_MARKERS):
        return PartKind.AUDIO
    return None


class ContentAssembler:
    """Builds the ordered content parts sent to a provider.

    Text comes first as "<display name>: <text>", followed by one part per
    recognized image or audio attachment in attachment order. The result is
    never empty: a bare "<display name>: Hello" stands in when nothing else
    was usable.
    """

    def assemble(
        self,
        raw_text: str | None,
        attachments: Sequence[Attachment],
        display_name: str,
    ) -> list[ContentPart]:
        parts: list[ContentPart] = []

        text = (raw_text or "").strip()
        if text:
            parts.append(ContentPart.text(f"{display_name}: {text}"))

        for attachment in attachments:
            kind = classify_attachment(attachment)
            if kind is None:
                logger.debug(
                    f"Ignoring attachment {attachment.filename or attachment.url} "
                    f"({attachment.content_type or 'unknown type'})"
                )
                continue
            parts.append(ContentPart(kind, attachment.url))

        if not parts:
            parts.append(ContentPart.text(f"{display_name}: Hello"))

        return parts
