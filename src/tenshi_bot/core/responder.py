"""Response generation with primary/fallback provider selection."""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Literal

from tenshi_bot.config import BotSettings
from tenshi_bot.core.content import ContentPart
from tenshi_bot.core.context_store import ContextStore, Turn
from tenshi_bot.core.logging import get_session_stats
from tenshi_bot.core.providers import ProviderClient, ProviderRequest, UserCredential
from tenshi_bot.core.tiers import Authenticated, TierDecision
from tenshi_bot.errors import (
    ProviderAuthorizationError,
    ProviderTransientError,
    TotalProviderFailure,
)

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = "Something went wrong and tenshi is cooked"


@dataclass
class ResponseOutcome:
    """Result of response generation.

    On success `text` holds the reply and `provider_used` says which
    backend produced it. A failed outcome carries the error for logs only.
    """

    text: str = ""
    provider_used: Literal["primary", "fallback"] | None = None
    error: TotalProviderFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: TotalProviderFailure) -> "ResponseOutcome":
        return cls(error=error)


class ResponseOrchestrator:
    """Produces one reply per message, maintaining conversation context.

    The provider named by `BotSettings.primary_provider` is tried first.
    A transient failure falls through to the other provider with the same
    request; an authorization failure is raised to the caller untouched.
    """

    def __init__(
        self,
        context_store: ContextStore,
        providers: Mapping[str, ProviderClient],
        settings: BotSettings,
        is_logging_enabled: Callable[[], bool] | None = None,
    ):
        if set(providers) != {"shapes", "gemini"}:
            raise ValueError(f"Expected shapes and gemini providers, got {sorted(providers)}")
        self._context = context_store
        self._providers = dict(providers)
        self._settings = settings
        self._is_logging_enabled = is_logging_enabled or settings.is_logging_enabled

    def _select(self) -> tuple[ProviderClient, ProviderClient]:
        primary = self._settings.primary_provider
        fallback = "gemini" if primary == "shapes" else "shapes"
        return self._providers[primary], self._providers[fallback]

    async def respond(
        self,
        conversation_id: str,
        caller_id: str,
        content: list[ContentPart],
        tier: TierDecision,
    ) -> ResponseOutcome:
        """Generate a reply for one message.

        Raises:
            ProviderAuthorizationError: If the primary provider refuses the credential
        """
        await self._context.append(conversation_id, Turn.user(content, caller_id))
        history = await self._context.get_turns(conversation_id)

        credential = None
        if isinstance(tier, Authenticated):
            credential = UserCredential(token=tier.token.token, app_id=tier.token.app_id)

        request = ProviderRequest(
            conversation_id=conversation_id,
            caller_id=caller_id,
            content=content,
            history=history,
            credential=credential,
        )

        primary, fallback = self._select()
        stats = get_session_stats()

        try:
            text = await primary.generate(request)
            provider_used: Literal["primary", "fallback"] = "primary"
            served_by = primary.name
        except ProviderAuthorizationError as e:
            logger.error(f"PROVIDER_AUTH: {primary.name} rejected credential for user={caller_id}: {e}")
            raise
        except ProviderTransientError as primary_error:
            if self._is_logging_enabled():
                logger.warning(
                    f"PROVIDER_FALLBACK: {primary.name} failed ({primary_error}), "
                    f"trying {fallback.name}"
                )
            stats.increment("provider_fallbacks")
            try:
                text = await fallback.generate(request)
                provider_used = "fallback"
                served_by = fallback.name
            except ProviderAuthorizationError as e:
                logger.error(
                    f"PROVIDER_AUTH: {fallback.name} rejected credential for user={caller_id}: {e}"
                )
                raise
            except ProviderTransientError as fallback_error:
                failure = TotalProviderFailure(primary_error, fallback_error)
                logger.error(f"PROVIDER_FAILURE: conversation={conversation_id}: {failure}")
                stats.increment("provider_failures")
                return ResponseOutcome.failure(failure)

        await self._context.append(conversation_id, Turn.assistant(text))
        logger.info(
            f"RESPONSE [{provider_used}:{served_by}] "
            f"conversation={conversation_id}: {text[:100]}"
        )
        return ResponseOutcome(text=text, provider_used=provider_used)

    async def clear_context(self, conversation_id: str) -> bool:
        """Forget a conversation's history. Returns True if there was any."""
        return await self._context.clear(conversation_id)
