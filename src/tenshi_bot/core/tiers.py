"""Usage tier classification: free quota, auth wall, linked account."""

import logging
from dataclasses import dataclass
from enum import Enum

from tenshi_bot.errors import ResetRejectedError
from tenshi_bot.storage.database import AuthToken, Persistence

logger = logging.getLogger(__name__)

DEFAULT_FREE_MESSAGE_LIMIT = 5


@dataclass(frozen=True)
class FreeTier:
    """Anonymous user still inside the free quota."""

    remaining: int


@dataclass(frozen=True)
class AuthRequired:
    """Anonymous user who used up the free quota."""

    count: int


@dataclass(frozen=True)
class Authenticated:
    """User with a linked account; never counted."""

    token: AuthToken


TierDecision = FreeTier | AuthRequired | Authenticated


class AuthStatus(str, Enum):
    """Coarse tier labels for status displays."""

    FREE_TIER = "free_tier"
    AUTH_REQUIRED = "auth_required"
    AUTHENTICATED = "authenticated"


@dataclass
class AuthSummary:
    """A user's tier and counters, safe to show back to that user."""

    status: AuthStatus
    message_count: int
    remaining: int | None = None
    app_id: str | None = None


class AuthTierResolver:
    """Derives a user's tier from their stored token and usage count.

    A stored auth token always wins. Without one, users get a fixed
    number of free messages and then hit the auth wall, where the count
    stays frozen until they link an account.
    """

    def __init__(self, persistence: Persistence, free_limit: int = DEFAULT_FREE_MESSAGE_LIMIT):
        self._db = persistence
        self._free_limit = free_limit

    @property
    def free_limit(self) -> int:
        return self._free_limit

    async def classify(self, user_id: str) -> TierDecision:
        """Classify a user. Reads only; never changes the count."""
        token = await self._db.get_auth_token(user_id)
        if token is not None:
            return Authenticated(token)

        count = await self._db.get_usage_count(user_id)
        if count >= self._free_limit:
            return AuthRequired(count)
        return FreeTier(self._free_limit - count)

    async def consume_free_message(self, user_id: str) -> int:
        """Charge one free message. Returns the new count."""
        new_count = await self._db.increment_usage_count(user_id)
        logger.debug(f"TIER: user={user_id} free usage now {new_count}/{self._free_limit}")
        return new_count

    async def touch(self, user_id: str) -> None:
        """Record that a user's token was just used."""
        await self._db.touch_auth_token_last_used(user_id)

    async def revoke(self, user_id: str) -> bool:
        """Unlink a user's account. The usage count is left as it was.

        Returns:
            True if a token was removed
        """
        removed = await self._db.revoke_auth_token(user_id)
        logger.info(f"TIER: revoked auth for user={user_id} (had_token={removed})")
        return removed

    async def reset(self, user_id: str) -> None:
        """Zero a user's anonymous usage count.

        Raises:
            ResetRejectedError: If the user currently holds an auth token
        """
        if await self._db.get_auth_token(user_id) is not None:
            raise ResetRejectedError(
                "You are currently linked. Revoke your authentication first to reset usage."
            )
        await self._db.reset_usage_count(user_id)
        logger.info(f"TIER: reset usage for user={user_id}")

    async def summary(self, user_id: str) -> AuthSummary:
        """Describe a user's tier for display."""
        decision = await self.classify(user_id)
        count = await self._db.get_usage_count(user_id)

        if isinstance(decision, Authenticated):
            return AuthSummary(
                status=AuthStatus.AUTHENTICATED,
                message_count=count,
                app_id=decision.token.app_id,
            )
        if isinstance(decision, AuthRequired):
            return AuthSummary(status=AuthStatus.AUTH_REQUIRED, message_count=count)
        return AuthSummary(
            status=AuthStatus.FREE_TIER,
            message_count=count,
            remaining=decision.remaining,
        )
