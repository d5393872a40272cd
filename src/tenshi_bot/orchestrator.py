"""Main orchestrator tying all components together."""

import logging
from dataclasses import dataclass
from enum import Enum

from tenshi_bot.config import BotSettings, Config
from tenshi_bot.core import (
    APOLOGY_MESSAGE,
    AccountLinker,
    Authenticated,
    AuthRequired,
    AuthSummary,
    AuthTierResolver,
    BotIdentity,
    ContentAssembler,
    ContentPart,
    ContextStore,
    IntentReason,
    IntentResolver,
    IntentResult,
    ProviderClient,
    ResponseOrchestrator,
    ResponseOutcome,
    TierDecision,
    build_providers,
)
from tenshi_bot.core.logging import get_session_stats, log_timing
from tenshi_bot.errors import (
    GateBlocked,
    LinkingError,
    PersistenceError,
    ProviderAuthorizationError,
)
from tenshi_bot.gateway import IncomingMessage, ReplyTarget, split_message
from tenshi_bot.storage import BotDatabase

logger = logging.getLogger(__name__)

# How often to log session stats (every N messages)
STATS_LOG_INTERVAL = 50

AUTH_WALL_ACTION_ID = "auth_wall_login"

AUTH_WALL_MESSAGE = """**Connect with Shapes Inc for Unlimited Access**

You've reached the limit for anonymous usage. **Good news**: this bot is completely **free** for authorized users!

**Join the Shapes ecosystem and unlock:**

**Massive Character Library**
> Talk to millions of unique AI characters, each with their own personality and expertise

**Create Your Own Characters**
> Build and customize your own AI personas for free at [shapes.inc](https://shapes.inc)

**Join Our Community**
> Connect with creators and explore countless Shapes on [talk.shapes.inc](https://talk.shapes.inc)

**This bot remains completely free once you authorize with Shapes Inc.**

Click the button below to get started:"""


class MessageState(str, Enum):
    """Terminal state of one inbound message."""

    SUPPRESSED = "suppressed"
    IGNORED = "ignored"
    FREE_TIER_SERVED = "free_tier_served"
    AUTH_REQUIRED_GATED = "auth_required_gated"
    AUTHENTICATED_SERVED = "authenticated_served"
    FAILED = "failed"


@dataclass
class ProcessingResult:
    """Result of processing a message."""

    state: MessageState
    reason: str = ""
    reply: str | None = None  # Text sent back, if any

    @property
    def responded(self) -> bool:
        return self.reply is not None


class Orchestrator:
    """Runs the message pipeline: intent, tier, content, response, reply.

    Also the single entry point for admin and user commands, which change
    runtime settings or per-user state through the components it owns.
    """

    def __init__(
        self,
        settings: BotSettings,
        database: BotDatabase,
        providers: dict[str, ProviderClient],
        bot: BotIdentity,
        linker: AccountLinker | None = None,
        context_store: ContextStore | None = None,
        random_prob: float = 0.2,
        free_limit: int = 5,
        max_reply_length: int = 2000,
    ):
        self._settings = settings
        self._db = database
        self._providers = providers
        self._bot = bot
        self._linker = linker
        self._max_reply_length = max_reply_length

        self._intent = IntentResolver(settings, random_prob=random_prob)
        self._tiers = AuthTierResolver(database, free_limit=free_limit)
        self._assembler = ContentAssembler()
        self._responder = ResponseOrchestrator(
            context_store or ContextStore(),
            providers,
            settings,
            is_logging_enabled=settings.is_logging_enabled,
        )

        logger.info("Orchestrator initialized")

    @classmethod
    def from_config(cls, config: Config, bot_user_id: str) -> "Orchestrator":
        """Build the full pipeline from configuration."""
        settings = BotSettings.from_config(config)
        database = BotDatabase(config.storage.db_path)
        linker = AccountLinker(
            database,
            auth_base_url=config.auth.auth_base_url,
            app_id=config.auth.app_id,
            timeout=config.auth.timeout_seconds,
        )
        return cls(
            settings=settings,
            database=database,
            providers=build_providers(config, settings),
            bot=BotIdentity(user_id=bot_user_id, name=config.chat.bot_name),
            linker=linker,
            context_store=ContextStore(config.context.max_turns),
            random_prob=config.chat.random_response_prob,
            free_limit=config.auth.free_message_limit,
            max_reply_length=config.chat.max_reply_length,
        )

    @property
    def settings(self) -> BotSettings:
        return self._settings

    @property
    def database(self) -> BotDatabase:
        return self._db

    async def close(self) -> None:
        """Release network sessions and the database connection."""
        for provider in self._providers.values():
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
        if self._linker is not None:
            await self._linker.close()
        self._db.close()

    # Pipeline

    async def handle_message(
        self, message: IncomingMessage, reply_target: ReplyTarget
    ) -> ProcessingResult:
        """Process one inbound message end to end.

        Never raises for per-message failures; they end in the FAILED state.
        """
        stats = get_session_stats()
        stats.increment("messages_received")
        if stats.messages_received % STATS_LOG_INTERVAL == 0:
            logger.info(f"SESSION_STATS: {stats.summary_line()}")

        try:
            result = await self._process_message(message, reply_target)
        except GateBlocked as e:
            logger.debug(f"GATE: {e}")
            stats.increment("suppressed")
            result = ProcessingResult(MessageState.SUPPRESSED, reason=IntentReason.SUPPRESSED.value)
        except PersistenceError as e:
            logger.error(f"FAILED: storage error for message {message.message_id}: {e}")
            result = ProcessingResult(MessageState.FAILED, reason="persistence_error")
        except ProviderAuthorizationError as e:
            logger.error(
                f"FAILED: provider refused credential for user={message.author_id}: {e}"
            )
            result = ProcessingResult(MessageState.FAILED, reason="authorization_error")
        except Exception:
            logger.exception(f"FAILED: unexpected error for message {message.message_id}")
            result = ProcessingResult(MessageState.FAILED, reason="unexpected_error")

        logger.debug(f"MESSAGE {message.message_id}: {result.state.value} ({result.reason})")
        return result

    async def _process_message(
        self, message: IncomingMessage, reply_target: ReplyTarget
    ) -> ProcessingResult:
        stats = get_session_stats()

        intent = await self.resolve_intent(message)
        if not intent.respond:
            if intent.reason == IntentReason.SUPPRESSED:
                raise GateBlocked(f"user={message.author_id} channel={message.channel_id}")
            stats.increment("ignored")
            return ProcessingResult(MessageState.IGNORED, reason=intent.reason.value)

        with log_timing(logger, "Tier check"):
            tier = await self.classify_tier(message.author_id)

        if isinstance(tier, AuthRequired):
            logger.info(f"TIER: user={message.author_id} gated at {tier.count} messages")
            await reply_target.send_auth_prompt(AUTH_WALL_MESSAGE, AUTH_WALL_ACTION_ID)
            stats.increment("auth_gated")
            return ProcessingResult(
                MessageState.AUTH_REQUIRED_GATED, reason=intent.reason.value, reply=AUTH_WALL_MESSAGE
            )

        if not isinstance(tier, Authenticated):
            # Charged before generation so a failed call still counts
            await self._tiers.consume_free_message(message.author_id)

        content = self._assembler.assemble(
            intent.normalized_content, message.attachments, message.display_name
        )

        await reply_target.send_typing()
        outcome = await self.respond(message.channel_id, message.author_id, content, tier)

        reason = intent.reason.value
        if outcome.ok:
            reply = outcome.text
        else:
            reply = APOLOGY_MESSAGE
            reason = "provider_failure"

        await self._send_reply(reply_target, reply)

        if isinstance(tier, Authenticated):
            await self._tiers.touch(message.author_id)
            stats.increment("authenticated_served")
            return ProcessingResult(MessageState.AUTHENTICATED_SERVED, reason=reason, reply=reply)

        stats.increment("free_tier_served")
        return ProcessingResult(MessageState.FREE_TIER_SERVED, reason=reason, reply=reply)

    async def _send_reply(self, reply_target: ReplyTarget, text: str) -> None:
        for chunk in split_message(text, self._max_reply_length):
            await reply_target.send_reply(chunk)

    # Operations exposed to the command layer

    async def resolve_intent(self, message: IncomingMessage) -> IntentResult:
        return await self._intent.resolve(message, self._bot, self._db)

    async def classify_tier(self, user_id: str) -> TierDecision:
        return await self._tiers.classify(user_id)

    async def respond(
        self,
        conversation_id: str,
        caller_id: str,
        content: list[ContentPart],
        tier: TierDecision,
    ) -> ResponseOutcome:
        return await self._responder.respond(conversation_id, caller_id, content, tier)

    async def clear_context(self, conversation_id: str) -> bool:
        return await self._responder.clear_context(conversation_id)

    def set_trigger_word(self, word: str) -> None:
        self._settings.set_trigger_word(word)
        logger.info(f"SETTINGS: trigger word now {self._settings.get_trigger_word()}")

    def get_trigger_word(self) -> str:
        return self._settings.get_trigger_word()

    def set_logging(self, enabled: bool) -> None:
        self._settings.set_logging(enabled)
        logger.info(f"SETTINGS: diagnostic logging {'enabled' if enabled else 'disabled'}")

    def set_primary_provider(self, provider: str) -> None:
        self._settings.set_primary_provider(provider)
        logger.info(f"SETTINGS: primary provider now {provider}")

    def set_shapes_client(self, client: str) -> None:
        self._settings.set_shapes_client(client)
        logger.info(f"SETTINGS: shapes client now {client}")

    def set_shape_username(self, username: str) -> None:
        self._settings.set_shape_username(username)
        logger.info(f"SETTINGS: shape username now {self._settings.shape_username}")

    async def link_account(self, user_id: str, code: str) -> None:
        """Link a user's Shapes account from a one-time code.

        Raises:
            LinkingError: If linking is unconfigured or the exchange fails
        """
        if self._linker is None:
            raise LinkingError("Account linking is not configured.")
        await self._linker.link(user_id, code)

    async def revoke_auth(self, user_id: str) -> bool:
        return await self._tiers.revoke(user_id)

    async def reset_usage(self, user_id: str) -> None:
        await self._tiers.reset(user_id)

    async def auth_summary(self, user_id: str) -> AuthSummary:
        return await self._tiers.summary(user_id)
