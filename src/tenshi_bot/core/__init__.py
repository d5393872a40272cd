"""Core message pipeline."""

from .content import Attachment, ContentAssembler, ContentPart, PartKind
from .context_store import ContextStore, ConversationContext, Role, Turn
from .intent import BotIdentity, ChannelState, IntentReason, IntentResolver, IntentResult
from .linking import AccountLinker
from .providers import (
    GeminiProvider,
    ProviderClient,
    ProviderRequest,
    ShapesHTTPClient,
    ShapesProvider,
    ShapesSDKClient,
    UserCredential,
    build_providers,
)
from .responder import APOLOGY_MESSAGE, ResponseOrchestrator, ResponseOutcome
from .tiers import (
    Authenticated,
    AuthRequired,
    AuthStatus,
    AuthSummary,
    AuthTierResolver,
    FreeTier,
    TierDecision,
)

__all__ = [
    "APOLOGY_MESSAGE",
    "AccountLinker",
    "Attachment",
    "AuthRequired",
    "AuthStatus",
    "AuthSummary",
    "AuthTierResolver",
    "Authenticated",
    "BotIdentity",
    "ChannelState",
    "ContentAssembler",
    "ContentPart",
    "ContextStore",
    "ConversationContext",
    "FreeTier",
    "GeminiProvider",
    "IntentReason",
    "IntentResolver",
    "IntentResult",
    "PartKind",
    "ProviderClient",
    "ProviderRequest",
    "ResponseOrchestrator",
    "ResponseOutcome",
    "Role",
    "ShapesHTTPClient",
    "ShapesProvider",
    "ShapesSDKClient",
    "TierDecision",
    "Turn",
    "UserCredential",
    "build_providers",
]
