"""Error taxonomy for the message pipeline."""


class TenshiError(Exception):
    """Base class for bot errors."""


class GateBlocked(TenshiError):
    """Sender or channel is blacklisted. Never shown to users."""


class ProviderError(TenshiError):
    """A provider call failed."""

    def __init__(self, message: str, provider: str = "", status: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status = status

    @property
    def kind(self) -> str:
        return "provider"


class ProviderAuthorizationError(ProviderError):
    """Credential rejected by the provider. Never retried or failed over."""

    @property
    def kind(self) -> str:
        return "authorization"


class ProviderTransientError(ProviderError):
    """Network, server or response-shape failure. Eligible for fallback."""

    @property
    def kind(self) -> str:
        return "transient"


class TotalProviderFailure(TenshiError):
    """Primary and fallback providers both failed."""

    def __init__(self, primary_error: ProviderError, fallback_error: ProviderError):
        super().__init__(
            f"primary failed ({primary_error}); fallback failed ({fallback_error})"
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class PersistenceError(TenshiError):
    """The persistence layer failed. Fatal for the current message only."""


class ResetRejectedError(TenshiError):
    """Usage reset refused because the user holds an auth token."""


class LinkingError(TenshiError):
    """Exchanging a one-time code for an auth token failed."""
