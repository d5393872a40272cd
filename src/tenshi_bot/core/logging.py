"""Logging utilities for tenshi-bot."""

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Generator

# AI debug mode flag
_ai_debug: bool = False
_ai_debug_lock = Lock()


def set_ai_debug(enabled: bool) -> None:
    """Enable or disable AI debug logging."""
    global _ai_debug
    with _ai_debug_lock:
        _ai_debug = enabled


def is_ai_debug() -> bool:
    """Check if AI debug logging is enabled."""
    with _ai_debug_lock:
        return _ai_debug


# Dedicated logger for AI debug output
_ai_logger = logging.getLogger("tenshi_bot.ai_debug")


def log_llm_call(
    operation: str,
    model: str,
    system_prompt: str | None = None,
    messages: list[dict[str, Any]] | None = None,
    headers: dict[str, str] | None = None,
    config: dict[str, Any] | None = None,
) -> None:
    """Log the input to a provider call when AI debug is enabled."""
    if not is_ai_debug():
        return

    parts = [
        f"\n{'='*80}",
        f"LLM CALL: {operation}",
        f"Model: {model}",
        f"{'='*80}",
    ]

    if system_prompt:
        parts.append(f"\n--- SYSTEM PROMPT ---\n{system_prompt}")

    if messages:
        parts.append(f"\n--- MESSAGES ---\n{json.dumps(messages, indent=2, default=str)}")

    if headers:
        # Credentials never reach the log
        redacted = {
            k: ("***" if k.lower() in ("authorization", "x-user-auth") else v)
            for k, v in headers.items()
        }
        parts.append(f"\n--- HEADERS ---\n{json.dumps(redacted, indent=2)}")

    if config:
        parts.append(f"\n--- CONFIG ---\n{json.dumps(config, indent=2, default=str)}")

    _ai_logger.info("\n".join(parts))


def log_llm_response(
    operation: str,
    response_text: str | None = None,
    usage: dict[str, Any] | None = None,
    raw_response: Any = None,
) -> None:
    """Log the output from a provider call when AI debug is enabled."""
    if not is_ai_debug():
        return

    parts = [
        f"\n{'-'*80}",
        f"LLM RESPONSE: {operation}",
        f"{'-'*80}",
    ]

    if response_text:
        parts.append(f"\n--- RESPONSE TEXT ---\n{response_text}")

    if usage:
        parts.append(f"\n--- USAGE ---\n{json.dumps(usage, indent=2, default=str)}")

    if raw_response and not response_text:
        parts.append(f"\n--- RAW RESPONSE ---\n{raw_response}")

    parts.append(f"{'='*80}\n")

    _ai_logger.info("\n".join(parts))


@dataclass
class SessionStats:
    """Cumulative statistics for a session.

    Thread-safe counters for tracking bot activity metrics.
    """

    messages_received: int = 0
    suppressed: int = 0
    ignored: int = 0
    free_tier_served: int = 0
    auth_gated: int = 0
    authenticated_served: int = 0
    provider_fallbacks: int = 0
    provider_failures: int = 0
    reasons: dict[str, int] = field(default_factory=dict)
    api_calls: dict[str, int] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def increment(self, stat: str, amount: int = 1) -> None:
        """Increment a stat counter."""
        with self._lock:
            if hasattr(self, stat) and stat != "_lock":
                current = getattr(self, stat)
                if isinstance(current, int):
                    setattr(self, stat, current + amount)

    def increment_reason(self, reason: str) -> None:
        """Track why the bot decided to respond."""
        with self._lock:
            self.reasons[reason] = self.reasons.get(reason, 0) + 1

    def increment_api_call(self, provider: str) -> None:
        """Track a call to a specific provider backend."""
        with self._lock:
            self.api_calls[provider] = self.api_calls.get(provider, 0) + 1

    def summary(self) -> dict[str, Any]:
        """Return a summary of all stats."""
        with self._lock:
            served = self.free_tier_served + self.authenticated_served
            return {
                "received": self.messages_received,
                "served": served,
                "free": self.free_tier_served,
                "authenticated": self.authenticated_served,
                "gated": self.auth_gated,
                "fallbacks": self.provider_fallbacks,
                "failures": self.provider_failures,
                "reasons": dict(self.reasons),
                "api_calls": dict(self.api_calls),
            }

    def summary_line(self) -> str:
        """Return a single-line summary for logging."""
        with self._lock:
            served = self.free_tier_served + self.authenticated_served
            serve_pct = 100 * served / max(1, self.messages_received)
            return (
                f"received={self.messages_received} "
                f"served={served} ({serve_pct:.0f}%) "
                f"free={self.free_tier_served} auth={self.authenticated_served} "
                f"gated={self.auth_gated} fallbacks={self.provider_fallbacks} "
                f"failures={self.provider_failures}"
            )


# Global session stats instance
_session_stats: SessionStats | None = None
_stats_lock = Lock()


def get_session_stats() -> SessionStats:
    """Get the global session stats instance."""
    global _session_stats
    with _stats_lock:
        if _session_stats is None:
            _session_stats = SessionStats()
        return _session_stats


def reset_session_stats() -> None:
    """Reset session stats (mainly for testing)."""
    global _session_stats
    with _stats_lock:
        _session_stats = SessionStats()


# Dedicated logger for provider call summaries (always on)
_llm_logger = logging.getLogger("tenshi_bot.llm")


def log_llm_round(
    component: str,
    model: str,
    tokens_in: int | None = None,
    tokens_out: int | None = None,
    elapsed_ms: float | None = None,
) -> None:
    """Log a summary of a provider call (always on).

    Args:
        component: Which client made the call (e.g., "shapes/openai", "gemini")
        model: Model name used
        tokens_in: Input token count (None if unavailable)
        tokens_out: Output token count (None if unavailable)
        elapsed_ms: Wall time of the call
    """
    tokens_str = f"in={tokens_in or '?'} out={tokens_out or '?'}"
    elapsed_str = f" elapsed={elapsed_ms:.0f}ms" if elapsed_ms is not None else ""

    _llm_logger.info(f"LLM_ROUND [{component}] model={model} {tokens_str}{elapsed_str}")


@contextmanager
def log_timing(
    logger: logging.Logger, operation: str
) -> Generator[None, None, None]:
    """Context manager for timing operations.

    Logs at DEBUG level on completion.

    Example:
        with log_timing(logger, "Tier check"):
            decision = await tiers.classify(user_id)
        # Logs: "Tier check completed in 1.23ms"
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"{operation} completed in {elapsed_ms:.2f}ms")
