"""Persistence layer."""

from .database import AuthToken, BotDatabase, Persistence, UsageRecord

__all__ = ["AuthToken", "BotDatabase", "Persistence", "UsageRecord"]
