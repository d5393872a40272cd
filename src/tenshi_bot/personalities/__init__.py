"""Bot personality definitions."""

from .tenshi import get_tenshi_prompt

__all__ = ["get_tenshi_prompt"]
