"""Caches in front of the coaching engine's computed outputs."""

from .coaching_card_cache import COLD_START_SESSION_THRESHOLD, CoachingCardService

__all__ = ["COLD_START_SESSION_THRESHOLD", "CoachingCardService"]
