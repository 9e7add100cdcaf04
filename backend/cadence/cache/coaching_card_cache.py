"""Persisted, TTL-bounded cache in front of the coaching card selector.

Profiles with fewer completed sessions than the cold-start threshold never
reach the cache; they get a fixed set of fallback actions instead.

The read, compute and write steps are not locked. Two requests that miss at
the same time both compute a card and the later upsert wins. Both cards come
from the same retention and streak state, so they are equivalent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..coaching_cards import (
    CARD_TTL,
    CoachingCard,
    CoachingCardResult,
    card_type,
    cold_start_fallback,
    render_card_summary,
    select_coaching_card,
)
from ..repositories.base import CoachingCardCacheStore, RetentionStore, SessionStore, StreakStore
from ..telemetry import emit_event

logger = logging.getLogger(__name__)

COLD_START_SESSION_THRESHOLD = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CoachingCardService:
    retention_store: RetentionStore
    streak_store: StreakStore
    cache_store: CoachingCardCacheStore
    session_store: SessionStore
    ttl: timedelta = CARD_TTL
    cold_start_threshold: int = COLD_START_SESSION_THRESHOLD

    async def get_coaching_card_for_profile(
        self, profile_id: str, now: Optional[datetime] = None
    ) -> CoachingCardResult:
        current = now or _utcnow()
        completed = await self.session_store.count_completed_sessions(profile_id)
        if completed < self.cold_start_threshold:
            emit_event("coaching_card_cold_start", profile_id=profile_id, completed_sessions=completed)
            return CoachingCardResult(cold_start=True, card=None, fallback=cold_start_fallback())

        cached = await self.read_coaching_card_cache(profile_id, now=current)
        if cached is not None:
            emit_event("coaching_card_cache_hit", profile_id=profile_id, card_type=card_type(cached))
            return CoachingCardResult(cold_start=False, card=cached, fallback=None)

        card = await self.compute_coaching_card(profile_id, now=current)
        await self.write_coaching_card_cache(profile_id, card, now=current)
        return CoachingCardResult(cold_start=False, card=card, fallback=None)

    async def compute_coaching_card(self, profile_id: str, now: Optional[datetime] = None) -> CoachingCard:
        current = now or _utcnow()
        cards = await self.retention_store.list_cards(profile_id)
        streak = await self.streak_store.get_streak(profile_id)
        card = select_coaching_card(profile_id, cards, streak, current)
        logger.info("Computed coaching card for %s: %s", profile_id, render_card_summary(card))
        emit_event(
            "coaching_card_computed",
            profile_id=profile_id,
            card_type=card_type(card),
            priority=card.priority,
        )
        return card

    async def read_coaching_card_cache(
        self, profile_id: str, now: Optional[datetime] = None
    ) -> Optional[CoachingCard]:
        """Return the cached card, or ``None`` when missing or expired."""
        entry = await self.cache_store.get_cache(profile_id)
        if entry is None or not entry.is_fresh(now or _utcnow()):
            return None
        return entry.card_data

    async def write_coaching_card_cache(
        self, profile_id: str, card: CoachingCard, now: Optional[datetime] = None
    ) -> datetime:
        """Upsert ``card`` as the profile's cached card and return its expiry."""
        expires_at = (now or _utcnow()) + self.ttl
        await self.cache_store.upsert_cache(profile_id, card, expires_at)
        return expires_at

    async def refresh_coaching_card(self, profile_id: str, now: Optional[datetime] = None) -> Optional[CoachingCard]:
        """Recompute and store a warm profile's card; cold-start profiles are skipped."""
        completed = await self.session_store.count_completed_sessions(profile_id)
        if completed < self.cold_start_threshold:
            return None
        current = now or _utcnow()
        card = await self.compute_coaching_card(profile_id, now=current)
        await self.write_coaching_card_cache(profile_id, card, now=current)
        return card


__all__ = ["COLD_START_SESSION_THRESHOLD", "CoachingCardService"]
