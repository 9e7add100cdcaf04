"""Session-completed processing chain.

Runs once per closed session:

1. reschedule the session topic (verification sessions go through their
   assessment; everything else uses the reported quality, default 3)
2. record the day on the learner's streak
3. embed and store a session summary for later memory retrieval
4. precompute the coaching card when the profile is past cold start

Steps 3 and 4 are auxiliary. Their failures are logged and never undo or
block the retention and streak updates.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .assessment_result import VerificationMode
from .cache.coaching_card_cache import CoachingCardService
from .coaching_cards import CoachingCard
from .memory import EmbeddingClient, store_session_memory
from .repositories.base import EmbeddingStore, RetentionStore, SessionStore, StreakStore
from .retention import RetentionCard
from .retention_data import update_retention_from_session
from .streaks import StreakUpdate, create_initial_streak_state, iso_day, record_daily_activity
from .telemetry import emit_event
from .verification_completion import VerificationOutcome, process_verification_completion

logger = logging.getLogger(__name__)

SessionType = Literal["learning", "homework", "evaluate", "teach_back"]
DEFAULT_SESSION_QUALITY = 3


class SessionCompletedEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    profile_id: str
    session_id: str
    subject_id: str
    topic_id: Optional[str] = None
    session_type: SessionType = "learning"
    quality_rating: Optional[float] = None
    timestamp: Optional[datetime] = None
    summary: Optional[str] = None


class SessionCompletionResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    retention_card: Optional[RetentionCard] = None
    verification: Optional[VerificationOutcome] = None
    streak: StreakUpdate
    embedding_stored: bool = False
    coaching_card: Optional[CoachingCard] = None


def _verification_mode(session_type: str) -> Optional[VerificationMode]:
    if session_type == "evaluate":
        return VerificationMode.EVALUATE
    if session_type == "teach_back":
        return VerificationMode.TEACH_BACK
    return None


async def handle_session_completed(
    event: SessionCompletedEvent,
    *,
    retention_store: RetentionStore,
    streak_store: StreakStore,
    session_store: SessionStore,
    embedding_store: EmbeddingStore,
    coaching: Optional[CoachingCardService] = None,
    embedder: Optional[EmbeddingClient] = None,
    default_quality: int = DEFAULT_SESSION_QUALITY,
    event_limit: int = 5,
    now: Optional[datetime] = None,
) -> SessionCompletionResult:
    current = now or datetime.now(timezone.utc)
    activity_at = event.timestamp or current
    await session_store.complete_session(event.session_id, ended_at=activity_at)

    retention_card: Optional[RetentionCard] = None
    verification: Optional[VerificationOutcome] = None
    if event.topic_id:
        mode = _verification_mode(event.session_type)
        if mode is not None:
            verification = await process_verification_completion(
                mode,
                retention_store,
                session_store,
                event.profile_id,
                event.session_id,
                event.topic_id,
                now=current,
                event_limit=event_limit,
            )
            if verification is not None:
                retention_card = verification.recall.card
        if retention_card is None:
            quality = event.quality_rating if event.quality_rating is not None else default_quality
            retention_card = await update_retention_from_session(
                retention_store, event.profile_id, event.topic_id, quality, now=current
            )
        emit_event(
            "retention_updated",
            profile_id=event.profile_id,
            topic_id=event.topic_id,
            session_type=event.session_type,
            interval_days=retention_card.interval_days,
            ease_factor=retention_card.ease_factor,
            next_review_at=retention_card.next_review_at,
        )

    streak = await _record_streak(streak_store, event.profile_id, iso_day(activity_at))

    summary = event.summary or f"Session {event.session_id} for topic {event.topic_id or 'unknown'}"
    embedding_stored = await store_session_memory(
        embedding_store,
        embedder,
        session_id=event.session_id,
        profile_id=event.profile_id,
        topic_id=event.topic_id,
        content=summary,
    )

    coaching_card: Optional[CoachingCard] = None
    if coaching is not None:
        try:
            coaching_card = await coaching.refresh_coaching_card(event.profile_id, now=current)
        except Exception:  # noqa: BLE001
            logger.exception("Coaching card precompute failed for %s", event.profile_id)

    return SessionCompletionResult(
        session_id=event.session_id,
        retention_card=retention_card,
        verification=verification,
        streak=streak,
        embedding_stored=embedding_stored,
        coaching_card=coaching_card,
    )


async def _record_streak(store: StreakStore, profile_id: str, today: str) -> StreakUpdate:
    state = await store.get_streak(profile_id) or create_initial_streak_state()
    update = record_daily_activity(state, today)
    if update.new_state != state:
        await store.upsert_streak(profile_id, update.new_state)
    emit_event(
        "streak_recorded",
        profile_id=profile_id,
        current_streak=update.new_state.current_streak,
        longest_streak=update.new_state.longest_streak,
    )
    if update.streak_broken:
        logger.info("Streak reset for %s", profile_id)
        emit_event("streak_broken", profile_id=profile_id, longest_streak=update.new_state.longest_streak)
    return update


__all__ = [
    "SessionCompletedEvent",
    "SessionCompletionResult",
    "SessionType",
    "handle_session_completed",
]
