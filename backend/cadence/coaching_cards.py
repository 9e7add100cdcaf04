"""Coaching card types and the priority procedure that picks one per profile.

Exactly one card is produced per selection, in strict priority order:

1. ``review_due`` when any topic is due (priority 7-10, grows with the backlog)
2. ``streak`` when the learner is inside the streak grace period (priority 6)
3. ``insight`` when any topic has verified XP (priority 4)
4. ``challenge`` otherwise (priority 3)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .retention import RetentionCard, XpStatus, is_review_due
from .streaks import StreakState, get_streak_display_info, iso_day

CARD_TTL = timedelta(hours=24)
REVIEW_DUE_BASE_PRIORITY = 7
MAX_PRIORITY = 10


class CardType(str, Enum):
    STREAK = "streak"
    INSIGHT = "insight"
    REVIEW_DUE = "review_due"
    CHALLENGE = "challenge"


class _CardEnvelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    profile_id: str
    title: str
    body: str
    priority: int = Field(ge=1, le=MAX_PRIORITY)
    expires_at: Optional[datetime] = None
    created_at: datetime


class StreakCard(_CardEnvelope):
    type: Literal["streak"] = "streak"
    current_streak: int
    grace_remaining: int


class InsightCard(_CardEnvelope):
    type: Literal["insight"] = "insight"
    topic_id: str
    insight_type: str


class ReviewDueCard(_CardEnvelope):
    type: Literal["review_due"] = "review_due"
    topic_id: str
    due_at: datetime
    ease_factor: float


class ChallengeCard(_CardEnvelope):
    type: Literal["challenge"] = "challenge"
    topic_id: str
    difficulty: str
    xp_reward: int


CoachingCard = Annotated[
    Union[StreakCard, InsightCard, ReviewDueCard, ChallengeCard],
    Field(discriminator="type"),
]
coaching_card_adapter: TypeAdapter[Any] = TypeAdapter(CoachingCard)


class CoachingCardCacheEntry(BaseModel):
    card_data: CoachingCard
    expires_at: datetime
    context_hash: Optional[str] = None

    def is_fresh(self, now: datetime) -> bool:
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return expires_at > now


class FallbackAction(BaseModel):
    key: str
    label: str
    description: str


class ColdStartFallback(BaseModel):
    actions: List[FallbackAction]


class CoachingCardResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cold_start: bool
    card: Optional[CoachingCard] = None
    fallback: Optional[ColdStartFallback] = None


COLD_START_ACTIONS = (
    FallbackAction(key="continue_learning", label="Continue learning", description="Pick up where you left off."),
    FallbackAction(key="start_new_topic", label="Start a new topic", description="Explore something new in your curriculum."),
    FallbackAction(key="review_progress", label="Review progress", description="See how far you have come."),
)


def cold_start_fallback() -> ColdStartFallback:
    return ColdStartFallback(actions=[action.model_copy() for action in COLD_START_ACTIONS])


def parse_coaching_card(payload: Any) -> CoachingCard:
    """Validate a stored card payload. Raises ``ValidationError`` on an unknown type."""
    return coaching_card_adapter.validate_python(payload)


def dump_coaching_card(card: CoachingCard) -> dict[str, Any]:
    return coaching_card_adapter.dump_python(card, mode="json", by_alias=True)


def card_type(card: Any) -> CardType:
    kind = getattr(card, "type", None)
    try:
        return CardType(kind)
    except ValueError:
        raise ValueError(f"Unknown coaching card type: {kind!r}") from None


def review_due_priority(overdue_count: int) -> int:
    return min(REVIEW_DUE_BASE_PRIORITY + overdue_count - 1, MAX_PRIORITY)


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def select_coaching_card(
    profile_id: str,
    cards: Iterable[RetentionCard],
    streak: Optional[StreakState],
    now: datetime,
    *,
    card_id: Optional[str] = None,
) -> CoachingCard:
    """Choose the single coaching card to surface for ``profile_id`` at ``now``."""
    retention_cards = list(cards)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    envelope = {
        "id": card_id or str(uuid.uuid4()),
        "profile_id": profile_id,
        "created_at": now,
        "expires_at": now + CARD_TTL,
    }

    overdue = [card for card in retention_cards if is_review_due(card, now)]
    if overdue:
        most_overdue = min(overdue, key=lambda card: card.next_review_at)  # type: ignore[arg-type,return-value]
        count = len(overdue)
        return ReviewDueCard(
            **envelope,
            title="Review due",
            body=f"You have {count} {_plural(count, 'topic')} ready for review.",
            priority=review_due_priority(count),
            topic_id=most_overdue.topic_id,
            due_at=most_overdue.next_review_at,
            ease_factor=most_overdue.ease_factor,
        )

    if streak is not None:
        display = get_streak_display_info(streak, iso_day(now))
        if display.is_on_grace_period:
            remaining = display.grace_days_remaining
            return StreakCard(
                **envelope,
                title="Keep your streak alive!",
                body=(
                    f"Your {streak.current_streak}-day streak is at risk. "
                    f"{remaining} grace {_plural(remaining, 'day')} remaining."
                ),
                priority=6,
                current_streak=streak.current_streak,
                grace_remaining=remaining,
            )

    verified = [card for card in retention_cards if card.xp_status == XpStatus.VERIFIED]
    if verified:
        return InsightCard(
            **envelope,
            title="Great progress!",
            body="You have verified your understanding of a topic. Keep up the momentum!",
            priority=4,
            topic_id=verified[0].topic_id,
            insight_type="strength",
        )

    fallback_topic = retention_cards[0].topic_id if retention_cards else profile_id
    return ChallengeCard(
        **envelope,
        title="Ready for a challenge?",
        body="Take the next step in your learning journey!",
        priority=3,
        topic_id=fallback_topic,
        difficulty="easy",
        xp_reward=10,
    )


def render_card_summary(card: CoachingCard) -> str:
    """One-line description of a card for logs and notification previews."""
    if isinstance(card, ReviewDueCard):
        return f"review_due:{card.topic_id} (ease {card.ease_factor:.2f}, priority {card.priority})"
    if isinstance(card, StreakCard):
        return f"streak:{card.current_streak} days ({card.grace_remaining} grace left)"
    if isinstance(card, InsightCard):
        return f"insight:{card.topic_id} ({card.insight_type})"
    if isinstance(card, ChallengeCard):
        return f"challenge:{card.topic_id} ({card.difficulty}, {card.xp_reward} xp)"
    raise ValueError(f"Unknown coaching card type: {type(card).__name__}")


__all__ = [
    "CARD_TTL",
    "COLD_START_ACTIONS",
    "CardType",
    "ChallengeCard",
    "CoachingCardCacheEntry",
    "CoachingCard",
    "CoachingCardResult",
    "ColdStartFallback",
    "FallbackAction",
    "InsightCard",
    "ReviewDueCard",
    "StreakCard",
    "cold_start_fallback",
    "card_type",
    "coaching_card_adapter",
    "dump_coaching_card",
    "parse_coaching_card",
    "render_card_summary",
    "review_due_priority",
    "select_coaching_card",
]
