"""Store-aware retention, streak and verification queries used by the API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .repositories.base import RetentionStore, StreakStore
from .retention import (
    FailureAction,
    RetentionCard,
    RetentionStatus,
    XpChange,
    XpStatus,
    create_initial_retention_card,
    get_retention_status,
    is_review_due,
    process_recall_result,
)
from .scheduler import sm2
from .streaks import create_initial_streak_state, get_streak_display_info, iso_day
from .verification import get_evaluate_rung_description, should_trigger_evaluate, should_trigger_teach_back

logger = logging.getLogger(__name__)

LENGTH_PROXY_MIN_CHARS = 50
LENGTH_PROXY_PASS_QUALITY = 4
LENGTH_PROXY_FAIL_QUALITY = 2


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RetentionCardView(_CamelModel):
    topic_id: str
    ease_factor: float
    interval_days: int
    repetitions: int
    next_review_at: Optional[datetime] = None
    xp_status: XpStatus
    failure_count: int
    status: RetentionStatus
    review_due: bool


class SubjectRetention(_CamelModel):
    topics: List[RetentionCardView] = Field(default_factory=list)
    review_due_count: int = 0


class RecallTestOutcome(_CamelModel):
    passed: bool
    mastery_score: float
    xp_change: XpChange
    next_review_at: datetime
    failure_action: Optional[FailureAction] = None


class StreakData(_CamelModel):
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[str] = None
    grace_period_start_date: Optional[str] = None
    is_on_grace_period: bool = False
    grace_days_remaining: int = 0
    display_text: str


class VerificationEligibility(_CamelModel):
    topic_id: str
    evaluate: bool
    teach_back: bool
    difficulty_rung: int
    rung_description: str


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def to_view(card: RetentionCard, now: Optional[datetime] = None) -> RetentionCardView:
    current = _now(now)
    return RetentionCardView(
        topic_id=card.topic_id,
        ease_factor=card.ease_factor,
        interval_days=card.interval_days,
        repetitions=card.repetitions,
        next_review_at=card.next_review_at,
        xp_status=card.xp_status,
        failure_count=card.failure_count,
        status=get_retention_status(card, current),
        review_due=is_review_due(card, current),
    )


async def get_topic_retention(
    store: RetentionStore, profile_id: str, topic_id: str, now: Optional[datetime] = None
) -> Optional[RetentionCardView]:
    card = await store.get_card(profile_id, topic_id)
    return to_view(card, now) if card is not None else None


async def get_subject_retention(
    store: RetentionStore,
    profile_id: str,
    topic_ids: Iterable[str],
    now: Optional[datetime] = None,
) -> SubjectRetention:
    wanted = list(topic_ids)
    if not wanted:
        return SubjectRetention()
    cards = await store.list_cards(profile_id, wanted)
    views = [to_view(card, now) for card in cards]
    return SubjectRetention(topics=views, review_due_count=sum(1 for view in views if view.review_due))


async def update_retention_from_session(
    store: RetentionStore,
    profile_id: str,
    topic_id: str,
    quality: object,
    now: Optional[datetime] = None,
) -> RetentionCard:
    """Reschedule a topic after an ordinary learning session."""
    card = await store.get_card(profile_id, topic_id)
    if card is None:
        card = create_initial_retention_card(profile_id, topic_id)
    result = sm2(quality, card.to_sm2_card(), now=_now(now))
    return await store.upsert_card(card.with_schedule(result))


def length_proxy_quality(answer: str) -> int:
    """Stand-in grade when no model grade is available: long answers pass."""
    return LENGTH_PROXY_PASS_QUALITY if len(answer) > LENGTH_PROXY_MIN_CHARS else LENGTH_PROXY_FAIL_QUALITY


async def process_recall_test(
    store: RetentionStore,
    profile_id: str,
    topic_id: str,
    answer: str,
    *,
    quality: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RecallTestOutcome:
    current = _now(now)
    card = await store.get_card(profile_id, topic_id)
    if card is None:
        # Nothing to schedule against yet; count it as a first successful recall.
        return RecallTestOutcome(passed=True, mastery_score=0.75, xp_change="verified", next_review_at=current)

    grade = quality if quality is not None else length_proxy_quality(answer)
    result = process_recall_result(card, grade, now=current)
    saved = await store.upsert_card(result.card)
    logger.info(
        "Recall test for %s/%s: passed=%s xp_change=%s",
        profile_id,
        topic_id,
        result.passed,
        result.xp_change,
    )
    return RecallTestOutcome(
        passed=result.passed,
        mastery_score=0.75 if result.passed else 0.4,
        xp_change=result.xp_change,
        next_review_at=saved.next_review_at or current,
        failure_action=result.failure_action,
    )


async def get_streak_data(store: StreakStore, profile_id: str, now: Optional[datetime] = None) -> StreakData:
    state = await store.get_streak(profile_id) or create_initial_streak_state()
    display = get_streak_display_info(state, iso_day(_now(now)))
    return StreakData(
        current_streak=state.current_streak,
        longest_streak=state.longest_streak,
        last_activity_date=state.last_activity_date,
        grace_period_start_date=state.grace_period_start_date,
        is_on_grace_period=display.is_on_grace_period,
        grace_days_remaining=display.grace_days_remaining,
        display_text=display.display_text,
    )


async def get_verification_eligibility(
    store: RetentionStore, profile_id: str, topic_id: str
) -> VerificationEligibility:
    """Without a retention card neither elevated mode is available."""
    card = await store.get_card(profile_id, topic_id)
    if card is None:
        card = create_initial_retention_card(profile_id, topic_id)
    rung = card.difficulty_rung
    return VerificationEligibility(
        topic_id=topic_id,
        evaluate=should_trigger_evaluate(card.ease_factor, card.repetitions),
        teach_back=should_trigger_teach_back(card.ease_factor, card.repetitions),
        difficulty_rung=rung,
        rung_description=get_evaluate_rung_description(rung),
    )


__all__ = [
    "RecallTestOutcome",
    "RetentionCardView",
    "StreakData",
    "SubjectRetention",
    "VerificationEligibility",
    "get_streak_data",
    "get_subject_retention",
    "get_topic_retention",
    "get_verification_eligibility",
    "length_proxy_quality",
    "process_recall_test",
    "to_view",
    "update_retention_from_session",
]
