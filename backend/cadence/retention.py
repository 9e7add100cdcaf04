"""Retention card state and recall processing on top of the SM-2 scheduler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .scheduler import DEFAULT_EASE_FACTOR, MIN_EASE_FACTOR, SM2Card, SM2Result, coerce_quality, sm2

RETEST_COOLDOWN = timedelta(hours=24)
REDIRECT_FAILURE_THRESHOLD = 3
MIN_DIFFICULTY_RUNG = 1
MAX_DIFFICULTY_RUNG = 4


class XpStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    DECAYED = "decayed"


RetentionStatus = Literal["strong", "fading", "weak", "forgotten"]
XpChange = Literal["verified", "decayed", "none"]
FailureAction = Literal["feedback_only", "redirect_to_learning_book"]


class RetentionCard(BaseModel):
    """Per profile and topic spaced-repetition state."""

    profile_id: str
    topic_id: str
    ease_factor: float = Field(default=DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    interval_days: int = Field(default=1, ge=1)
    repetitions: int = Field(default=0, ge=0)
    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    failure_count: int = Field(default=0, ge=0)
    consecutive_successes: int = Field(default=0, ge=0)
    xp_status: XpStatus = XpStatus.PENDING
    evaluate_difficulty_rung: Optional[int] = Field(default=None, ge=MIN_DIFFICULTY_RUNG, le=MAX_DIFFICULTY_RUNG)

    @property
    def difficulty_rung(self) -> int:
        return self.evaluate_difficulty_rung or MIN_DIFFICULTY_RUNG

    def to_sm2_card(self) -> SM2Card:
        return SM2Card(
            ease_factor=self.ease_factor,
            interval=self.interval_days,
            repetitions=self.repetitions,
            last_reviewed_at=self.last_reviewed_at,
            next_review_at=self.next_review_at,
        )

    def with_schedule(self, result: SM2Result) -> "RetentionCard":
        scheduled = result.card
        return self.model_copy(
            update={
                "ease_factor": scheduled.ease_factor,
                "interval_days": scheduled.interval,
                "repetitions": scheduled.repetitions,
                "last_reviewed_at": scheduled.last_reviewed_at,
                "next_review_at": scheduled.next_review_at,
            }
        )


class RecallResult(BaseModel):
    passed: bool
    card: RetentionCard
    xp_change: XpChange
    failure_action: Optional[FailureAction] = None


def create_initial_retention_card(profile_id: str, topic_id: str) -> RetentionCard:
    return RetentionCard(profile_id=profile_id, topic_id=topic_id)


def process_recall_result(card: RetentionCard, quality: object, *, now: Optional[datetime] = None) -> RecallResult:
    """Run a recall outcome through SM-2 and update XP and failure bookkeeping.

    A success only verifies XP on a delayed recall, i.e. when the learner had
    already succeeded at least once before. Failures decay XP and, from the
    third failure on, redirect the learner back to the learning book.
    """
    reviewed_at = now or datetime.now(timezone.utc)
    result = sm2(coerce_quality(quality), card.to_sm2_card(), now=reviewed_at)
    scheduled = card.with_schedule(result)

    if result.was_successful:
        delayed_recall = card.consecutive_successes > 0
        updated = scheduled.model_copy(
            update={
                "consecutive_successes": card.consecutive_successes + 1,
                "xp_status": XpStatus.VERIFIED if delayed_recall else card.xp_status,
            }
        )
        return RecallResult(
            passed=True,
            card=updated,
            xp_change="verified" if delayed_recall else "none",
        )

    failures = card.failure_count + 1
    xp_status = card.xp_status
    if xp_status in (XpStatus.PENDING, XpStatus.VERIFIED):
        xp_status = XpStatus.DECAYED
    updated = scheduled.model_copy(
        update={
            "failure_count": failures,
            "consecutive_successes": 0,
            "xp_status": xp_status,
        }
    )
    return RecallResult(
        passed=False,
        card=updated,
        xp_change="decayed",
        failure_action="redirect_to_learning_book" if failures >= REDIRECT_FAILURE_THRESHOLD else "feedback_only",
    )


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_review_due(card: RetentionCard, now: Optional[datetime] = None) -> bool:
    if card.next_review_at is None:
        return False
    current = _aware(now or datetime.now(timezone.utc))
    return _aware(card.next_review_at) <= current


def can_retest_topic(last_test_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Enforce the 24 hour anti-cramming cooldown between recall tests."""
    if last_test_at is None:
        return True
    current = _aware(now or datetime.now(timezone.utc))
    return current - _aware(last_test_at) >= RETEST_COOLDOWN


def get_retention_status(card: RetentionCard, now: Optional[datetime] = None) -> RetentionStatus:
    if card.last_reviewed_at is None:
        return "forgotten"
    current = _aware(now or datetime.now(timezone.utc))
    elapsed_days = (current - _aware(card.last_reviewed_at)).total_seconds() / 86400
    ratio = elapsed_days / max(card.interval_days, 1)
    if ratio <= 1:
        return "strong"
    if ratio <= 2:
        return "fading"
    if ratio <= 4:
        return "weak"
    return "forgotten"


__all__ = [
    "FailureAction",
    "MAX_DIFFICULTY_RUNG",
    "MIN_DIFFICULTY_RUNG",
    "RETEST_COOLDOWN",
    "RecallResult",
    "RetentionCard",
    "RetentionStatus",
    "XpChange",
    "XpStatus",
    "can_retest_topic",
    "create_initial_retention_card",
    "get_retention_status",
    "is_review_due",
    "process_recall_result",
]
