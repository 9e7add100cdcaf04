"""Rank subjects by how urgently they need the learner's attention."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .retention import RetentionCard, get_retention_status, is_review_due

OVERDUE_WEIGHT = 3
WEAK_FORGOTTEN_WEIGHT = 2
IDLE_DAY_WEIGHT = 0.5


class SubjectUrgencyInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    subject_id: str = Field(alias="subjectId")
    overdue_recall_count: int = Field(default=0, ge=0, alias="overdueRecallCount")
    weak_forgotten_count: int = Field(default=0, ge=0, alias="weakForgottenCount")
    days_since_last_session: float = Field(default=0, ge=0, alias="daysSinceLastSession")
    total_topics: int = Field(default=0, ge=0, alias="totalTopics")


def calculate_urgency_score(subject: SubjectUrgencyInput) -> float:
    return (
        subject.overdue_recall_count * OVERDUE_WEIGHT
        + subject.weak_forgotten_count * WEAK_FORGOTTEN_WEIGHT
        + subject.days_since_last_session * IDLE_DAY_WEIGHT
    )


def rank_subjects_by_urgency(subjects: Sequence[SubjectUrgencyInput]) -> List[SubjectUrgencyInput]:
    """Most urgent first; ties go to the subject with more topics at stake.

    Returns a new list and leaves ``subjects`` untouched.
    """
    return sorted(
        subjects,
        key=lambda subject: (-calculate_urgency_score(subject), -subject.total_topics),
    )


def build_subject_urgency_input(
    subject_id: str,
    cards: Iterable[RetentionCard],
    *,
    total_topics: Optional[int] = None,
    last_session_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> SubjectUrgencyInput:
    """Derive urgency signals for a subject from its topics' retention cards."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    subject_cards = list(cards)
    overdue = sum(1 for card in subject_cards if is_review_due(card, current))
    weak = sum(1 for card in subject_cards if get_retention_status(card, current) in ("weak", "forgotten"))

    idle_days = 0.0
    if last_session_at is not None:
        if last_session_at.tzinfo is None:
            last_session_at = last_session_at.replace(tzinfo=timezone.utc)
        idle_days = max(0.0, (current - last_session_at).total_seconds() / 86400)

    return SubjectUrgencyInput(
        subject_id=subject_id,
        overdue_recall_count=overdue,
        weak_forgotten_count=weak,
        days_since_last_session=int(idle_days),
        total_topics=total_topics if total_topics is not None else len(subject_cards),
    )


__all__ = [
    "SubjectUrgencyInput",
    "build_subject_urgency_input",
    "calculate_urgency_score",
    "rank_subjects_by_urgency",
]
