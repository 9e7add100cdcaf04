"""REST endpoints exposing retention, streak and coaching-card state per learner profile."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .assessment_result import ChallengeAssessment, VerificationMode
from .coaching_cards import CoachingCardResult
from .engine import CoachingEngine, get_coaching_engine
from .llm import ChatMessage, grade_with_model
from .memory import MemoryRetrievalResult, retrieve_relevant_memory
from .retention_data import (
    RecallTestOutcome,
    RetentionCardView,
    StreakData,
    SubjectRetention,
    VerificationEligibility,
    get_streak_data,
    get_subject_retention,
    get_topic_retention,
    get_verification_eligibility,
    process_recall_test,
)
from .scheduler import coerce_quality
from .subject_urgency import SubjectUrgencyInput, calculate_urgency_score, rank_subjects_by_urgency
from .verification import map_evaluate_quality_to_sm2

router = APIRouter(prefix="/api/profiles", tags=["coaching"])

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RankedSubject(_CamelModel):
    subject_id: str
    urgency_score: float
    overdue_recall_count: int
    weak_forgotten_count: int
    days_since_last_session: float
    total_topics: int


class RecallTestRequest(_CamelModel):
    topic_id: str
    answer: str = Field(..., min_length=1)
    quality: Optional[int] = Field(default=None, ge=0, le=5)
    messages: List[ChatMessage] = Field(default_factory=list)


class MemorySearchRequest(_CamelModel):
    message: str = Field(..., min_length=1)
    limit: int = Field(default=3, ge=1, le=10)


@router.get(
    "/{profile_id}/coaching-card",
    response_model=CoachingCardResult,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def get_coaching_card(
    profile_id: str,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> CoachingCardResult:
    return await engine.coaching.get_coaching_card_for_profile(profile_id)


@router.get(
    "/{profile_id}/streak",
    response_model=StreakData,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def get_streak(
    profile_id: str,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> StreakData:
    return await get_streak_data(engine.store, profile_id)


@router.get(
    "/{profile_id}/topics/{topic_id}/retention",
    response_model=RetentionCardView,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def get_retention(
    profile_id: str,
    topic_id: str,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> RetentionCardView:
    view = await get_topic_retention(engine.store, profile_id, topic_id)
    if view is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No retention card for topic '{topic_id}'.",
        )
    return view


@router.get(
    "/{profile_id}/retention",
    response_model=SubjectRetention,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def get_retention_for_topics(
    profile_id: str,
    topic_ids: List[str] = Query(
        default=[],
        alias="topicId",
        description="Topic ids to include; repeat the parameter for several topics.",
    ),
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> SubjectRetention:
    return await get_subject_retention(engine.store, profile_id, topic_ids)


@router.get(
    "/{profile_id}/topics/{topic_id}/verification",
    response_model=VerificationEligibility,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def get_verification(
    profile_id: str,
    topic_id: str,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> VerificationEligibility:
    return await get_verification_eligibility(engine.store, profile_id, topic_id)


@router.post(
    "/{profile_id}/subjects/urgency",
    response_model=List[RankedSubject],
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def rank_subjects(profile_id: str, subjects: List[SubjectUrgencyInput]) -> List[RankedSubject]:
    ranked = rank_subjects_by_urgency(subjects)
    logger.debug("Ranked %d subjects for %s", len(ranked), profile_id)
    return [
        RankedSubject(
            subject_id=subject.subject_id,
            urgency_score=calculate_urgency_score(subject),
            overdue_recall_count=subject.overdue_recall_count,
            weak_forgotten_count=subject.weak_forgotten_count,
            days_since_last_session=subject.days_since_last_session,
            total_topics=subject.total_topics,
        )
        for subject in ranked
    ]


@router.post(
    "/{profile_id}/recall-test",
    response_model=RecallTestOutcome,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def recall_test(
    profile_id: str,
    payload: RecallTestRequest,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> RecallTestOutcome:
    quality = payload.quality
    if quality is None and payload.messages:
        messages = [*payload.messages, ChatMessage(role="user", content=payload.answer)]
        assessment = await grade_with_model(engine.chat_model, VerificationMode.EVALUATE, messages)
        if isinstance(assessment, ChallengeAssessment):
            quality = coerce_quality(map_evaluate_quality_to_sm2(assessment.challenge_passed, assessment.quality))
    return await process_recall_test(
        engine.store,
        profile_id,
        payload.topic_id,
        payload.answer,
        quality=quality,
    )


@router.post(
    "/{profile_id}/memory/search",
    response_model=MemoryRetrievalResult,
    status_code=status.HTTP_200_OK,
)
async def search_memory(
    profile_id: str,
    payload: MemorySearchRequest,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> MemoryRetrievalResult:
    return await retrieve_relevant_memory(
        engine.store,
        engine.embedder,
        profile_id,
        payload.message,
        limit=payload.limit,
    )


__all__ = ["router"]
