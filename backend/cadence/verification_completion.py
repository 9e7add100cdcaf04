"""Post-processing for evaluate and teach-back sessions.

Both flows read the session's most recent AI responses, parse the structured
assessment the model emitted, map it to an SM-2 quality and run it through
recall processing. Evaluate sessions also move the difficulty rung. The parsed
assessment is stored on the event it came from for audit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel

from .assessment_result import ChallengeAssessment, TeachBackAssessment, VerificationMode
from .escalation import EvaluateFailureAction, advance_rung, handle_evaluate_failure, rung_after_failure
from .repositories.base import RetentionStore, SessionEvent, SessionStore
from .retention import RecallResult, RetentionCard, create_initial_retention_card, process_recall_result
from .scheduler import coerce_quality
from .telemetry import emit_event
from .verification import (
    map_evaluate_quality_to_sm2,
    map_teach_back_rubric_to_sm2,
    parse_evaluate_assessment,
    parse_teach_back_assessment,
)

logger = logging.getLogger(__name__)

DEFAULT_EVENT_LIMIT = 5


class VerificationOutcome(BaseModel):
    mode: VerificationMode
    event_id: str
    assessment: Union[ChallengeAssessment, TeachBackAssessment]
    sm2_quality: int
    recall: RecallResult
    consecutive_failures: int = 0
    escalation: Optional[EvaluateFailureAction] = None
    difficulty_rung_before: Optional[int] = None
    difficulty_rung_after: Optional[int] = None


def count_consecutive_failures(assessments: List[ChallengeAssessment]) -> int:
    """Failed challenges in a row, counting back from the newest assessment."""
    failures = 0
    for assessment in assessments:
        if assessment.challenge_passed:
            break
        failures += 1
    return failures


def _parsed_evaluate(events: List[SessionEvent]) -> List[Tuple[SessionEvent, ChallengeAssessment]]:
    parsed = []
    for event in events:
        assessment = parse_evaluate_assessment(event.content)
        if assessment is not None:
            parsed.append((event, assessment))
    return parsed


async def _load_card(store: RetentionStore, profile_id: str, topic_id: str) -> RetentionCard:
    card = await store.get_card(profile_id, topic_id)
    if card is None:
        logger.info("No retention card for %s/%s; starting from defaults.", profile_id, topic_id)
        return create_initial_retention_card(profile_id, topic_id)
    return card


async def process_evaluate_completion(
    retention_store: RetentionStore,
    session_store: SessionStore,
    profile_id: str,
    session_id: str,
    topic_id: str,
    *,
    now: Optional[datetime] = None,
    event_limit: int = DEFAULT_EVENT_LIMIT,
) -> Optional[VerificationOutcome]:
    """Apply the latest evaluate assessment of a session. ``None`` when none parses."""
    events = await session_store.list_recent_ai_responses(session_id, profile_id, event_limit)
    parsed = _parsed_evaluate(events)
    if not parsed:
        logger.info("No evaluate assessment found for session %s", session_id)
        return None

    event, assessment = parsed[0]
    card = await _load_card(retention_store, profile_id, topic_id)
    rung_before = card.difficulty_rung
    quality = coerce_quality(map_evaluate_quality_to_sm2(assessment.challenge_passed, assessment.quality))

    escalation: Optional[EvaluateFailureAction] = None
    failures = 0
    if assessment.challenge_passed:
        rung_after = advance_rung(rung_before)
    else:
        failures = count_consecutive_failures([item for _, item in parsed])
        escalation = handle_evaluate_failure(failures, rung_before)
        rung_after = rung_after_failure(escalation, rung_before)

    recall = process_recall_result(card, quality, now=now or datetime.now(timezone.utc))
    saved = await retention_store.upsert_card(
        recall.card.model_copy(update={"evaluate_difficulty_rung": rung_after})
    )
    recall = recall.model_copy(update={"card": saved})

    audit: Dict[str, Any] = {
        "type": VerificationMode.EVALUATE.value,
        **assessment.model_dump(by_alias=True),
        "sm2Quality": quality,
        "difficultyRungBefore": rung_before,
        "difficultyRungAfter": rung_after,
        "consecutiveFailures": failures,
        "escalation": escalation.action if escalation else None,
    }
    await session_store.record_assessment(event.id, audit)

    emit_event(
        "evaluate_completed",
        profile_id=profile_id,
        session_id=session_id,
        topic_id=topic_id,
        passed=assessment.challenge_passed,
        sm2_quality=quality,
        rung_before=rung_before,
        rung_after=rung_after,
        escalation=audit["escalation"],
    )
    return VerificationOutcome(
        mode=VerificationMode.EVALUATE,
        event_id=event.id,
        assessment=assessment,
        sm2_quality=quality,
        recall=recall,
        consecutive_failures=failures,
        escalation=escalation,
        difficulty_rung_before=rung_before,
        difficulty_rung_after=rung_after,
    )


async def process_teach_back_completion(
    retention_store: RetentionStore,
    session_store: SessionStore,
    profile_id: str,
    session_id: str,
    topic_id: str,
    *,
    now: Optional[datetime] = None,
    event_limit: int = DEFAULT_EVENT_LIMIT,
) -> Optional[VerificationOutcome]:
    """Apply the latest teach-back rubric of a session. ``None`` when none parses."""
    events = await session_store.list_recent_ai_responses(session_id, profile_id, event_limit)
    found: Optional[Tuple[SessionEvent, TeachBackAssessment]] = None
    for event in events:
        assessment = parse_teach_back_assessment(event.content)
        if assessment is not None:
            found = (event, assessment)
            break
    if found is None:
        logger.info("No teach-back assessment found for session %s", session_id)
        return None

    event, assessment = found
    quality = map_teach_back_rubric_to_sm2(assessment)
    card = await _load_card(retention_store, profile_id, topic_id)
    recall = process_recall_result(card, quality, now=now or datetime.now(timezone.utc))
    saved = await retention_store.upsert_card(recall.card)
    recall = recall.model_copy(update={"card": saved})

    await session_store.record_assessment(
        event.id,
        {
            "type": VerificationMode.TEACH_BACK.value,
            **assessment.model_dump(by_alias=True),
            "sm2Quality": quality,
        },
    )
    emit_event(
        "teach_back_completed",
        profile_id=profile_id,
        session_id=session_id,
        topic_id=topic_id,
        sm2_quality=quality,
        weakest_area=assessment.weakest_area,
    )
    return VerificationOutcome(
        mode=VerificationMode.TEACH_BACK,
        event_id=event.id,
        assessment=assessment,
        sm2_quality=quality,
        recall=recall,
    )


async def process_verification_completion(
    mode: Union[VerificationMode, str],
    retention_store: RetentionStore,
    session_store: SessionStore,
    profile_id: str,
    session_id: str,
    topic_id: str,
    *,
    now: Optional[datetime] = None,
    event_limit: int = DEFAULT_EVENT_LIMIT,
) -> Optional[VerificationOutcome]:
    try:
        selected = VerificationMode(mode)
    except ValueError:
        raise ValueError(f"Unknown verification mode: {mode!r}") from None
    handler = (
        process_evaluate_completion if selected is VerificationMode.EVALUATE else process_teach_back_completion
    )
    return await handler(
        retention_store,
        session_store,
        profile_id,
        session_id,
        topic_id,
        now=now,
        event_limit=event_limit,
    )


__all__ = [
    "VerificationOutcome",
    "count_consecutive_failures",
    "process_evaluate_completion",
    "process_teach_back_completion",
    "process_verification_completion",
]
