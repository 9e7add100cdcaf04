"""REST endpoints for the learning-session lifecycle."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .engine import CoachingEngine, get_coaching_engine
from .repositories.base import AI_RESPONSE_EVENT, SessionEvent
from .session_completion import SessionCompletedEvent, SessionCompletionResult, SessionType

router = APIRouter(prefix="/api/sessions", tags=["session"])

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionStartRequest(_CamelModel):
    profile_id: str = Field(..., min_length=1)
    subject_id: str = Field(..., min_length=1)
    topic_id: Optional[str] = None
    session_type: SessionType = "learning"
    session_id: Optional[str] = None


class SessionStartResponse(_CamelModel):
    session_id: str


class SessionEventRequest(_CamelModel):
    profile_id: str = Field(..., min_length=1)
    content: str
    event_type: str = AI_RESPONSE_EVENT
    subject_id: Optional[str] = None
    topic_id: Optional[str] = None
    created_at: Optional[datetime] = None


@router.post(
    "",
    response_model=SessionStartResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def start_session(
    payload: SessionStartRequest,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> SessionStartResponse:
    session_id = await engine.store.create_session(
        profile_id=payload.profile_id,
        subject_id=payload.subject_id,
        topic_id=payload.topic_id,
        session_type=payload.session_type,
        session_id=payload.session_id,
    )
    logger.info("Started %s session %s for %s", payload.session_type, session_id, payload.profile_id)
    return SessionStartResponse(session_id=session_id)


@router.post(
    "/{session_id}/events",
    response_model=SessionEvent,
    status_code=status.HTTP_201_CREATED,
)
async def record_session_event(
    session_id: str,
    payload: SessionEventRequest,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> SessionEvent:
    if not payload.content.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Event content must not be empty.",
        )
    return await engine.store.record_event(
        session_id=session_id,
        profile_id=payload.profile_id,
        event_type=payload.event_type,
        content=payload.content,
        subject_id=payload.subject_id,
        topic_id=payload.topic_id,
        created_at=payload.created_at,
    )


@router.post(
    "/completed",
    response_model=SessionCompletionResult,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def session_completed(
    payload: SessionCompletedEvent,
    engine: CoachingEngine = Depends(get_coaching_engine),
) -> SessionCompletionResult:
    try:
        return await engine.complete_session(payload)
    except ValidationError:
        # Internal model errors surface as 500s.
        raise
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


__all__ = ["router"]
