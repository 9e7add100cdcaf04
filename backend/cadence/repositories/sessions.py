"""Database-backed learning sessions, session events and session embeddings."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.base import utcnow
from ..db.models import LearningSessionModel, SessionEmbeddingModel, SessionEventModel
from .base import AI_RESPONSE_EVENT, SessionEvent, SimilarMemory, cosine_similarity

COMPLETED_STATUS = "completed"
MAX_SIMILARITY_CANDIDATES = 500


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionRepository:
    async def create_session(
        self,
        session: AsyncSession,
        *,
        profile_id: str,
        subject_id: str,
        topic_id: Optional[str] = None,
        session_type: str = "learning",
        session_id: Optional[str] = None,
    ) -> str:
        model = LearningSessionModel(
            profile_id=profile_id,
            subject_id=subject_id,
            topic_id=topic_id,
            session_type=session_type,
        )
        if session_id:
            model.id = session_id
        session.add(model)
        await session.flush()
        return model.id

    async def mark_completed(self, session: AsyncSession, session_id: str, *, ended_at: Optional[datetime] = None) -> None:
        await session.execute(
            update(LearningSessionModel)
            .where(LearningSessionModel.id == session_id)
            .values(status=COMPLETED_STATUS, ended_at=ended_at or utcnow())
        )

    async def count_completed(self, session: AsyncSession, profile_id: str) -> int:
        stmt = select(func.count(LearningSessionModel.id)).where(
            LearningSessionModel.profile_id == profile_id,
            LearningSessionModel.status == COMPLETED_STATUS,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def record_event(
        self,
        session: AsyncSession,
        *,
        session_id: str,
        profile_id: str,
        event_type: str,
        content: str,
        subject_id: Optional[str] = None,
        topic_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> SessionEvent:
        model = SessionEventModel(
            session_id=session_id,
            profile_id=profile_id,
            subject_id=subject_id,
            topic_id=topic_id,
            event_type=event_type,
            content=content,
            created_at=created_at or utcnow(),
        )
        session.add(model)
        await session.flush()
        return self._event_to_domain(model)

    async def list_recent_ai_responses(
        self, session: AsyncSession, session_id: str, profile_id: str, limit: int
    ) -> List[SessionEvent]:
        stmt = (
            select(SessionEventModel)
            .where(
                SessionEventModel.session_id == session_id,
                SessionEventModel.profile_id == profile_id,
                SessionEventModel.event_type == AI_RESPONSE_EVENT,
            )
            .order_by(SessionEventModel.created_at.desc(), SessionEventModel.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [self._event_to_domain(model) for model in result.scalars()]

    async def record_assessment(self, session: AsyncSession, event_id: str, assessment: Dict[str, Any]) -> None:
        await session.execute(
            update(SessionEventModel)
            .where(SessionEventModel.id == event_id)
            .values(structured_assessment=assessment)
        )

    async def store_embedding(
        self,
        session: AsyncSession,
        *,
        session_id: str,
        profile_id: str,
        topic_id: Optional[str],
        content: str,
        embedding: List[float],
    ) -> None:
        session.add(
            SessionEmbeddingModel(
                session_id=session_id,
                profile_id=profile_id,
                topic_id=topic_id,
                content=content,
                embedding=list(embedding),
            )
        )
        await session.flush()

    async def find_similar(
        self, session: AsyncSession, profile_id: str, embedding: List[float], limit: int
    ) -> List[SimilarMemory]:
        # Vectors are stored as JSON, so similarity is scored in process over the latest rows.
        stmt = (
            select(SessionEmbeddingModel)
            .where(SessionEmbeddingModel.profile_id == profile_id)
            .order_by(SessionEmbeddingModel.created_at.desc())
            .limit(MAX_SIMILARITY_CANDIDATES)
        )
        result = await session.execute(stmt)
        scored = [
            SimilarMemory(
                session_id=model.session_id,
                topic_id=model.topic_id,
                content=model.content,
                score=cosine_similarity(embedding, list(model.embedding or [])),
            )
            for model in result.scalars()
        ]
        scored.sort(key=lambda memory: memory.score, reverse=True)
        return scored[:limit]

    @staticmethod
    def _event_to_domain(model: SessionEventModel) -> SessionEvent:
        return SessionEvent(
            id=model.id,
            session_id=model.session_id,
            profile_id=model.profile_id,
            subject_id=model.subject_id,
            topic_id=model.topic_id,
            event_type=model.event_type,
            content=model.content or "",
            structured_assessment=model.structured_assessment,
            created_at=_aware(model.created_at),
        )


session_repository = SessionRepository()

__all__ = ["COMPLETED_STATUS", "SessionRepository", "session_repository"]
