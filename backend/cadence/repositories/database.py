"""Store facade that runs each repository call in its own session scope."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..coaching_cards import CoachingCard, CoachingCardCacheEntry
from ..db.session import session_scope
from ..retention import RetentionCard
from ..streaks import StreakState
from .base import SessionEvent, SimilarMemory
from .coaching_card_cache import CoachingCardCacheRepository
from .retention_cards import RetentionCardRepository
from .sessions import SessionRepository
from .streaks import StreakRepository

ScopeFactory = Callable[..., AbstractAsyncContextManager[AsyncSession]]


class DatabaseStore:
    """Implements every engine storage contract on top of SQLAlchemy."""

    def __init__(self, scope: ScopeFactory = session_scope) -> None:
        self._scope = scope
        self._cards = RetentionCardRepository()
        self._streaks = StreakRepository()
        self._cache = CoachingCardCacheRepository()
        self._sessions = SessionRepository()

    async def get_card(self, profile_id: str, topic_id: str) -> Optional[RetentionCard]:
        async with self._scope(commit=False) as session:
            return await self._cards.get(session, profile_id, topic_id)

    async def upsert_card(self, card: RetentionCard) -> RetentionCard:
        async with self._scope() as session:
            return await self._cards.upsert(session, card)

    async def list_cards(self, profile_id: str, topic_ids: Optional[Iterable[str]] = None) -> List[RetentionCard]:
        async with self._scope(commit=False) as session:
            return await self._cards.list_for_profile(session, profile_id, topic_ids)

    async def get_streak(self, profile_id: str) -> Optional[StreakState]:
        async with self._scope(commit=False) as session:
            return await self._streaks.get(session, profile_id)

    async def upsert_streak(self, profile_id: str, state: StreakState) -> StreakState:
        async with self._scope() as session:
            return await self._streaks.upsert(session, profile_id, state)

    async def get_cache(self, profile_id: str) -> Optional[CoachingCardCacheEntry]:
        async with self._scope(commit=False) as session:
            return await self._cache.get(session, profile_id)

    async def upsert_cache(
        self,
        profile_id: str,
        card: CoachingCard,
        expires_at: datetime,
        context_hash: Optional[str] = None,
    ) -> None:
        async with self._scope() as session:
            await self._cache.upsert(session, profile_id, card, expires_at, context_hash)

    async def count_completed_sessions(self, profile_id: str) -> int:
        async with self._scope(commit=False) as session:
            return await self._sessions.count_completed(session, profile_id)

    async def list_recent_ai_responses(self, session_id: str, profile_id: str, limit: int) -> List[SessionEvent]:
        async with self._scope(commit=False) as session:
            return await self._sessions.list_recent_ai_responses(session, session_id, profile_id, limit)

    async def record_assessment(self, event_id: str, assessment: Dict[str, Any]) -> None:
        async with self._scope() as session:
            await self._sessions.record_assessment(session, event_id, assessment)

    async def store_session_embedding(
        self,
        session_id: str,
        profile_id: str,
        topic_id: Optional[str],
        content: str,
        embedding: List[float],
    ) -> None:
        async with self._scope() as session:
            await self._sessions.store_embedding(
                session,
                session_id=session_id,
                profile_id=profile_id,
                topic_id=topic_id,
                content=content,
                embedding=embedding,
            )

    async def find_similar(self, profile_id: str, embedding: List[float], limit: int) -> List[SimilarMemory]:
        async with self._scope(commit=False) as session:
            return await self._sessions.find_similar(session, profile_id, embedding, limit)

    async def create_session(self, **fields: Any) -> str:
        async with self._scope() as session:
            return await self._sessions.create_session(session, **fields)

    async def complete_session(self, session_id: str, ended_at: Optional[datetime] = None) -> None:
        async with self._scope() as session:
            await self._sessions.mark_completed(session, session_id, ended_at=ended_at)

    async def record_event(self, **fields: Any) -> SessionEvent:
        async with self._scope() as session:
            return await self._sessions.record_event(session, **fields)


__all__ = ["DatabaseStore"]
