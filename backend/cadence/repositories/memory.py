"""Process-local store used for offline runs and tests."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..coaching_cards import CoachingCard, CoachingCardCacheEntry
from ..db.base import utcnow
from ..retention import RetentionCard
from ..streaks import StreakState
from .base import AI_RESPONSE_EVENT, SessionEvent, SimilarMemory, cosine_similarity
from .sessions import COMPLETED_STATUS


@dataclass
class _SessionRecord:
    profile_id: str
    subject_id: str
    topic_id: Optional[str]
    session_type: str
    status: str = "active"
    ended_at: Optional[datetime] = None


@dataclass
class _EmbeddingRecord:
    session_id: str
    profile_id: str
    topic_id: Optional[str]
    content: str
    embedding: List[float] = field(default_factory=list)


class InMemoryStore:
    """Dictionary-backed counterpart of ``DatabaseStore``.

    Stored models are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._cards: Dict[Tuple[str, str], RetentionCard] = {}
        self._streaks: Dict[str, StreakState] = {}
        self._cache: Dict[str, CoachingCardCacheEntry] = {}
        self._sessions: Dict[str, _SessionRecord] = {}
        self._events: List[SessionEvent] = []
        self._embeddings: List[_EmbeddingRecord] = []

    async def get_card(self, profile_id: str, topic_id: str) -> Optional[RetentionCard]:
        card = self._cards.get((profile_id, topic_id))
        return card.model_copy(deep=True) if card is not None else None

    async def upsert_card(self, card: RetentionCard) -> RetentionCard:
        self._cards[(card.profile_id, card.topic_id)] = card.model_copy(deep=True)
        return card.model_copy(deep=True)

    async def list_cards(self, profile_id: str, topic_ids: Optional[Iterable[str]] = None) -> List[RetentionCard]:
        wanted = set(topic_ids) if topic_ids is not None else None
        return [
            card.model_copy(deep=True)
            for (owner, topic_id), card in self._cards.items()
            if owner == profile_id and (wanted is None or topic_id in wanted)
        ]

    async def get_streak(self, profile_id: str) -> Optional[StreakState]:
        state = self._streaks.get(profile_id)
        return state.model_copy() if state is not None else None

    async def upsert_streak(self, profile_id: str, state: StreakState) -> StreakState:
        self._streaks[profile_id] = state.model_copy()
        return state.model_copy()

    async def get_cache(self, profile_id: str) -> Optional[CoachingCardCacheEntry]:
        entry = self._cache.get(profile_id)
        return entry.model_copy(deep=True) if entry is not None else None

    async def upsert_cache(
        self,
        profile_id: str,
        card: CoachingCard,
        expires_at: datetime,
        context_hash: Optional[str] = None,
    ) -> None:
        self._cache[profile_id] = CoachingCardCacheEntry(
            card_data=card.model_copy(deep=True),
            expires_at=expires_at,
            context_hash=context_hash,
        )

    async def count_completed_sessions(self, profile_id: str) -> int:
        return sum(
            1
            for record in self._sessions.values()
            if record.profile_id == profile_id and record.status == COMPLETED_STATUS
        )

    async def list_recent_ai_responses(self, session_id: str, profile_id: str, limit: int) -> List[SessionEvent]:
        # Stable sort keeps insertion order for equal timestamps; reversed gives newest first.
        matching = [
            event
            for event in self._events
            if event.session_id == session_id
            and event.profile_id == profile_id
            and event.event_type == AI_RESPONSE_EVENT
        ]
        ordered = sorted(matching, key=lambda event: event.created_at)
        ordered.reverse()
        return [event.model_copy(deep=True) for event in ordered[:limit]]

    async def record_assessment(self, event_id: str, assessment: Dict[str, Any]) -> None:
        for index, event in enumerate(self._events):
            if event.id == event_id:
                self._events[index] = event.model_copy(update={"structured_assessment": dict(assessment)})
                return

    async def store_session_embedding(
        self,
        session_id: str,
        profile_id: str,
        topic_id: Optional[str],
        content: str,
        embedding: List[float],
    ) -> None:
        self._embeddings.append(
            _EmbeddingRecord(
                session_id=session_id,
                profile_id=profile_id,
                topic_id=topic_id,
                content=content,
                embedding=list(embedding),
            )
        )

    async def find_similar(self, profile_id: str, embedding: List[float], limit: int) -> List[SimilarMemory]:
        scored = [
            SimilarMemory(
                session_id=record.session_id,
                topic_id=record.topic_id,
                content=record.content,
                score=cosine_similarity(embedding, record.embedding),
            )
            for record in self._embeddings
            if record.profile_id == profile_id
        ]
        scored.sort(key=lambda memory: memory.score, reverse=True)
        return scored[:limit]

    async def create_session(
        self,
        *,
        profile_id: str,
        subject_id: str,
        topic_id: Optional[str] = None,
        session_type: str = "learning",
        session_id: Optional[str] = None,
    ) -> str:
        key = session_id or str(uuid.uuid4())
        self._sessions[key] = _SessionRecord(
            profile_id=profile_id,
            subject_id=subject_id,
            topic_id=topic_id,
            session_type=session_type,
        )
        return key

    async def complete_session(self, session_id: str, ended_at: Optional[datetime] = None) -> None:
        record = self._sessions.get(session_id)
        if record is not None:
            record.status = COMPLETED_STATUS
            record.ended_at = ended_at or utcnow()

    async def record_event(
        self,
        *,
        session_id: str,
        profile_id: str,
        event_type: str,
        content: str,
        subject_id: Optional[str] = None,
        topic_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> SessionEvent:
        event = SessionEvent(
            id=str(uuid.uuid4()),
            session_id=session_id,
            profile_id=profile_id,
            subject_id=subject_id,
            topic_id=topic_id,
            event_type=event_type,
            content=content,
            created_at=created_at or utcnow(),
        )
        self._events.append(event)
        return event.model_copy(deep=True)

    def clear(self) -> None:
        self._cards.clear()
        self._streaks.clear()
        self._cache.clear()
        self._sessions.clear()
        self._events.clear()
        self._embeddings.clear()


__all__ = ["InMemoryStore"]
