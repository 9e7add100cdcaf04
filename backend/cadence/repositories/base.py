"""Storage contracts the coaching engine depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from pydantic import BaseModel, Field

from ..coaching_cards import CoachingCard, CoachingCardCacheEntry
from ..retention import RetentionCard
from ..streaks import StreakState

AI_RESPONSE_EVENT = "ai_response"


class SessionEvent(BaseModel):
    id: str
    session_id: str
    profile_id: str
    subject_id: Optional[str] = None
    topic_id: Optional[str] = None
    event_type: str
    content: str = ""
    structured_assessment: Optional[Dict[str, Any]] = None
    created_at: datetime


class SimilarMemory(BaseModel):
    session_id: str
    topic_id: Optional[str] = None
    content: str
    score: float = Field(ge=-1.0, le=1.0)


class RetentionStore(Protocol):
    async def get_card(self, profile_id: str, topic_id: str) -> Optional[RetentionCard]:
        ...

    async def upsert_card(self, card: RetentionCard) -> RetentionCard:
        ...

    async def list_cards(
        self, profile_id: str, topic_ids: Optional[Iterable[str]] = None
    ) -> List[RetentionCard]:
        ...


class StreakStore(Protocol):
    async def get_streak(self, profile_id: str) -> Optional[StreakState]:
        ...

    async def upsert_streak(self, profile_id: str, state: StreakState) -> StreakState:
        ...


class CoachingCardCacheStore(Protocol):
    async def get_cache(self, profile_id: str) -> Optional[CoachingCardCacheEntry]:
        ...

    async def upsert_cache(
        self,
        profile_id: str,
        card: CoachingCard,
        expires_at: datetime,
        context_hash: Optional[str] = None,
    ) -> None:
        ...


class SessionStore(Protocol):
    async def count_completed_sessions(self, profile_id: str) -> int:
        ...

    async def list_recent_ai_responses(self, session_id: str, profile_id: str, limit: int) -> List[SessionEvent]:
        """Most recent ``ai_response`` events for a session, newest first."""
        ...

    async def record_assessment(self, event_id: str, assessment: Dict[str, Any]) -> None:
        ...

    async def complete_session(self, session_id: str, ended_at: Optional[datetime] = None) -> None:
        ...


class EmbeddingStore(Protocol):
    async def store_session_embedding(
        self,
        session_id: str,
        profile_id: str,
        topic_id: Optional[str],
        content: str,
        embedding: List[float],
    ) -> None:
        ...

    async def find_similar(self, profile_id: str, embedding: List[float], limit: int) -> List[SimilarMemory]:
        ...


def cosine_similarity(left: List[float], right: List[float]) -> float:
    if not left or not right or len(left) != len(right):
        return 0.0
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = sum(a * a for a in left) ** 0.5
    right_norm = sum(b * b for b in right) ** 0.5
    if left_norm == 0 or right_norm == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / (left_norm * right_norm)))


__all__ = [
    "AI_RESPONSE_EVENT",
    "CoachingCardCacheStore",
    "EmbeddingStore",
    "RetentionStore",
    "SessionEvent",
    "SessionStore",
    "SimilarMemory",
    "StreakStore",
    "cosine_similarity",
]
