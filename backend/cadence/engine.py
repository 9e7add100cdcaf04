"""Application-scoped container wiring stores and collaborators together.

One ``CoachingEngine`` is built at startup and kept on ``app.state``; routes
reach it through the ``get_coaching_engine`` dependency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, Request, status

from .cache.coaching_card_cache import CoachingCardService
from .config import Settings
from .llm import ChatModel, build_chat_model
from .memory import EmbeddingClient, build_embedding_client
from .repositories import EngineStore, build_store
from .session_completion import SessionCompletedEvent, SessionCompletionResult, handle_session_completed

logger = logging.getLogger(__name__)


@dataclass
class CoachingEngine:
    settings: Settings
    store: EngineStore
    coaching: CoachingCardService
    chat_model: Optional[ChatModel] = None
    embedder: Optional[EmbeddingClient] = None

    async def complete_session(
        self, event: SessionCompletedEvent, now: Optional[datetime] = None
    ) -> SessionCompletionResult:
        return await handle_session_completed(
            event,
            retention_store=self.store,
            streak_store=self.store,
            session_store=self.store,
            embedding_store=self.store,
            coaching=self.coaching,
            embedder=self.embedder,
            default_quality=self.settings.default_session_quality,
            event_limit=self.settings.assessment_event_limit,
            now=now,
        )


def build_coaching_engine(
    settings: Settings,
    *,
    store: Optional[EngineStore] = None,
    chat_model: Optional[ChatModel] = None,
    embedder: Optional[EmbeddingClient] = None,
) -> CoachingEngine:
    selected = store if store is not None else build_store(settings)
    coaching = CoachingCardService(
        retention_store=selected,
        streak_store=selected,
        cache_store=selected,
        session_store=selected,
        ttl=timedelta(hours=settings.coaching_card_ttl_hours),
        cold_start_threshold=settings.cold_start_session_threshold,
    )
    logger.info(
        "Coaching engine ready (store=%s, model_grading=%s, embeddings=%s)",
        type(selected).__name__,
        chat_model is not None or bool(settings.openai_api_key),
        embedder is not None or settings.cadence_embeddings_enabled,
    )
    return CoachingEngine(
        settings=settings,
        store=selected,
        coaching=coaching,
        chat_model=chat_model if chat_model is not None else build_chat_model(settings),
        embedder=embedder if embedder is not None else build_embedding_client(settings),
    )


def get_coaching_engine(request: Request) -> CoachingEngine:
    engine = getattr(request.app.state, "coaching_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Coaching engine is not initialised.",
        )
    return engine


__all__ = ["CoachingEngine", "build_coaching_engine", "get_coaching_engine"]
