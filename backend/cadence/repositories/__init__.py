"""Persistence backends for the coaching engine."""

from __future__ import annotations

from typing import Union

from ..config import Settings
from .base import (
    CoachingCardCacheStore,
    EmbeddingStore,
    RetentionStore,
    SessionEvent,
    SessionStore,
    SimilarMemory,
    StreakStore,
)
from .database import DatabaseStore
from .memory import InMemoryStore

EngineStore = Union[DatabaseStore, InMemoryStore]


def build_store(settings: Settings) -> EngineStore:
    if settings.cadence_persistence_mode == "memory":
        return InMemoryStore()
    return DatabaseStore()


__all__ = [
    "CoachingCardCacheStore",
    "DatabaseStore",
    "EmbeddingStore",
    "EngineStore",
    "InMemoryStore",
    "RetentionStore",
    "SessionEvent",
    "SessionStore",
    "SimilarMemory",
    "StreakStore",
    "build_store",
]
