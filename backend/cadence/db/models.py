"""ORM models backing retention, streak and coaching-card persistence."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin, utcnow

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


class RetentionCardModel(TimestampMixin, Base):
    __tablename__ = "retention_cards"
    __table_args__ = (UniqueConstraint("profile_id", "topic_id", name="uq_retention_cards_profile_topic"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    profile_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ease_factor: Mapped[float] = mapped_column(Numeric(4, 2, asdecimal=False), default=2.5, nullable=False)
    interval_days: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    repetitions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    next_review_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    consecutive_successes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    xp_status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    evaluate_difficulty_rung: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class StreakModel(TimestampMixin, Base):
    __tablename__ = "streaks"
    __table_args__ = (UniqueConstraint("profile_id", name="uq_streaks_profile"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    profile_id: Mapped[str] = mapped_column(String(64), nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    grace_period_start_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)


class CoachingCardCacheModel(TimestampMixin, Base):
    __tablename__ = "coaching_card_cache"
    __table_args__ = (UniqueConstraint("profile_id", name="uq_coaching_card_cache_profile"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    profile_id: Mapped[str] = mapped_column(String(64), nullable=False)
    card_data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    context_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LearningSessionModel(TimestampMixin, Base):
    __tablename__ = "learning_sessions"
    __table_args__ = (Index("ix_learning_sessions_profile_status", "profile_id", "status"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    profile_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    topic_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    session_type: Mapped[str] = mapped_column(String(16), default="learning", nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)
    exchange_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class SessionEventModel(Base):
    __tablename__ = "session_events"
    __table_args__ = (Index("ix_session_events_session_created", "session_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    profile_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    subject_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    topic_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    structured_assessment: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class SessionEmbeddingModel(Base):
    __tablename__ = "session_embeddings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    profile_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(JSONType, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


__all__ = [
    "CoachingCardCacheModel",
    "LearningSessionModel",
    "RetentionCardModel",
    "SessionEmbeddingModel",
    "SessionEventModel",
    "StreakModel",
]
