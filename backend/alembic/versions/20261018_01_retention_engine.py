"""Retention, streak, coaching-card cache and session persistence."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261018_01_retention_engine"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "retention_cards",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("profile_id", sa.String(length=64), nullable=False),
        sa.Column("topic_id", sa.String(length=64), nullable=False),
        sa.Column("ease_factor", sa.Numeric(4, 2), nullable=False, server_default="2.5"),
        sa.Column("interval_days", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("repetitions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_review_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("consecutive_successes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("evaluate_difficulty_rung", sa.Integer(), nullable=True),
        sa.UniqueConstraint("profile_id", "topic_id", name="uq_retention_cards_profile_topic"),
    )
    op.create_index("ix_retention_cards_profile_id", "retention_cards", ["profile_id"])

    op.create_table(
        "streaks",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("profile_id", sa.String(length=64), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_date", sa.String(length=10), nullable=True),
        sa.Column("grace_period_start_date", sa.String(length=10), nullable=True),
        sa.UniqueConstraint("profile_id", name="uq_streaks_profile"),
    )

    op.create_table(
        "coaching_card_cache",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("profile_id", sa.String(length=64), nullable=False),
        sa.Column("card_data", sa.JSON(), nullable=False),
        sa.Column("context_hash", sa.String(length=64), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("profile_id", name="uq_coaching_card_cache_profile"),
    )

    op.create_table(
        "learning_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("profile_id", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.String(length=64), nullable=False),
        sa.Column("topic_id", sa.String(length=64), nullable=True),
        sa.Column("session_type", sa.String(length=16), nullable=False, server_default="learning"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("exchange_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_learning_sessions_profile_status", "learning_sessions", ["profile_id", "status"])

    op.create_table(
        "session_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("profile_id", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.String(length=64), nullable=True),
        sa.Column("topic_id", sa.String(length=64), nullable=True),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("structured_assessment", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_session_events_session_created", "session_events", ["session_id", "created_at"])
    op.create_index("ix_session_events_profile_id", "session_events", ["profile_id"])

    op.create_table(
        "session_embeddings",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("profile_id", sa.String(length=64), nullable=False),
        sa.Column("topic_id", sa.String(length=64), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_session_embeddings_session_id", "session_embeddings", ["session_id"])
    op.create_index("ix_session_embeddings_profile_id", "session_embeddings", ["profile_id"])


def downgrade() -> None:
    op.drop_index("ix_session_embeddings_profile_id", table_name="session_embeddings")
    op.drop_index("ix_session_embeddings_session_id", table_name="session_embeddings")
    op.drop_table("session_embeddings")
    op.drop_index("ix_session_events_profile_id", table_name="session_events")
    op.drop_index("ix_session_events_session_created", table_name="session_events")
    op.drop_table("session_events")
    op.drop_index("ix_learning_sessions_profile_status", table_name="learning_sessions")
    op.drop_table("learning_sessions")
    op.drop_table("coaching_card_cache")
    op.drop_table("streaks")
    op.drop_index("ix_retention_cards_profile_id", table_name="retention_cards")
    op.drop_table("retention_cards")
