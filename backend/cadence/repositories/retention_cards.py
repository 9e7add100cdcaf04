"""Database-backed retention card repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import RetentionCardModel
from ..retention import RetentionCard, XpStatus


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _require_ids(profile_id: str, topic_id: str) -> None:
    if not profile_id.strip() or not topic_id.strip():
        raise ValueError("Retention cards require both a profile id and a topic id.")


class RetentionCardRepository:
    """Persistence helper for per-topic SM-2 state, scoped by profile."""

    async def get(self, session: AsyncSession, profile_id: str, topic_id: str) -> RetentionCard | None:
        model = await self._get_model(session, profile_id, topic_id)
        if model is None:
            return None
        return self._to_domain(model)

    async def upsert(self, session: AsyncSession, card: RetentionCard) -> RetentionCard:
        _require_ids(card.profile_id, card.topic_id)
        model = await self._get_model(session, card.profile_id, card.topic_id)
        if model is None:
            model = RetentionCardModel(profile_id=card.profile_id, topic_id=card.topic_id)
            session.add(model)

        model.ease_factor = card.ease_factor
        model.interval_days = card.interval_days
        model.repetitions = card.repetitions
        model.last_reviewed_at = card.last_reviewed_at
        model.next_review_at = card.next_review_at
        model.failure_count = card.failure_count
        model.consecutive_successes = card.consecutive_successes
        model.xp_status = card.xp_status.value
        model.evaluate_difficulty_rung = card.evaluate_difficulty_rung
        await session.flush()
        return self._to_domain(model)

    async def list_for_profile(
        self,
        session: AsyncSession,
        profile_id: str,
        topic_ids: Optional[Iterable[str]] = None,
    ) -> List[RetentionCard]:
        stmt = select(RetentionCardModel).where(RetentionCardModel.profile_id == profile_id)
        if topic_ids is not None:
            wanted = list(topic_ids)
            if not wanted:
                return []
            stmt = stmt.where(RetentionCardModel.topic_id.in_(wanted))
        stmt = stmt.order_by(RetentionCardModel.created_at, RetentionCardModel.id)
        result = await session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars()]

    async def _get_model(self, session: AsyncSession, profile_id: str, topic_id: str) -> RetentionCardModel | None:
        stmt = select(RetentionCardModel).where(
            RetentionCardModel.profile_id == profile_id,
            RetentionCardModel.topic_id == topic_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: RetentionCardModel) -> RetentionCard:
        return RetentionCard(
            profile_id=model.profile_id,
            topic_id=model.topic_id,
            ease_factor=float(model.ease_factor),
            interval_days=model.interval_days,
            repetitions=model.repetitions,
            last_reviewed_at=_aware(model.last_reviewed_at),
            next_review_at=_aware(model.next_review_at),
            failure_count=model.failure_count,
            consecutive_successes=model.consecutive_successes,
            xp_status=XpStatus(model.xp_status),
            evaluate_difficulty_rung=model.evaluate_difficulty_rung,
        )


retention_card_repository = RetentionCardRepository()

__all__ = ["RetentionCardRepository", "retention_card_repository"]
