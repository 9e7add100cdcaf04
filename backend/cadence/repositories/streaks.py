"""Database-backed streak repository."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.base import utcnow
from ..db.models import StreakModel
from ..streaks import StreakState


class StreakRepository:
    async def get(self, session: AsyncSession, profile_id: str) -> StreakState | None:
        model = await self._get_model(session, profile_id)
        if model is None:
            return None
        return self._to_domain(model)

    async def upsert(self, session: AsyncSession, profile_id: str, state: StreakState) -> StreakState:
        """Insert or update the profile's row in a single statement."""
        if not profile_id.strip():
            raise ValueError("Profile id cannot be empty when storing a streak.")
        values = {
            "current_streak": state.current_streak,
            "longest_streak": state.longest_streak,
            "last_activity_date": state.last_activity_date,
            "grace_period_start_date": state.grace_period_start_date,
        }
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            insert_stmt = postgresql.insert(StreakModel)
        elif dialect == "sqlite":
            insert_stmt = sqlite.insert(StreakModel)
        else:
            return await self._select_then_write(session, profile_id, values)

        now = utcnow()
        stmt = insert_stmt.values(profile_id=profile_id, **values, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[StreakModel.profile_id],
            set_={**{key: getattr(stmt.excluded, key) for key in values}, "updated_at": now},
        )
        await session.execute(stmt)
        return state.model_copy()

    async def _select_then_write(self, session: AsyncSession, profile_id: str, values: dict) -> StreakState:
        model = await self._get_model(session, profile_id)
        if model is None:
            model = StreakModel(profile_id=profile_id)
            session.add(model)
        for key, value in values.items():
            setattr(model, key, value)
        await session.flush()
        return self._to_domain(model)

    async def _get_model(self, session: AsyncSession, profile_id: str) -> StreakModel | None:
        result = await session.execute(select(StreakModel).where(StreakModel.profile_id == profile_id))
        return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: StreakModel) -> StreakState:
        return StreakState(
            current_streak=model.current_streak,
            longest_streak=model.longest_streak,
            last_activity_date=model.last_activity_date,
            grace_period_start_date=model.grace_period_start_date,
        )


streak_repository = StreakRepository()

__all__ = ["StreakRepository", "streak_repository"]
