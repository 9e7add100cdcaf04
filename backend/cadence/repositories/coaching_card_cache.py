"""Database-backed coaching card cache rows, one per profile."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..coaching_cards import CoachingCard, CoachingCardCacheEntry, dump_coaching_card, parse_coaching_card
from ..db.base import utcnow
from ..db.models import CoachingCardCacheModel

logger = logging.getLogger(__name__)


class CoachingCardCacheRepository:
    async def get(self, session: AsyncSession, profile_id: str) -> CoachingCardCacheEntry | None:
        result = await session.execute(
            select(CoachingCardCacheModel).where(CoachingCardCacheModel.profile_id == profile_id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        try:
            card = parse_coaching_card(model.card_data)
        except ValidationError as exc:
            # A row written by an older card schema is treated as a miss and recomputed.
            logger.warning("Discarding unreadable coaching card cache for %s: %s", profile_id, exc)
            return None
        expires_at = model.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return CoachingCardCacheEntry(card_data=card, expires_at=expires_at, context_hash=model.context_hash)

    async def upsert(
        self,
        session: AsyncSession,
        profile_id: str,
        card: CoachingCard,
        expires_at: datetime,
        context_hash: Optional[str] = None,
    ) -> None:
        """Insert or replace the profile's row in a single statement."""
        if not profile_id.strip():
            raise ValueError("Profile id cannot be empty when caching a coaching card.")
        values = {
            "profile_id": profile_id,
            "card_data": dump_coaching_card(card),
            "expires_at": expires_at,
            "context_hash": context_hash,
        }
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            insert_stmt = postgresql.insert(CoachingCardCacheModel)
        elif dialect == "sqlite":
            insert_stmt = sqlite.insert(CoachingCardCacheModel)
        else:
            await self._select_then_write(session, values)
            return

        now = utcnow()
        stmt = insert_stmt.values(**values, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CoachingCardCacheModel.profile_id],
            set_={
                "card_data": stmt.excluded.card_data,
                "expires_at": stmt.excluded.expires_at,
                "context_hash": stmt.excluded.context_hash,
                "updated_at": now,
            },
        )
        await session.execute(stmt)

    async def _select_then_write(self, session: AsyncSession, values: dict) -> None:
        result = await session.execute(
            select(CoachingCardCacheModel).where(CoachingCardCacheModel.profile_id == values["profile_id"])
        )
        model = result.scalar_one_or_none()
        if model is None:
            session.add(CoachingCardCacheModel(**values))
        else:
            model.card_data = values["card_data"]
            model.expires_at = values["expires_at"]
            model.context_hash = values["context_hash"]
        await session.flush()


coaching_card_cache_repository = CoachingCardCacheRepository()

__all__ = ["CoachingCardCacheRepository", "coaching_card_cache_repository"]
