from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from cadence.cache import CoachingCardService
from cadence.repositories import InMemoryStore
from cadence.repositories.base import AI_RESPONSE_EVENT
from cadence.session_completion import SessionCompletedEvent, handle_session_completed
from cadence.streaks import StreakState
from cadence.telemetry import TelemetryEvent, clear_listeners, register_listener

NOW = datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)
PROFILE = "learner"


class FakeEmbedder:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise ConnectionError("embedding service unavailable")
        return [1.0, 0.0, 0.5]


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def events() -> List[TelemetryEvent]:
    captured: List[TelemetryEvent] = []
    register_listener(captured.append)
    yield captured
    clear_listeners()


def _coaching(store: InMemoryStore) -> CoachingCardService:
    return CoachingCardService(retention_store=store, streak_store=store, cache_store=store, session_store=store)


async def _complete(
    store: InMemoryStore,
    event: SessionCompletedEvent,
    *,
    embedder: Optional[FakeEmbedder] = None,
    coaching: Optional[CoachingCardService] = None,
):
    return await handle_session_completed(
        event,
        retention_store=store,
        streak_store=store,
        session_store=store,
        embedding_store=store,
        coaching=coaching,
        embedder=embedder,
        now=NOW,
    )


async def _start(store: InMemoryStore, session_type: str = "learning", topic_id: Optional[str] = "limits") -> str:
    return await store.create_session(
        profile_id=PROFILE, subject_id="calculus", topic_id=topic_id, session_type=session_type
    )


async def test_learning_session_uses_default_quality(store: InMemoryStore, events: List[TelemetryEvent]) -> None:
    session_id = await _start(store)
    event = SessionCompletedEvent(profile_id=PROFILE, session_id=session_id, subject_id="calculus", topic_id="limits")

    result = await _complete(store, event)

    assert result.retention_card is not None
    assert result.retention_card.repetitions == 1
    assert result.retention_card.ease_factor == pytest.approx(2.36)
    assert result.verification is None
    assert result.streak.new_state.current_streak == 1
    assert result.embedding_stored is False
    assert result.coaching_card is None

    assert await store.count_completed_sessions(PROFILE) == 1
    streak = await store.get_streak(PROFILE)
    assert streak is not None
    assert streak.last_activity_date == "2026-03-10"
    assert [event.name for event in events] == ["retention_updated", "streak_recorded"]


async def test_reported_quality_is_applied(store: InMemoryStore) -> None:
    session_id = await _start(store)
    event = SessionCompletedEvent.model_validate(
        {"profileId": PROFILE, "sessionId": session_id, "subjectId": "calculus", "topicId": "limits", "qualityRating": 5}
    )

    result = await _complete(store, event)

    assert result.retention_card is not None
    assert result.retention_card.ease_factor == pytest.approx(2.6)


async def test_session_without_topic_only_updates_streak(store: InMemoryStore) -> None:
    session_id = await _start(store, topic_id=None)
    event = SessionCompletedEvent(profile_id=PROFILE, session_id=session_id, subject_id="calculus")

    result = await _complete(store, event)

    assert result.retention_card is None
    assert await store.list_cards(PROFILE) == []
    assert result.streak.new_state.current_streak == 1


async def test_evaluate_session_goes_through_verification(store: InMemoryStore) -> None:
    session_id = await _start(store, session_type="evaluate")
    await store.record_event(
        session_id=session_id,
        profile_id=PROFILE,
        event_type=AI_RESPONSE_EVENT,
        content='{"challengePassed": true, "quality": 5}',
        created_at=NOW - timedelta(minutes=1),
    )
    event = SessionCompletedEvent(
        profile_id=PROFILE, session_id=session_id, subject_id="calculus", topic_id="limits", session_type="evaluate"
    )

    result = await _complete(store, event)

    assert result.verification is not None
    assert result.verification.difficulty_rung_after == 2
    assert result.retention_card == result.verification.recall.card
    stored = await store.get_card(PROFILE, "limits")
    assert stored == result.retention_card
    assert stored.repetitions == 1


async def test_evaluate_session_without_assessment_falls_back(store: InMemoryStore) -> None:
    session_id = await _start(store, session_type="evaluate")
    event = SessionCompletedEvent(
        profile_id=PROFILE, session_id=session_id, subject_id="calculus", topic_id="limits", session_type="evaluate"
    )

    result = await _complete(store, event)

    assert result.verification is None
    assert result.retention_card is not None
    assert result.retention_card.ease_factor == pytest.approx(2.36)


async def test_streak_break_emits_event(store: InMemoryStore, events: List[TelemetryEvent]) -> None:
    await store.upsert_streak(PROFILE, StreakState(current_streak=8, longest_streak=8, last_activity_date="2026-03-01"))
    session_id = await _start(store, topic_id=None)
    event = SessionCompletedEvent(profile_id=PROFILE, session_id=session_id, subject_id="calculus")

    result = await _complete(store, event)

    assert result.streak.streak_broken is True
    assert result.streak.new_state.current_streak == 1
    assert result.streak.new_state.longest_streak == 8
    assert "streak_broken" in [event.name for event in events]


async def test_event_timestamp_sets_activity_day(store: InMemoryStore) -> None:
    session_id = await _start(store, topic_id=None)
    event = SessionCompletedEvent(
        profile_id=PROFILE,
        session_id=session_id,
        subject_id="calculus",
        timestamp=datetime(2026, 3, 9, 23, 0, tzinfo=timezone.utc),
    )

    await _complete(store, event)

    streak = await store.get_streak(PROFILE)
    assert streak is not None
    assert streak.last_activity_date == "2026-03-09"


async def test_summary_is_embedded_for_memory(store: InMemoryStore) -> None:
    embedder = FakeEmbedder()
    session_id = await _start(store)
    event = SessionCompletedEvent(
        profile_id=PROFILE,
        session_id=session_id,
        subject_id="calculus",
        topic_id="limits",
        summary="Worked through epsilon-delta proofs.",
    )

    result = await _complete(store, event, embedder=embedder)

    assert result.embedding_stored is True
    assert embedder.calls == ["Worked through epsilon-delta proofs."]
    memories = await store.find_similar(PROFILE, [1.0, 0.0, 0.5], 3)
    assert [memory.session_id for memory in memories] == [session_id]


async def test_embedding_failure_does_not_block_completion(store: InMemoryStore) -> None:
    session_id = await _start(store)
    event = SessionCompletedEvent(profile_id=PROFILE, session_id=session_id, subject_id="calculus", topic_id="limits")

    result = await _complete(store, event, embedder=FakeEmbedder(fail=True))

    assert result.embedding_stored is False
    assert result.retention_card is not None
    assert await store.get_streak(PROFILE) is not None


async def test_warm_profile_gets_precomputed_card(store: InMemoryStore) -> None:
    for _ in range(4):
        previous = await _start(store)
        await store.complete_session(previous, ended_at=NOW - timedelta(days=1))
    session_id = await _start(store)
    event = SessionCompletedEvent(profile_id=PROFILE, session_id=session_id, subject_id="calculus", topic_id="limits")

    result = await _complete(store, event, coaching=_coaching(store))

    assert result.coaching_card is not None
    cached = await store.get_cache(PROFILE)
    assert cached is not None
    assert cached.card_data == result.coaching_card


async def test_cold_profile_skips_precompute(store: InMemoryStore) -> None:
    session_id = await _start(store)
    event = SessionCompletedEvent(profile_id=PROFILE, session_id=session_id, subject_id="calculus", topic_id="limits")

    result = await _complete(store, event, coaching=_coaching(store))

    assert result.coaching_card is None
    assert await store.get_cache(PROFILE) is None
