from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from cadence.config import get_settings
from cadence.main import app
from cadence.streaks import StreakState


@pytest.fixture
def client(monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv("CADENCE_PERSISTENCE_MODE", "memory")
    monkeypatch.setenv("CADENCE_EMBEDDINGS_ENABLED", "false")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()


def _complete_learning_session(client: TestClient, topic_id: str = "limits") -> dict:
    started = client.post(
        "/api/sessions",
        json={"profileId": "learner", "subjectId": "calculus", "topicId": topic_id},
    )
    assert started.status_code == 201
    session_id = started.json()["sessionId"]

    completed = client.post(
        "/api/sessions/completed",
        json={
            "profileId": "learner",
            "sessionId": session_id,
            "subjectId": "calculus",
            "topicId": topic_id,
            "qualityRating": 4,
        },
    )
    assert completed.status_code == 200
    return completed.json()


def test_session_completion_updates_retention_and_streak(client: TestClient) -> None:
    payload = _complete_learning_session(client)

    assert payload["retentionCard"]["repetitions"] == 1
    assert payload["retentionCard"]["interval_days"] == 1
    assert payload["streak"]["new_state"]["current_streak"] == 1
    assert payload["embeddingStored"] is False

    retention = client.get("/api/profiles/learner/topics/limits/retention")
    assert retention.status_code == 200
    view = retention.json()
    assert view["topicId"] == "limits"
    assert view["intervalDays"] == 1
    assert view["xpStatus"] == "pending"

    streak = client.get("/api/profiles/learner/streak")
    assert streak.status_code == 200
    assert streak.json()["currentStreak"] == 1
    assert streak.json()["longestStreak"] == 1


def test_missing_topic_retention_is_404(client: TestClient) -> None:
    response = client.get("/api/profiles/learner/topics/unknown/retention")
    assert response.status_code == 404


def test_subject_retention_filters_topics(client: TestClient) -> None:
    _complete_learning_session(client, "limits")
    _complete_learning_session(client, "series")

    response = client.get("/api/profiles/learner/retention", params=[("topicId", "series")])
    assert response.status_code == 200
    payload = response.json()
    assert [topic["topicId"] for topic in payload["topics"]] == ["series"]
    assert payload["reviewDueCount"] == 0

    empty = client.get("/api/profiles/learner/retention")
    assert empty.json() == {"topics": [], "reviewDueCount": 0}


def test_new_learner_streak_defaults(client: TestClient) -> None:
    payload = client.get("/api/profiles/newcomer/streak").json()
    assert payload["currentStreak"] == 0
    assert payload["displayText"] == "Start your first streak today!"


def test_verification_eligibility_for_unseen_topic(client: TestClient) -> None:
    response = client.get("/api/profiles/learner/topics/limits/verification")
    assert response.status_code == 200
    payload = response.json()
    assert payload["topicId"] == "limits"
    assert payload["evaluate"] is False
    assert payload["teachBack"] is False


def test_subject_urgency_ranking(client: TestClient) -> None:
    response = client.post(
        "/api/profiles/learner/subjects/urgency",
        json=[
            {"subjectId": "calculus", "overdueRecallCount": 2, "totalTopics": 4},
            {"subjectId": "history", "daysSinceLastSession": 20, "totalTopics": 3},
        ],
    )
    assert response.status_code == 200
    ranked = response.json()
    assert [subject["subjectId"] for subject in ranked] == ["history", "calculus"]
    assert ranked[0]["urgencyScore"] == 10
    assert ranked[1]["urgencyScore"] == 6
    assert ranked[1]["overdueRecallCount"] == 2


def test_recall_test_uses_answer_length_without_grade(client: TestClient) -> None:
    _complete_learning_session(client)

    passed = client.post(
        "/api/profiles/learner/recall-test",
        json={"topicId": "limits", "answer": "A limit describes the value a function approaches near a point."},
    )
    assert passed.status_code == 200
    assert passed.json()["passed"] is True
    assert passed.json()["masteryScore"] == 0.75

    failed = client.post(
        "/api/profiles/learner/recall-test",
        json={"topicId": "limits", "answer": "no idea"},
    )
    assert failed.status_code == 200
    assert failed.json()["passed"] is False
    assert failed.json()["masteryScore"] == 0.4


def test_recall_test_rejects_empty_answer(client: TestClient) -> None:
    response = client.post("/api/profiles/learner/recall-test", json={"topicId": "limits", "answer": ""})
    assert response.status_code == 422


def test_coaching_card_cold_start(client: TestClient) -> None:
    _complete_learning_session(client)

    payload = client.get("/api/profiles/learner/coaching-card").json()
    assert payload["coldStart"] is True
    assert payload["card"] is None
    assert [action["key"] for action in payload["fallback"]["actions"]] == [
        "continue_learning",
        "start_new_topic",
        "review_progress",
    ]


def test_session_events_are_recorded(client: TestClient) -> None:
    session_id = client.post(
        "/api/sessions",
        json={"profileId": "learner", "subjectId": "calculus", "sessionType": "evaluate"},
    ).json()["sessionId"]

    recorded = client.post(
        f"/api/sessions/{session_id}/events",
        json={"profileId": "learner", "content": "Spot the flaw in this proof."},
    )
    assert recorded.status_code == 201
    assert recorded.json()["event_type"] == "ai_response"
    assert recorded.json()["session_id"] == session_id

    blank = client.post(f"/api/sessions/{session_id}/events", json={"profileId": "learner", "content": "  "})
    assert blank.status_code == 422


def test_memory_search_without_embeddings(client: TestClient) -> None:
    response = client.post("/api/profiles/learner/memory/search", json={"message": "what is a limit?"})
    assert response.status_code == 200
    assert response.json() == {"context": "", "topic_ids": []}


def test_routes_require_engine() -> None:
    app.state.coaching_engine = None
    response = TestClient(app).get("/api/profiles/learner/streak")
    assert response.status_code == 503


def _completion_payload() -> dict:
    return {"profileId": "learner", "sessionId": "s-1", "subjectId": "calculus", "topicId": "limits"}


def test_session_completion_contract_error_is_422(client: TestClient, monkeypatch) -> None:
    async def reject(event, now=None):
        raise ValueError("Unknown verification mode: 'oral'")

    monkeypatch.setattr(app.state.coaching_engine, "complete_session", reject)

    response = client.post("/api/sessions/completed", json=_completion_payload())
    assert response.status_code == 422
    assert response.json()["detail"] == "Unknown verification mode: 'oral'"


def test_session_completion_model_error_is_500(client: TestClient, monkeypatch) -> None:
    async def broken(event, now=None):
        StreakState(current_streak=-1)

    monkeypatch.setattr(app.state.coaching_engine, "complete_session", broken)

    with pytest.raises(ValidationError):
        client.post("/api/sessions/completed", json=_completion_payload())

    quiet = TestClient(app, raise_server_exceptions=False)
    assert quiet.post("/api/sessions/completed", json=_completion_payload()).status_code == 500
