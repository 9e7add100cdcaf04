from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List

from cadence.retention import XpStatus
from cadence.telemetry import TelemetryEvent, clear_listeners, emit_event, register_listener


def teardown_function() -> None:
    clear_listeners()


def test_listeners_receive_sanitised_payload() -> None:
    received: List[TelemetryEvent] = []
    register_listener(received.append)

    emit_event(
        "retention_updated",
        profile_id="learner",
        next_review_at=datetime(2026, 3, 11, 9, 0, tzinfo=timezone.utc),
        xp_status=XpStatus.VERIFIED,
    )

    assert len(received) == 1
    assert received[0].name == "retention_updated"
    assert received[0].payload == {
        "profile_id": "learner",
        "next_review_at": "2026-03-11T09:00:00+00:00",
        "xp_status": "verified",
    }


def test_failing_listener_does_not_break_emit(caplog) -> None:
    received: List[TelemetryEvent] = []

    def explode(event: TelemetryEvent) -> None:
        raise RuntimeError("listener bug")

    register_listener(explode)
    register_listener(received.append)

    with caplog.at_level(logging.INFO, logger="cadence.telemetry"):
        emit_event("streak_recorded", profile_id="learner", current_streak=3)

    assert [event.name for event in received] == ["streak_recorded"]
    assert "Telemetry listener failed" in caplog.text
    assert 'TELEMETRY {"event": "streak_recorded"' in caplog.text


def test_clear_listeners() -> None:
    received: List[TelemetryEvent] = []
    register_listener(received.append)
    clear_listeners()

    emit_event("coaching_card_cold_start", profile_id="learner")

    assert received == []
