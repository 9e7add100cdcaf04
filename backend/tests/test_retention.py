from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cadence.retention import (
    RetentionCard,
    XpStatus,
    can_retest_topic,
    create_initial_retention_card,
    get_retention_status,
    is_review_due,
    process_recall_result,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_initial_card_defaults() -> None:
    card = create_initial_retention_card("learner-1", "topic-a")
    assert card.ease_factor == pytest.approx(2.5)
    assert card.interval_days == 1
    assert card.repetitions == 0
    assert card.xp_status is XpStatus.PENDING
    assert card.difficulty_rung == 1
    assert card.next_review_at is None


def test_first_success_does_not_verify_xp() -> None:
    result = process_recall_result(create_initial_retention_card("p", "t"), 4, now=NOW)

    assert result.passed is True
    assert result.xp_change == "none"
    assert result.failure_action is None
    assert result.card.consecutive_successes == 1
    assert result.card.xp_status is XpStatus.PENDING
    assert result.card.next_review_at == NOW + timedelta(days=1)


def test_delayed_recall_verifies_xp() -> None:
    first = process_recall_result(create_initial_retention_card("p", "t"), 4, now=NOW)
    second = process_recall_result(first.card, 5, now=NOW + timedelta(days=1))

    assert second.xp_change == "verified"
    assert second.card.xp_status is XpStatus.VERIFIED
    assert second.card.consecutive_successes == 2
    assert second.card.interval_days == 6


def test_failures_decay_xp_then_redirect() -> None:
    card = RetentionCard(profile_id="p", topic_id="t", xp_status=XpStatus.VERIFIED, consecutive_successes=3)

    first = process_recall_result(card, 1, now=NOW)
    assert first.passed is False
    assert first.xp_change == "decayed"
    assert first.failure_action == "feedback_only"
    assert first.card.xp_status is XpStatus.DECAYED
    assert first.card.consecutive_successes == 0
    assert first.card.failure_count == 1

    second = process_recall_result(first.card, 0, now=NOW)
    assert second.failure_action == "feedback_only"

    third = process_recall_result(second.card, 2, now=NOW)
    assert third.card.failure_count == 3
    assert third.failure_action == "redirect_to_learning_book"


def test_recall_processing_keeps_difficulty_rung() -> None:
    card = RetentionCard(profile_id="p", topic_id="t", evaluate_difficulty_rung=3)
    result = process_recall_result(card, 4, now=NOW)
    assert result.card.evaluate_difficulty_rung == 3


def test_is_review_due() -> None:
    card = create_initial_retention_card("p", "t")
    assert is_review_due(card, NOW) is False

    due = card.model_copy(update={"next_review_at": NOW})
    assert is_review_due(due, NOW) is True
    assert is_review_due(due, NOW - timedelta(seconds=1)) is False


def test_can_retest_topic_enforces_cooldown() -> None:
    assert can_retest_topic(None, NOW) is True
    assert can_retest_topic(NOW - timedelta(hours=23), NOW) is False
    assert can_retest_topic(NOW - timedelta(hours=24), NOW) is True


@pytest.mark.parametrize(
    ("elapsed_days", "expected"),
    [(0.5, "strong"), (1, "strong"), (1.5, "fading"), (3, "weak"), (5, "forgotten")],
)
def test_retention_status_by_elapsed_ratio(elapsed_days, expected) -> None:
    card = RetentionCard(
        profile_id="p",
        topic_id="t",
        interval_days=1,
        last_reviewed_at=NOW - timedelta(days=elapsed_days),
    )
    assert get_retention_status(card, NOW) == expected


def test_never_reviewed_card_is_forgotten() -> None:
    assert get_retention_status(create_initial_retention_card("p", "t"), NOW) == "forgotten"
