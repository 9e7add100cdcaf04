from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from cadence.scheduler import MIN_EASE_FACTOR, SM2Card, coerce_quality, next_ease_factor, round_half_up, sm2

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_first_review_starts_one_day_interval() -> None:
    result = sm2(4, None, now=NOW)

    assert result.was_successful is True
    assert result.card.repetitions == 1
    assert result.card.interval == 1
    assert result.card.ease_factor == pytest.approx(2.5)
    assert result.card.last_reviewed_at == NOW
    assert result.card.next_review_at == NOW + timedelta(days=1)


def test_first_review_outcomes_without_prior_card() -> None:
    perfect = sm2(5, None, now=NOW)
    assert perfect.was_successful is True
    assert perfect.card.repetitions == 1
    assert perfect.card.interval == 1
    assert perfect.card.ease_factor >= 2.5

    blackout = sm2(0, None, now=NOW)
    assert blackout.was_successful is False
    assert blackout.card.repetitions == 0
    assert blackout.card.interval == 1
    assert blackout.card.next_review_at == NOW + timedelta(days=1)


def test_two_successes_from_scratch_reach_six_days() -> None:
    first = sm2(4, None, now=NOW)
    second = sm2(4, first.card, now=NOW)

    assert second.was_successful is True
    assert second.card.repetitions == 2
    assert second.card.interval == 6


def test_ease_moves_with_quality_on_first_review() -> None:
    assert sm2(5, now=NOW).card.ease_factor == pytest.approx(2.6)
    assert sm2(3, now=NOW).card.ease_factor == pytest.approx(2.36)


def test_second_and_third_successes_follow_interval_ladder() -> None:
    second = sm2(4, SM2Card(ease_factor=2.5, interval=1, repetitions=1), now=NOW)
    assert second.card.repetitions == 2
    assert second.card.interval == 6

    third = sm2(4, second.card, now=NOW)
    assert third.card.repetitions == 3
    assert third.card.interval == 15
    assert third.card.next_review_at == NOW + timedelta(days=15)


def test_failure_resets_progress_and_lowers_ease() -> None:
    card = SM2Card(ease_factor=2.5, interval=15, repetitions=3)

    result = sm2(2, card, now=NOW)

    assert result.was_successful is False
    assert result.card.repetitions == 0
    assert result.card.interval == 1
    assert result.card.ease_factor == pytest.approx(2.18)


def test_ease_never_drops_below_floor() -> None:
    card = SM2Card(ease_factor=MIN_EASE_FACTOR, interval=1, repetitions=0)
    for quality in (0, 1, 0, 2, 0):
        card = sm2(quality, card, now=NOW).card
        assert card.ease_factor >= MIN_EASE_FACTOR
    assert card.ease_factor == pytest.approx(MIN_EASE_FACTOR)


def test_sm2_does_not_mutate_input_card() -> None:
    card = SM2Card(ease_factor=2.5, interval=6, repetitions=2)
    sm2(5, card, now=NOW)
    assert card.interval == 6
    assert card.repetitions == 2


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (math.nan, 0),
        (math.inf, 0),
        ("5", 0),
        (None, 0),
        (-3, 0),
        (9, 5),
        (2.5, 3),
        (4.4, 4),
        (True, 1),
    ],
)
def test_coerce_quality(raw, expected) -> None:
    assert coerce_quality(raw) == expected


def test_non_finite_quality_is_scheduled_as_failure() -> None:
    result = sm2(math.nan, SM2Card(ease_factor=2.5, interval=6, repetitions=2), now=NOW)
    assert result.was_successful is False
    assert result.card.interval == 1


def test_round_half_up_differs_from_bankers_rounding() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(1.49) == 1


def test_next_ease_factor_formula() -> None:
    assert next_ease_factor(2.5, 4) == pytest.approx(2.5)
    assert next_ease_factor(2.0, 5) == pytest.approx(2.1)
    assert next_ease_factor(1.4, 0) == pytest.approx(MIN_EASE_FACTOR)
