"""SM-2 spaced repetition scheduling.

Pure and deterministic given the caller-supplied ``now``. The recurrence follows
the SuperMemo SM-2 description:

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))

with the ease factor floored at 1.3 and no upper bound. Quality ratings are
integers 0-5; anything that is not a finite number is treated as 0 so a noisy
grader can never corrupt a learner's schedule.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3
MAX_QUALITY = 5


class SM2Card(BaseModel):
    """Scheduling fields of a retention card."""

    ease_factor: float = Field(default=DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    interval: int = Field(default=1, ge=1)
    repetitions: int = Field(default=0, ge=0)
    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None


class SM2Result(BaseModel):
    card: SM2Card
    was_successful: bool


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``round`` uses banker's rounding)."""
    return int(math.floor(value + 0.5))


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


def coerce_quality(value: Any) -> int:
    """Return ``value`` as an SM-2 quality in 0-5. Non-finite input becomes 0."""
    number = _finite_number(value)
    if number is None:
        return 0
    return max(0, min(MAX_QUALITY, round_half_up(number)))


def _prior_ease(card: Optional[SM2Card]) -> float:
    if card is None:
        return DEFAULT_EASE_FACTOR
    ease = _finite_number(card.ease_factor)
    if ease is None or ease < MIN_EASE_FACTOR:
        return MIN_EASE_FACTOR
    return ease


def next_ease_factor(previous: float, quality: int) -> float:
    miss = MAX_QUALITY - quality
    updated = previous + (0.1 - miss * (0.08 + miss * 0.02))
    return max(MIN_EASE_FACTOR, updated)


def sm2(quality: Any, card: Optional[SM2Card] = None, *, now: Optional[datetime] = None) -> SM2Result:
    """Apply one review of ``quality`` to ``card`` (``None`` for a first review)."""
    grade = coerce_quality(quality)
    reviewed_at = now or datetime.now(timezone.utc)
    was_successful = grade >= PASSING_QUALITY

    prev_reps = card.repetitions if card is not None else 0
    prev_interval = card.interval if card is not None else 1
    new_ease = next_ease_factor(_prior_ease(card), grade)

    if not was_successful:
        repetitions = 0
        interval = 1
    elif card is None or prev_reps == 0:
        repetitions = 1
        interval = 1
    elif prev_reps == 1:
        repetitions = 2
        interval = 6
    else:
        repetitions = prev_reps + 1
        interval = max(1, round_half_up(prev_interval * new_ease))

    # Stored with two decimals; re-floor so rounding can never dip below the minimum.
    stored_ease = max(MIN_EASE_FACTOR, round(new_ease, 2))

    return SM2Result(
        card=SM2Card(
            ease_factor=stored_ease,
            interval=interval,
            repetitions=repetitions,
            last_reviewed_at=reviewed_at,
            next_review_at=reviewed_at + timedelta(days=interval),
        ),
        was_successful=was_successful,
    )


__all__ = [
    "DEFAULT_EASE_FACTOR",
    "MIN_EASE_FACTOR",
    "PASSING_QUALITY",
    "SM2Card",
    "SM2Result",
    "coerce_quality",
    "next_ease_factor",
    "round_half_up",
    "sm2",
]
