"""Daily activity streak tracking with a short grace period.

A learner keeps their streak through up to three missed days. Dates are ISO
``YYYY-MM-DD`` strings interpreted in UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

MAX_GRACE_DAYS = 3
STREAK_BROKEN_MESSAGE = "Welcome back! Every day is a fresh start, let's build a new streak together."

DateLike = Union[str, date]


class StreakState(BaseModel):
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_activity_date: Optional[str] = None
    # Kept for schema compatibility; activity recording always clears it.
    grace_period_start_date: Optional[str] = None


class StreakUpdate(BaseModel):
    new_state: StreakState
    streak_broken: bool = False
    message: Optional[str] = None


class StreakDisplay(BaseModel):
    is_on_grace_period: bool
    grace_days_remaining: int
    display_text: str


def iso_day(value: DateLike) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(value[:10]).isoformat()


def today_utc(now: Optional[datetime] = None) -> str:
    return iso_day(now or datetime.now(timezone.utc))


def days_between(first: DateLike, second: DateLike) -> int:
    """Absolute number of calendar days between two dates."""
    a = date.fromisoformat(iso_day(first))
    b = date.fromisoformat(iso_day(second))
    return abs((b - a).days)


def create_initial_streak_state() -> StreakState:
    return StreakState()


def record_daily_activity(state: StreakState, today: DateLike) -> StreakUpdate:
    """Record activity on ``today`` and return the updated streak."""
    day = iso_day(today)

    if not state.last_activity_date:
        return StreakUpdate(
            new_state=StreakState(current_streak=1, longest_streak=1, last_activity_date=day),
        )

    gap = days_between(state.last_activity_date, day)

    if gap == 0:
        return StreakUpdate(new_state=state.model_copy())

    if gap <= MAX_GRACE_DAYS + 1:
        current = state.current_streak + 1
        return StreakUpdate(
            new_state=StreakState(
                current_streak=current,
                longest_streak=max(state.longest_streak, current),
                last_activity_date=day,
                grace_period_start_date=None,
            ),
        )

    return StreakUpdate(
        new_state=StreakState(
            current_streak=1,
            longest_streak=max(state.longest_streak, 1),
            last_activity_date=day,
            grace_period_start_date=None,
        ),
        streak_broken=True,
        message=STREAK_BROKEN_MESSAGE,
    )


def get_streak_display_info(state: StreakState, today: DateLike) -> StreakDisplay:
    if not state.last_activity_date:
        return StreakDisplay(
            is_on_grace_period=False,
            grace_days_remaining=0,
            display_text="Start your first streak today!",
        )

    gap = days_between(state.last_activity_date, today)

    if gap <= 1:
        return StreakDisplay(
            is_on_grace_period=False,
            grace_days_remaining=0,
            display_text=f"{state.current_streak}-day streak!",
        )

    if gap <= MAX_GRACE_DAYS + 1:
        remaining = MAX_GRACE_DAYS + 1 - gap
        plural = "" if remaining == 1 else "s"
        return StreakDisplay(
            is_on_grace_period=True,
            grace_days_remaining=remaining,
            display_text=f"{state.current_streak}-day streak, {remaining} grace day{plural} remaining",
        )

    return StreakDisplay(
        is_on_grace_period=False,
        grace_days_remaining=0,
        display_text="Start a new streak today!",
    )


__all__ = [
    "MAX_GRACE_DAYS",
    "STREAK_BROKEN_MESSAGE",
    "StreakDisplay",
    "StreakState",
    "StreakUpdate",
    "create_initial_streak_state",
    "days_between",
    "get_streak_display_info",
    "iso_day",
    "record_daily_activity",
    "today_utc",
]
