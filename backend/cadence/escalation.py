"""Three-strike escalation for failed evaluate challenges."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from .retention import MAX_DIFFICULTY_RUNG, MIN_DIFFICULTY_RUNG

EscalationKind = Literal["reveal_flaw", "lower_difficulty", "exit_to_standard"]

REVEAL_FLAW_MESSAGE = "Let me show you where the flaw was. Take a look at the explanation again."
LOWER_DIFFICULTY_MESSAGE = "Let's try a simpler challenge. This one will have a more obvious flaw."
EXIT_TO_STANDARD_MESSAGE = (
    "That's okay, this was a tough challenge. Let's review this topic in the standard way first."
)


class EvaluateFailureAction(BaseModel):
    action: EscalationKind
    message: str
    new_difficulty_rung: Optional[int] = Field(default=None, ge=MIN_DIFFICULTY_RUNG, le=MAX_DIFFICULTY_RUNG)


def _check_rung(rung: int) -> int:
    if not MIN_DIFFICULTY_RUNG <= rung <= MAX_DIFFICULTY_RUNG:
        raise ValueError(f"Difficulty rung must be between 1 and 4, got {rung!r}")
    return rung


def handle_evaluate_failure(consecutive_failures: int, current_rung: int) -> EvaluateFailureAction:
    """Pick the response to the learner's latest failed challenge.

    First failure reveals the flaw. A second failure drops one rung when there
    is a rung to drop to. Anything beyond that leaves evaluate mode; the caller
    resets the rung to 1.
    """
    rung = _check_rung(current_rung)
    if consecutive_failures <= 1:
        return EvaluateFailureAction(action="reveal_flaw", message=REVEAL_FLAW_MESSAGE)
    if consecutive_failures == 2 and rung > MIN_DIFFICULTY_RUNG:
        return EvaluateFailureAction(
            action="lower_difficulty",
            message=LOWER_DIFFICULTY_MESSAGE,
            new_difficulty_rung=rung - 1,
        )
    return EvaluateFailureAction(action="exit_to_standard", message=EXIT_TO_STANDARD_MESSAGE)


def advance_rung(current_rung: int) -> int:
    return min(MAX_DIFFICULTY_RUNG, _check_rung(current_rung) + 1)


def rung_after_failure(action: EvaluateFailureAction, current_rung: int) -> int:
    if action.action == "lower_difficulty" and action.new_difficulty_rung is not None:
        return action.new_difficulty_rung
    if action.action == "exit_to_standard":
        return MIN_DIFFICULTY_RUNG
    return current_rung


__all__ = [
    "EscalationKind",
    "EvaluateFailureAction",
    "advance_rung",
    "handle_evaluate_failure",
    "rung_after_failure",
]
