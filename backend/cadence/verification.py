"""Eligibility gates, quality mapping and reply parsing for verification modes."""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, Optional, Union

from .assessment_result import RUBRIC_AREAS, ChallengeAssessment, RubricArea, TeachBackAssessment, VerificationMode
from .scheduler import round_half_up

logger = logging.getLogger(__name__)

EVALUATE_EASE_THRESHOLD = 2.5
TEACH_BACK_EASE_THRESHOLD = 2.3

_EVALUATE_PATTERN = re.compile(r'\{[\s\S]*?"challengePassed"[\s\S]*?\}')
_TEACH_BACK_PATTERN = re.compile(r'\{[\s\S]*?"completeness"[\s\S]*?"accuracy"[\s\S]*?\}')

RUNG_DESCRIPTIONS: Dict[int, str] = {
    1: (
        "Obvious flaw: use a clearly wrong formula, reversed cause-effect, or factual error "
        "that contradicts basic definitions."
    ),
    2: "Moderate flaw: use a common misconception or apply a correct rule to the wrong context.",
    3: (
        "Subtle flaw: correct reasoning chain with one incorrect premise, or an edge case error "
        "that produces a plausible but wrong answer."
    ),
    4: (
        "Expert flaw: correct at surface level but with a hidden assumption violation, or "
        "conflation of two related but distinct concepts."
    ),
}


def should_trigger_evaluate(ease_factor: float, repetitions: int) -> bool:
    return ease_factor >= EVALUATE_EASE_THRESHOLD and repetitions > 0


def should_trigger_teach_back(ease_factor: float, repetitions: int) -> bool:
    # Teach-back asks for less mastery than a spot-the-flaw challenge.
    return ease_factor >= TEACH_BACK_EASE_THRESHOLD and repetitions > 0


def get_evaluate_rung_description(rung: int) -> str:
    try:
        return RUNG_DESCRIPTIONS[rung]
    except KeyError:
        raise ValueError(f"Unknown evaluate difficulty rung: {rung!r}") from None


def map_evaluate_quality_to_sm2(passed: bool, raw_quality: float) -> float:
    """Map a challenge grade onto SM-2 quality.

    Failures land on 2 or 3 so one missed challenge cannot wreck a schedule.
    """
    if passed:
        return max(3, min(5, raw_quality))
    return 2 if raw_quality <= 1 else 3


def map_teach_back_rubric_to_sm2(assessment: TeachBackAssessment) -> int:
    weighted = assessment.accuracy * 0.5 + assessment.completeness * 0.3 + assessment.clarity * 0.2
    return round_half_up(max(0.0, min(5.0, weighted)))


def verification_quality(mode: Union[VerificationMode, str], assessment: Any) -> float:
    """Dispatch the quality mapping for ``mode``. Unknown modes are a caller defect."""
    try:
        selected = VerificationMode(mode)
    except ValueError:
        raise ValueError(f"Unknown verification mode: {mode!r}") from None

    if selected is VerificationMode.EVALUATE:
        return map_evaluate_quality_to_sm2(assessment.challenge_passed, assessment.quality)
    if selected is VerificationMode.TEACH_BACK:
        return map_teach_back_rubric_to_sm2(assessment)
    raise ValueError(f"Unhandled verification mode: {selected!r}")


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Non-finite JSON constant {token}")


def _load_object(snippet: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(snippet, parse_constant=_reject_constant)
    except (json.JSONDecodeError, ValueError) as exc:
        logger.debug("Discarding malformed assessment JSON: %s", exc)
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if isinstance(value, int):
        return True
    return math.isfinite(value)


def _score(value: Any, fallback: int) -> int:
    if not _is_number(value):
        return fallback
    return max(0, min(5, round_half_up(value)))


def parse_evaluate_assessment(text: Optional[str]) -> Optional[ChallengeAssessment]:
    """Extract a challenge assessment from free-form model output, or ``None``."""
    if not text:
        return None
    match = _EVALUATE_PATTERN.search(text)
    if match is None:
        return None
    payload = _load_object(match.group(0))
    if payload is None:
        return None

    passed = payload.get("challengePassed")
    challenge_passed = passed if isinstance(passed, bool) else False
    quality = _score(payload.get("quality"), 4 if challenge_passed else 2)
    flaw = payload.get("flawIdentified")
    return ChallengeAssessment(
        challenge_passed=challenge_passed,
        quality=quality,
        flaw_identified=flaw if isinstance(flaw, str) else None,
    )


def find_weakest_area(completeness: int, accuracy: int, clarity: int) -> RubricArea:
    """Lowest rubric score; ties favour accuracy, then completeness."""
    if accuracy <= completeness and accuracy <= clarity:
        return "accuracy"
    if completeness <= clarity:
        return "completeness"
    return "clarity"


def parse_teach_back_assessment(text: Optional[str]) -> Optional[TeachBackAssessment]:
    """Extract a teach-back rubric from free-form model output, or ``None``."""
    if not text:
        return None
    match = _TEACH_BACK_PATTERN.search(text)
    if match is None:
        return None
    payload = _load_object(match.group(0))
    if payload is None:
        return None

    completeness = _score(payload.get("completeness"), 3)
    accuracy = _score(payload.get("accuracy"), 3)
    clarity = _score(payload.get("clarity"), 3)
    overall = _score(payload.get("overallQuality"), 3)

    area = payload.get("weakestArea")
    weakest: RubricArea = area if area in RUBRIC_AREAS else find_weakest_area(completeness, accuracy, clarity)
    gap = payload.get("gapIdentified")

    return TeachBackAssessment(
        completeness=completeness,
        accuracy=accuracy,
        clarity=clarity,
        overall_quality=overall,
        weakest_area=weakest,
        gap_identified=gap if isinstance(gap, str) else None,
    )


def parse_assessment(
    mode: Union[VerificationMode, str], text: Optional[str]
) -> Optional[Union[ChallengeAssessment, TeachBackAssessment]]:
    try:
        selected = VerificationMode(mode)
    except ValueError:
        raise ValueError(f"Unknown verification mode: {mode!r}") from None
    if selected is VerificationMode.EVALUATE:
        return parse_evaluate_assessment(text)
    return parse_teach_back_assessment(text)


__all__ = [
    "EVALUATE_EASE_THRESHOLD",
    "RUNG_DESCRIPTIONS",
    "TEACH_BACK_EASE_THRESHOLD",
    "find_weakest_area",
    "get_evaluate_rung_description",
    "map_evaluate_quality_to_sm2",
    "map_teach_back_rubric_to_sm2",
    "parse_assessment",
    "parse_evaluate_assessment",
    "parse_teach_back_assessment",
    "should_trigger_evaluate",
    "should_trigger_teach_back",
    "verification_quality",
]
