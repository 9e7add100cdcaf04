"""Structured assessments extracted from evaluate and teach-back model replies."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

RubricArea = Literal["completeness", "accuracy", "clarity"]
RUBRIC_AREAS: tuple[RubricArea, ...] = ("completeness", "accuracy", "clarity")


class VerificationMode(str, Enum):
    EVALUATE = "evaluate"
    TEACH_BACK = "teach_back"


class ChallengeAssessment(BaseModel):
    """Outcome of a spot-the-flaw challenge."""

    model_config = ConfigDict(populate_by_name=True)

    challenge_passed: bool = Field(alias="challengePassed")
    quality: int = Field(ge=0, le=5)
    flaw_identified: Optional[str] = Field(default=None, alias="flawIdentified")


class TeachBackAssessment(BaseModel):
    """Rubric scores for a learner explaining a topic back."""

    model_config = ConfigDict(populate_by_name=True)

    completeness: int = Field(default=3, ge=0, le=5)
    accuracy: int = Field(default=3, ge=0, le=5)
    clarity: int = Field(default=3, ge=0, le=5)
    overall_quality: int = Field(default=3, ge=0, le=5, alias="overallQuality")
    weakest_area: RubricArea = Field(default="accuracy", alias="weakestArea")
    gap_identified: Optional[str] = Field(default=None, alias="gapIdentified")


__all__ = [
    "ChallengeAssessment",
    "RUBRIC_AREAS",
    "RubricArea",
    "TeachBackAssessment",
    "VerificationMode",
]
