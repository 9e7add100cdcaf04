from __future__ import annotations

import pytest

from cadence.assessment_result import ChallengeAssessment, TeachBackAssessment, VerificationMode
from cadence.verification import (
    find_weakest_area,
    get_evaluate_rung_description,
    map_evaluate_quality_to_sm2,
    map_teach_back_rubric_to_sm2,
    parse_assessment,
    parse_evaluate_assessment,
    parse_teach_back_assessment,
    should_trigger_evaluate,
    should_trigger_teach_back,
    verification_quality,
)


def test_evaluate_gate_requires_high_ease_and_prior_review() -> None:
    assert should_trigger_evaluate(2.5, 1) is True
    assert should_trigger_evaluate(2.49, 4) is False
    assert should_trigger_evaluate(2.8, 0) is False


def test_teach_back_gate_is_looser_than_evaluate() -> None:
    assert should_trigger_teach_back(2.3, 1) is True
    assert should_trigger_teach_back(2.29, 1) is False
    assert should_trigger_teach_back(2.4, 2) is True
    assert should_trigger_evaluate(2.4, 2) is False


def test_rung_descriptions() -> None:
    assert get_evaluate_rung_description(1).startswith("Obvious flaw")
    assert get_evaluate_rung_description(4).startswith("Expert flaw")
    with pytest.raises(ValueError):
        get_evaluate_rung_description(5)


@pytest.mark.parametrize(
    ("passed", "raw", "expected"),
    [
        (True, 5, 5),
        (True, 4, 4),
        (True, 1, 3),
        (False, 0, 2),
        (False, 1, 2),
        (False, 2, 3),
        (False, 5, 3),
    ],
)
def test_map_evaluate_quality(passed, raw, expected) -> None:
    assert map_evaluate_quality_to_sm2(passed, raw) == expected


def test_map_teach_back_rubric_weights_accuracy_most() -> None:
    assert map_teach_back_rubric_to_sm2(TeachBackAssessment(completeness=5, accuracy=5, clarity=5)) == 5
    assert map_teach_back_rubric_to_sm2(TeachBackAssessment(completeness=2, accuracy=3, clarity=4)) == 3
    assert map_teach_back_rubric_to_sm2(TeachBackAssessment(completeness=1, accuracy=1, clarity=2)) == 1


def test_parse_evaluate_assessment_from_prose() -> None:
    text = (
        "You spotted it! The derivative sign was flipped.\n"
        '{"challengePassed": true, "quality": 4, "flawIdentified": "sign error"}'
    )
    assessment = parse_evaluate_assessment(text)

    assert assessment == ChallengeAssessment(challenge_passed=True, quality=4, flaw_identified="sign error")


def test_parse_evaluate_assessment_defaults_and_clamps() -> None:
    missing_quality = parse_evaluate_assessment('{"challengePassed": false}')
    assert missing_quality is not None
    assert missing_quality.quality == 2

    string_flag = parse_evaluate_assessment('{"challengePassed": "yes", "quality": 3}')
    assert string_flag is not None
    assert string_flag.challenge_passed is False

    clamped = parse_evaluate_assessment('{"challengePassed": true, "quality": 7.6}')
    assert clamped is not None
    assert clamped.quality == 5


@pytest.mark.parametrize(
    "text",
    [
        None,
        "",
        "No structured output here.",
        '{"challengePassed": true, "quality": }',
        '{"challengePassed": true, "quality": NaN}',
    ],
)
def test_parse_evaluate_assessment_rejects_unusable_text(text) -> None:
    assert parse_evaluate_assessment(text) is None


def test_parse_teach_back_assessment_computes_weakest_area() -> None:
    assessment = parse_teach_back_assessment(
        'Thanks! {"completeness": 4, "accuracy": 2, "clarity": 5, "overallQuality": 3}'
    )
    assert assessment is not None
    assert assessment.accuracy == 2
    assert assessment.weakest_area == "accuracy"
    assert assessment.gap_identified is None


def test_parse_teach_back_assessment_keeps_valid_weakest_area() -> None:
    stated = parse_teach_back_assessment(
        '{"completeness": 4, "accuracy": 4, "clarity": 2, "weakestArea": "clarity", "gapIdentified": "jargon"}'
    )
    assert stated is not None
    assert stated.weakest_area == "clarity"
    assert stated.gap_identified == "jargon"

    invalid = parse_teach_back_assessment('{"completeness": 1, "accuracy": 4, "clarity": 3, "weakestArea": "style"}')
    assert invalid is not None
    assert invalid.weakest_area == "completeness"


def test_parse_teach_back_defaults_missing_scores() -> None:
    assessment = parse_teach_back_assessment('{"completeness": 4, "accuracy": "n/a"}')
    assert assessment is not None
    assert assessment.accuracy == 3
    assert assessment.clarity == 3
    assert assessment.overall_quality == 3


def test_find_weakest_area_tie_breaks() -> None:
    assert find_weakest_area(3, 3, 3) == "accuracy"
    assert find_weakest_area(2, 3, 2) == "completeness"
    assert find_weakest_area(4, 4, 1) == "clarity"


def test_mode_dispatch() -> None:
    challenge = ChallengeAssessment(challenge_passed=True, quality=5)
    assert verification_quality(VerificationMode.EVALUATE, challenge) == 5
    assert verification_quality("teach_back", TeachBackAssessment(completeness=5, accuracy=5, clarity=5)) == 5
    assert parse_assessment("evaluate", '{"challengePassed": true, "quality": 5}') == challenge

    with pytest.raises(ValueError):
        verification_quality("quiz", challenge)
    with pytest.raises(ValueError):
        parse_assessment("quiz", "{}")
