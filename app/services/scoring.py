"""Scoring engine - converts recitation mistakes into exam scores.

Every function here is pure: no I/O, no mutation of its inputs. Invalid
parameters raise ``InvalidInput`` before anything is computed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from app.config import settings
from app.errors import InvalidInput
from app.models.exam_question import QuestionKind


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoringPolicy:
    """Thresholds and weights used to grade one exam."""

    deduction_rate: float = 1.0
    current_part_pool: int = 100
    cumulative_weight: int = 100
    gatekeeper_threshold: float = 75.0
    passing_threshold: float = 70.0
    current_question_count: int = 3

    def __post_init__(self) -> None:
        _require_positive(self.deduction_rate, "deduction_rate")
        _require_positive(self.current_part_pool, "current_part_pool")
        _require_positive(self.cumulative_weight, "cumulative_weight")
        if self.current_question_count < 1:
            raise InvalidInput("current_question_count must be at least 1")

    @classmethod
    def from_settings(cls) -> ScoringPolicy:
        return cls(
            deduction_rate=settings.EXAM_DEDUCTION_RATE,
            current_part_pool=settings.EXAM_CURRENT_PART_POOL,
            cumulative_weight=settings.EXAM_CUMULATIVE_WEIGHT,
            gatekeeper_threshold=settings.EXAM_GATEKEEPER_THRESHOLD,
            passing_threshold=settings.EXAM_PASSING_THRESHOLD,
            current_question_count=settings.EXAM_CURRENT_QUESTION_COUNT,
        )


@dataclass(frozen=True)
class QuestionInput:
    """One graded question as submitted by an examiner."""

    kind: QuestionKind
    mistake_count: int
    max_weight: int
    unit_reference: int | None = None
    question_text: str | None = None


@dataclass(frozen=True)
class ScoredQuestion:
    kind: QuestionKind
    unit_reference: int
    mistake_count: int
    max_weight: int
    achieved_score: int
    question_text: str | None = None


@dataclass(frozen=True)
class ExamOutcome:
    current_part_score: float
    cumulative_score: float | None
    final_score: float
    gatekeeper_passed: bool
    passed: bool
    score_overridden: bool = False
    passed_overridden: bool = False


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _require_number(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{name} must be a number")
    if math.isnan(value) or math.isinf(value):
        raise InvalidInput(f"{name} must be finite")
    return value


def _require_positive(value, name: str) -> float:
    _require_number(value, name)
    if value <= 0:
        raise InvalidInput(f"{name} must be positive, got {value}")
    return value


def _require_mistakes(value, name: str = "mistakes") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer")
    if value < 0:
        raise InvalidInput(f"{name} cannot be negative, got {value}")
    return value


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def compute_question_score(max_weight: int, mistakes: int, deduction_rate: float) -> int:
    """Return ``max(0, round(max_weight - mistakes * deduction_rate))``.

    Parameters
    ----------
    max_weight : int
        Weight of the question, strictly positive.
    mistakes : int
        Mistakes counted by the examiner, zero or more.
    deduction_rate : float
        Points deducted per mistake, strictly positive.
    """
    _require_positive(max_weight, "max_weight")
    _require_mistakes(mistakes)
    _require_positive(deduction_rate, "deduction_rate")
    return max(0, _round_half_up(max_weight - mistakes * deduction_rate))


def compute_part_score(
    mistake_counts: Iterable[int], deduction_rate: float, pool: int = 100
) -> float:
    """Score of the current part: all questions draw from one shared pool.

    No questions at all scores 0 rather than a full pool.
    """
    _require_positive(deduction_rate, "deduction_rate")
    _require_positive(pool, "pool")
    counts = [_require_mistakes(m) for m in mistake_counts]
    if not counts:
        return 0.0
    return float(max(0.0, pool - sum(counts) * deduction_rate))


def compute_cumulative_score(mistakes: int, deduction_rate: float, weight: int = 100) -> float:
    """Score of a single review unit."""
    _require_mistakes(mistakes)
    _require_positive(deduction_rate, "deduction_rate")
    _require_positive(weight, "weight")
    return float(max(0.0, weight - mistakes * deduction_rate))


def compute_final_score(current_part_score: float, cumulative_scores: Sequence[float]) -> float:
    """Average the current part with the mean of the review units, if any."""
    _require_number(current_part_score, "current_part_score")
    if not cumulative_scores:
        return float(current_part_score)
    for score in cumulative_scores:
        _require_number(score, "cumulative_score")
    cumulative_avg = sum(cumulative_scores) / len(cumulative_scores)
    return (current_part_score + cumulative_avg) / 2


def gatekeeper_satisfied(current_part_score: float, threshold: float) -> bool:
    return current_part_score >= threshold


def decide_outcome(
    current_part_score: float,
    cumulative_scores: Sequence[float],
    policy: ScoringPolicy,
    *,
    score_override: float | None = None,
    passed_override: bool | None = None,
    forced_fail: bool = False,
) -> ExamOutcome:
    """Combine part scores into a final outcome.

    An examiner's score override replaces the computed final score; a pass
    override replaces the computed pass/fail. A forced failure (exam ended at
    the gatekeeper) can never be overridden into a pass.
    """
    gatekeeper = gatekeeper_satisfied(current_part_score, policy.gatekeeper_threshold)
    cumulative = (
        sum(cumulative_scores) / len(cumulative_scores) if cumulative_scores else None
    )
    final = compute_final_score(current_part_score, cumulative_scores)

    if score_override is not None:
        _require_number(score_override, "score_override")
        if score_override < 0:
            raise InvalidInput("score_override cannot be negative")
        final = float(score_override)

    passed = final >= policy.passing_threshold and gatekeeper
    if passed_override is not None:
        passed = bool(passed_override)
    if forced_fail:
        passed = False

    return ExamOutcome(
        current_part_score=float(current_part_score),
        cumulative_score=cumulative,
        final_score=final,
        gatekeeper_passed=gatekeeper,
        passed=passed,
        score_overridden=score_override is not None,
        passed_overridden=passed_override is not None and not forced_fail,
    )


def score_questions(
    questions: Sequence[QuestionInput], deduction_rate: float, primary_unit: int
) -> list[ScoredQuestion]:
    """Derive ``achieved_score`` for every question.

    Current-part questions default to the primary unit; review questions must
    name their unit.
    """
    scored = []
    for idx, q in enumerate(questions):
        kind = QuestionKind(q.kind)
        unit = q.unit_reference
        if unit is None:
            if kind is QuestionKind.CUMULATIVE:
                raise InvalidInput(f"Question {idx + 1}: review question needs a unit reference")
            unit = primary_unit
        scored.append(
            ScoredQuestion(
                kind=kind,
                unit_reference=unit,
                mistake_count=_require_mistakes(q.mistake_count, f"question {idx + 1} mistakes"),
                max_weight=q.max_weight,
                achieved_score=compute_question_score(q.max_weight, q.mistake_count, deduction_rate),
                question_text=q.question_text,
            )
        )
    return scored


def outcome_for_questions(
    scored: Sequence[ScoredQuestion],
    policy: ScoringPolicy,
    *,
    score_override: float | None = None,
    passed_override: bool | None = None,
    forced_fail: bool = False,
) -> ExamOutcome:
    """Grade a full set of scored questions under *policy*."""
    current = compute_part_score(
        (q.mistake_count for q in scored if q.kind is QuestionKind.CURRENT_PART),
        policy.deduction_rate,
        policy.current_part_pool,
    )

    review_mistakes: dict[int, int] = {}
    if not forced_fail:
        for q in scored:
            if q.kind is QuestionKind.CUMULATIVE:
                review_mistakes[q.unit_reference] = (
                    review_mistakes.get(q.unit_reference, 0) + q.mistake_count
                )
    cumulative_scores = [
        compute_cumulative_score(m, policy.deduction_rate, policy.cumulative_weight)
        for m in review_mistakes.values()
    ]

    return decide_outcome(
        current,
        cumulative_scores,
        policy,
        score_override=score_override,
        passed_override=passed_override,
        forced_fail=forced_fail,
    )
