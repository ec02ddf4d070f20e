"""Exam session state machine for the oral-examination wizard.

The wizard's state is an immutable :class:`ExamSession` value. Each
transition is a pure function returning a new value, so a client can hold
the state between requests and the server can replay it to validate every
step. :func:`commit` is the only function that touches the database.

Stages::

    SETUP -> GATEKEEPER_TEST -> CUMULATIVE_TEST -> SUMMARY -> COMMITTED
                    |                  (skipped when no review units)
                    +-> FAILED_EARLY   (forced end below the gatekeeper)
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import AlreadyCompleted, InvalidInput, InvalidTransition
from app.models.exam_attempt import ExamAttempt
from app.models.exam_question import QuestionKind
from app.services import curriculum, exams
from app.services.scoring import (
    ExamOutcome,
    QuestionInput,
    ScoringPolicy,
    compute_cumulative_score,
    compute_part_score,
    decide_outcome,
    gatekeeper_satisfied,
)

logger = logging.getLogger(__name__)


class ExamStage(str, Enum):
    SETUP = "SETUP"
    GATEKEEPER_TEST = "GATEKEEPER_TEST"
    CUMULATIVE_TEST = "CUMULATIVE_TEST"
    SUMMARY = "SUMMARY"
    COMMITTED = "COMMITTED"
    FAILED_EARLY = "FAILED_EARLY"


TERMINAL_STAGES = (ExamStage.COMMITTED, ExamStage.FAILED_EARLY)


@dataclass(frozen=True)
class QuestionSlot:
    mistakes: int = 0
    text: str | None = None


@dataclass(frozen=True)
class ExamSession:
    student_id: int
    policy: ScoringPolicy = field(default_factory=ScoringPolicy.from_settings)
    stage: ExamStage = ExamStage.SETUP
    unit: int | None = None
    review_units: tuple[int, ...] = ()
    current_questions: tuple[QuestionSlot, ...] = ()
    review_questions: tuple[tuple[int, QuestionSlot], ...] = ()
    forced_fail: bool = False
    attempt_id: int | None = None

    def review_slot(self, unit: int) -> QuestionSlot:
        for u, slot in self.review_questions:
            if u == unit:
                return slot
        raise InvalidInput(f"Unit {unit} is not a review unit of this exam")


def _require_stage(session: ExamSession, *stages: ExamStage) -> None:
    if session.stage not in stages:
        allowed = ", ".join(s.value for s in stages)
        raise InvalidTransition(
            f"Exam session is in {session.stage.value}; expected {allowed}"
        )


# ---------------------------------------------------------------------------
# Live scores (pure reads)
# ---------------------------------------------------------------------------


def live_part_score(session: ExamSession) -> float:
    return compute_part_score(
        (q.mistakes for q in session.current_questions),
        session.policy.deduction_rate,
        session.policy.current_part_pool,
    )


def live_cumulative_scores(session: ExamSession) -> list[float]:
    return [
        compute_cumulative_score(
            slot.mistakes, session.policy.deduction_rate, session.policy.cumulative_weight
        )
        for _, slot in session.review_questions
    ]


def gatekeeper_met(session: ExamSession) -> bool:
    return gatekeeper_satisfied(live_part_score(session), session.policy.gatekeeper_threshold)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def new_session(student_id: int, policy: ScoringPolicy | None = None) -> ExamSession:
    return ExamSession(student_id=student_id, policy=policy or ScoringPolicy.from_settings())


def select_unit(session: ExamSession, unit: int) -> ExamSession:
    """Choose the primary unit; any review selection is cleared."""
    _require_stage(session, ExamStage.SETUP)
    curriculum.validate_unit(unit)
    return replace(session, unit=unit, review_units=())


def toggle_review_unit(session: ExamSession, unit: int) -> ExamSession:
    _require_stage(session, ExamStage.SETUP)
    if session.unit is None:
        raise InvalidTransition("Select the primary unit before review units")
    curriculum.validate_unit(unit)
    if unit == session.unit:
        raise InvalidInput(f"Unit {unit} is already the primary unit")
    if unit in session.review_units:
        reviews = tuple(u for u in session.review_units if u != unit)
    else:
        reviews = session.review_units + (unit,)
    return replace(session, review_units=reviews)


def start_gatekeeper(session: ExamSession) -> ExamSession:
    """SETUP -> GATEKEEPER_TEST with fresh question slots."""
    _require_stage(session, ExamStage.SETUP)
    if session.unit is None:
        raise InvalidTransition("Exactly one primary unit must be selected")
    slots = tuple(QuestionSlot() for _ in range(session.policy.current_question_count))
    return replace(session, stage=ExamStage.GATEKEEPER_TEST, current_questions=slots)


def adjust_mistakes(session: ExamSession, index: int, delta: int) -> ExamSession:
    """Change a current-part question's mistake counter (floored at 0)."""
    _require_stage(session, ExamStage.GATEKEEPER_TEST)
    if not 0 <= index < len(session.current_questions):
        raise InvalidInput(f"No question slot {index}")
    slots = list(session.current_questions)
    slot = slots[index]
    slots[index] = replace(slot, mistakes=max(0, slot.mistakes + delta))
    return replace(session, current_questions=tuple(slots))


def adjust_review_mistakes(session: ExamSession, unit: int, delta: int) -> ExamSession:
    _require_stage(session, ExamStage.CUMULATIVE_TEST)
    slot = session.review_slot(unit)
    updated = replace(slot, mistakes=max(0, slot.mistakes + delta))
    return replace(
        session,
        review_questions=tuple(
            (u, updated if u == unit else s) for u, s in session.review_questions
        ),
    )


def set_question_text(
    session: ExamSession, text: str | None, *, index: int | None = None, unit: int | None = None
) -> ExamSession:
    """Attach a reference (e.g. a verse) to a current slot or a review unit."""
    if index is not None:
        _require_stage(session, ExamStage.GATEKEEPER_TEST)
        if not 0 <= index < len(session.current_questions):
            raise InvalidInput(f"No question slot {index}")
        slots = list(session.current_questions)
        slots[index] = replace(slots[index], text=text)
        return replace(session, current_questions=tuple(slots))
    if unit is not None:
        _require_stage(session, ExamStage.CUMULATIVE_TEST)
        updated = replace(session.review_slot(unit), text=text)
        return replace(
            session,
            review_questions=tuple(
                (u, updated if u == unit else s) for u, s in session.review_questions
            ),
        )
    raise InvalidInput("Either index or unit is required")


def advance(session: ExamSession) -> ExamSession:
    """Leave the gatekeeper test once the threshold is met."""
    _require_stage(session, ExamStage.GATEKEEPER_TEST)
    if not gatekeeper_met(session):
        raise InvalidTransition(
            f"Current part score {live_part_score(session):g} is below the "
            f"gatekeeper threshold {session.policy.gatekeeper_threshold:g}"
        )
    if not session.review_units:
        return replace(session, stage=ExamStage.SUMMARY)
    reviews = tuple((u, QuestionSlot()) for u in session.review_units)
    return replace(session, stage=ExamStage.CUMULATIVE_TEST, review_questions=reviews)


def force_fail(session: ExamSession) -> ExamSession:
    """End the exam as failed; only allowed while the gatekeeper is unmet."""
    _require_stage(session, ExamStage.GATEKEEPER_TEST)
    if gatekeeper_met(session):
        raise InvalidTransition("Gatekeeper is satisfied; the exam cannot be forced to fail")
    return replace(session, stage=ExamStage.FAILED_EARLY, forced_fail=True)


def confirm_cumulative(session: ExamSession) -> ExamSession:
    _require_stage(session, ExamStage.CUMULATIVE_TEST)
    return replace(session, stage=ExamStage.SUMMARY)


def summarize(
    session: ExamSession,
    score_override: float | None = None,
    passed_override: bool | None = None,
) -> ExamOutcome:
    """Outcome shown on the summary screen."""
    _require_stage(session, ExamStage.SUMMARY, *TERMINAL_STAGES)
    cumulative = [] if session.forced_fail else live_cumulative_scores(session)
    return decide_outcome(
        live_part_score(session),
        cumulative,
        session.policy,
        score_override=score_override,
        passed_override=passed_override,
        forced_fail=session.forced_fail,
    )


def build_question_inputs(session: ExamSession) -> list[QuestionInput]:
    """Question rows to persist for this session."""
    policy = session.policy
    weight = max(1, round(policy.current_part_pool / policy.current_question_count))
    inputs = [
        QuestionInput(
            kind=QuestionKind.CURRENT_PART,
            unit_reference=session.unit,
            mistake_count=slot.mistakes,
            max_weight=weight,
            question_text=slot.text,
        )
        for slot in session.current_questions
    ]
    if not session.forced_fail:
        inputs.extend(
            QuestionInput(
                kind=QuestionKind.CUMULATIVE,
                unit_reference=unit,
                mistake_count=slot.mistakes,
                max_weight=policy.cumulative_weight,
                question_text=slot.text,
            )
            for unit, slot in session.review_questions
        )
    return inputs


# ---------------------------------------------------------------------------
# Replay and commit
# ---------------------------------------------------------------------------


def replay(
    student_id: int,
    unit: int,
    review_units: list[int],
    current_mistakes: list[int],
    review_mistakes: dict[int, int] | None = None,
    *,
    current_texts: list[str | None] | None = None,
    review_texts: dict[int, str | None] | None = None,
    forced_fail: bool = False,
    policy: ScoringPolicy | None = None,
) -> ExamSession:
    """Rebuild a wizard session from its final client-side values.

    Runs the same transitions the wizard would, so an impossible sequence
    (e.g. review scores after a failed gatekeeper) is rejected here.
    """
    review_mistakes = review_mistakes or {}
    curriculum.validate_review_units(unit, review_units)
    session = new_session(student_id, policy)
    session = select_unit(session, unit)
    for review in review_units:
        session = toggle_review_unit(session, review)
    session = start_gatekeeper(session)

    if len(current_mistakes) != session.policy.current_question_count:
        raise InvalidInput(
            f"Expected {session.policy.current_question_count} current-part questions, "
            f"got {len(current_mistakes)}"
        )
    for index, mistakes in enumerate(current_mistakes):
        if mistakes < 0:
            raise InvalidInput(f"Question {index + 1}: mistakes cannot be negative")
        session = adjust_mistakes(session, index, mistakes)
    for index, text in enumerate(current_texts or []):
        if text:
            session = set_question_text(session, text, index=index)

    if forced_fail:
        if review_mistakes:
            raise InvalidInput("A failed gatekeeper cannot carry review results")
        return force_fail(session)

    session = advance(session)
    if session.stage is ExamStage.CUMULATIVE_TEST:
        for review, mistakes in review_mistakes.items():
            if mistakes < 0:
                raise InvalidInput(f"Review unit {review}: mistakes cannot be negative")
            session = adjust_review_mistakes(session, review, mistakes)
        for review, text in (review_texts or {}).items():
            if text:
                session = set_question_text(session, text, unit=review)
        session = confirm_cumulative(session)
    elif review_mistakes:
        raise InvalidInput("Review results given but no review units were selected")
    return session


async def commit(
    session: ExamSession,
    db: AsyncSession,
    examiner_id: int | None,
    *,
    exam_date=None,
    notes: str | None = None,
    score_override: float | None = None,
    passed_override: bool | None = None,
) -> tuple[ExamSession, ExamAttempt]:
    """Persist the session as one completed attempt.

    From SUMMARY the session becomes COMMITTED. A FAILED_EARLY session is
    recorded as a failed attempt and stays FAILED_EARLY. The attempt row and
    its questions are written in one transaction.
    """
    if session.attempt_id is not None:
        raise AlreadyCompleted(f"Exam session already committed as attempt {session.attempt_id}")
    _require_stage(session, ExamStage.SUMMARY, ExamStage.FAILED_EARLY)

    try:
        attempt = await exams.create_attempt(
            db,
            session.student_id,
            session.unit,
            list(session.review_units),
            examiner_id,
            exam_date=exam_date,
            notes=notes,
            commit=False,
        )
        attempt = await exams.submit_attempt(
            db,
            attempt.id,
            build_question_inputs(session),
            score_override=score_override,
            passed_override=False if session.forced_fail else passed_override,
            forced_fail=session.forced_fail,
            policy=session.policy,
        )
    except Exception:
        await db.rollback()
        raise

    stage = ExamStage.COMMITTED if session.stage is ExamStage.SUMMARY else ExamStage.FAILED_EARLY
    logger.info("Exam session for student %d committed as attempt %d (%s)",
                session.student_id, attempt.id, stage.value)
    return replace(session, stage=stage, attempt_id=attempt.id), attempt
