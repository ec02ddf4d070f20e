"""Exam ledger - attempts, graded questions, attempt numbering and history.

An attempt is created PENDING and completed exactly once. Completion writes
the question rows and flips the status in a single transaction; the flip is a
conditional ``UPDATE ... WHERE status = 'pending'`` so that only one of
several concurrent submissions can win.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.errors import AlreadyCompleted, InvalidInput, NotFound
from app.models.exam_attempt import ExamAttempt, ExamStatus
from app.models.exam_question import ExamQuestion, QuestionKind
from app.models.student import Student
from app.services import curriculum, points
from app.services.locks import KeyedLocks
from app.services.scoring import (
    QuestionInput,
    ScoringPolicy,
    outcome_for_questions,
    score_questions,
)

logger = logging.getLogger(__name__)

_submit_locks = KeyedLocks()


@dataclass(frozen=True)
class CardEntry:
    """One attempt as listed in a unit slot of the exam card."""

    attempt_id: int
    attempt_number: int
    exam_date: date
    status: str
    final_score: float | None
    passed: bool | None
    is_primary: bool


@dataclass(frozen=True)
class UnitSummary:
    unit: int
    total_attempts: int
    times_passed: int
    best_score: float | None
    status: str
    latest: CardEntry | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_exam_date(value) -> date:
    """Accept a date, datetime, ISO string or None (today, UTC)."""
    if value is None:
        return datetime.now(timezone.utc).date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            raise InvalidInput(f"Malformed exam date: {value!r}") from None
    raise InvalidInput(f"Malformed exam date: {value!r}")


def _chronological_key(attempt: ExamAttempt):
    return (attempt.exam_date, attempt.created_at, attempt.id)


def slot_status(entries: list[CardEntry]) -> str:
    """Summarize a card slot: passed, failed, pending or not_attempted.

    *entries* are newest first, as returned by :func:`exam_card`.
    """
    if not entries:
        return "not_attempted"
    if any(e.passed for e in entries):
        return "passed"
    latest = entries[0]
    if latest.status == ExamStatus.PENDING.value:
        return "pending"
    return "failed"


async def _require_student(db: AsyncSession, student_id: int) -> None:
    result = await db.execute(select(Student.id).where(Student.id == student_id))
    if result.scalar_one_or_none() is None:
        raise NotFound(f"Student {student_id} not found")


async def _student_attempts(db: AsyncSession, student_id: int) -> list[ExamAttempt]:
    result = await db.execute(
        select(ExamAttempt)
        .where(ExamAttempt.student_id == student_id)
        .options(selectinload(ExamAttempt.questions))
        .execution_options(populate_existing=True)
    )
    return sorted(result.scalars().all(), key=_chronological_key)


def attempt_numbers(attempts: list[ExamAttempt]) -> dict[tuple[int, int], int]:
    """Map ``(attempt_id, unit)`` to the 1-based attempt number for that unit.

    *attempts* must be in chronological order.
    """
    counters: dict[int, int] = defaultdict(int)
    numbers = {}
    for attempt in attempts:
        for unit in attempt.tested_units:
            counters[unit] += 1
            numbers[(attempt.id, unit)] = counters[unit]
    return numbers


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def create_attempt(
    db: AsyncSession,
    student_id: int,
    unit_number: int,
    review_units: list[int] | None = None,
    examiner_id: int | None = None,
    *,
    exam_date=None,
    notes: str | None = None,
    commit: bool = True,
) -> ExamAttempt:
    """Open a PENDING attempt for one primary unit plus optional review units."""
    unit_number = curriculum.validate_unit(unit_number)
    reviews = curriculum.validate_review_units(unit_number, review_units)
    when = parse_exam_date(exam_date)
    await _require_student(db, student_id)

    attempt = ExamAttempt(
        student_id=student_id,
        examiner_id=examiner_id,
        unit_number=unit_number,
        exam_date=when,
        status=ExamStatus.PENDING.value,
        notes=notes,
    )
    attempt.review_units = reviews
    db.add(attempt)

    if commit:
        await db.commit()
        await db.refresh(attempt)
    else:
        await db.flush()

    logger.info(
        "Exam attempt %d created: student=%d unit=%d reviews=%s",
        attempt.id, student_id, unit_number, reviews,
    )
    return attempt


async def submit_attempt(
    db: AsyncSession,
    attempt_id: int,
    questions: list[QuestionInput],
    score_override: float | None = None,
    passed_override: bool | None = None,
    notes: str | None = None,
    *,
    forced_fail: bool = False,
    policy: ScoringPolicy | None = None,
) -> ExamAttempt:
    """Grade and complete a PENDING attempt.

    Either every question row is stored and the attempt becomes COMPLETED, or
    nothing is written.
    """
    policy = policy or ScoringPolicy.from_settings()

    async with _submit_locks.lock(attempt_id):
        attempt = await get_attempt(db, attempt_id)
        if attempt.is_completed:
            logger.warning("Resubmission rejected for exam attempt %d", attempt_id)
            raise AlreadyCompleted(f"Exam attempt {attempt_id} has already been completed")

        scored = score_questions(questions, policy.deduction_rate, attempt.unit_number)
        reviews = attempt.review_units
        for q in scored:
            if q.kind is QuestionKind.CURRENT_PART and q.unit_reference != attempt.unit_number:
                raise InvalidInput(
                    f"Current-part question references unit {q.unit_reference}, "
                    f"exam is for unit {attempt.unit_number}"
                )
            if q.kind is QuestionKind.CUMULATIVE and q.unit_reference not in reviews:
                raise InvalidInput(
                    f"Review question references unit {q.unit_reference}, "
                    f"which is not a review unit of this exam"
                )

        outcome = outcome_for_questions(
            scored,
            policy,
            score_override=score_override,
            passed_override=passed_override,
            forced_fail=forced_fail,
        )

        values = dict(
            status=ExamStatus.COMPLETED.value,
            current_part_score=outcome.current_part_score,
            cumulative_score=outcome.cumulative_score,
            final_score=outcome.final_score,
            gatekeeper_passed=outcome.gatekeeper_passed,
            passed=outcome.passed,
            completed_at=datetime.now(timezone.utc),
        )
        if notes:
            values["notes"] = notes

        try:
            result = await db.execute(
                update(ExamAttempt)
                .where(
                    ExamAttempt.id == attempt_id,
                    ExamAttempt.status == ExamStatus.PENDING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyCompleted(f"Exam attempt {attempt_id} has already been completed")

            for q in scored:
                attempt.questions.append(
                    ExamQuestion(
                        kind=q.kind.value,
                        unit_reference=q.unit_reference,
                        question_text=q.question_text,
                        mistake_count=q.mistake_count,
                        max_weight=q.max_weight,
                        achieved_score=q.achieved_score,
                    )
                )

            if settings.EXAM_AWARD_POINTS_ON_COMMIT:
                rule = points.PointRuleKey.EXAM_PASSED if outcome.passed else points.PointRuleKey.EXAM_FAILED
                await points.award_from_rule(
                    db,
                    attempt.student_id,
                    rule,
                    reason=f"Juz {attempt.unit_number} examination",
                    exam_attempt_id=attempt_id,
                    commit=False,
                )

            await db.commit()
        except Exception:
            await db.rollback()
            raise

    logger.info(
        "Exam attempt %d completed: final=%.1f passed=%s",
        attempt_id, outcome.final_score, outcome.passed,
    )
    return await get_attempt(db, attempt_id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_attempt(db: AsyncSession, attempt_id: int) -> ExamAttempt:
    """Load one attempt with its questions, refreshed from the database."""
    result = await db.execute(
        select(ExamAttempt)
        .where(ExamAttempt.id == attempt_id)
        .options(selectinload(ExamAttempt.questions))
        .execution_options(populate_existing=True)
    )
    attempt = result.scalar_one_or_none()
    if attempt is None:
        raise NotFound(f"Exam attempt {attempt_id} not found")
    return attempt


async def history(db: AsyncSession, student_id: int) -> list[ExamAttempt]:
    """All of a student's attempts with questions, oldest first."""
    await _require_student(db, student_id)
    return await _student_attempts(db, student_id)


async def exam_card(db: AsyncSession, student_id: int) -> dict[int, list[CardEntry]]:
    """Build the 30-slot exam card.

    Every attempt is listed under its primary unit and under each review
    unit it covered; each slot is sorted newest first.
    """
    await _require_student(db, student_id)
    attempts = await _student_attempts(db, student_id)
    numbers = attempt_numbers(attempts)

    card: dict[int, list[CardEntry]] = {n: [] for n in curriculum.UNIT_NUMBERS}
    for attempt in reversed(attempts):
        for unit in attempt.tested_units:
            card[unit].append(
                CardEntry(
                    attempt_id=attempt.id,
                    attempt_number=numbers[(attempt.id, unit)],
                    exam_date=attempt.exam_date,
                    status=attempt.status,
                    final_score=attempt.final_score,
                    passed=attempt.passed,
                    is_primary=unit == attempt.unit_number,
                )
            )
    return card


async def unit_summary(db: AsyncSession, student_id: int, unit: int) -> UnitSummary:
    """Attempt statistics for one unit of a student's card."""
    unit = curriculum.validate_unit(unit)
    card = await exam_card(db, student_id)
    entries = card[unit]
    scores = [e.final_score for e in entries if e.final_score is not None]
    return UnitSummary(
        unit=unit,
        total_attempts=len(entries),
        times_passed=sum(1 for e in entries if e.passed),
        best_score=max(scores) if scores else None,
        status=slot_status(entries),
        latest=entries[0] if entries else None,
    )
