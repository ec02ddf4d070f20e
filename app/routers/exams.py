"""Examination API routes."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, require_examiner
from app.models.exam_attempt import ExamAttempt
from app.models.exam_question import QuestionKind
from app.models.user import User
from app.services import exam_session, exams
from app.services.exams import CardEntry
from app.services.scoring import QuestionInput

router = APIRouter(prefix="/api/exams", tags=["exams"])


class CreateExamRequest(BaseModel):
    student_id: int
    unit: int
    review_units: list[int] = []
    date: str | None = None
    notes: str | None = None


class QuestionPayload(BaseModel):
    kind: QuestionKind
    mistake_count: int
    max_weight: int
    unit_reference: int | None = None
    question_text: str | None = None


class SubmitExamRequest(BaseModel):
    questions: list[QuestionPayload]
    score: float | None = None
    passed: bool | None = None
    notes: str | None = None


class WizardRequest(BaseModel):
    student_id: int
    unit: int
    review_units: list[int] = []
    current_mistakes: list[int]
    current_texts: list[str | None] = []
    review_mistakes: dict[int, int] = {}
    review_texts: dict[int, str | None] = {}
    forced_fail: bool = False
    score: float | None = None
    passed: bool | None = None
    date: str | None = None
    notes: str | None = None


class QuestionItem(BaseModel):
    id: int
    kind: str
    unit_reference: int
    question_text: str | None
    mistake_count: int
    max_weight: int
    achieved_score: int


class AttemptResponse(BaseModel):
    id: int
    student_id: int
    examiner_id: int | None
    unit: int
    review_units: list[int]
    date: str
    status: str
    current_part_score: float | None
    cumulative_score: float | None
    final_score: float | None
    gatekeeper_passed: bool | None
    passed: bool | None
    notes: str | None
    questions: list[QuestionItem]


class WizardResponse(BaseModel):
    stage: str
    attempt: AttemptResponse


class CardAttemptItem(BaseModel):
    attempt_id: int
    attempt_number: int
    date: str
    status: str
    final_score: float | None
    passed: bool | None
    is_primary: bool


class CardSlot(BaseModel):
    unit: int
    status: str
    attempts: list[CardAttemptItem]


class UnitSummaryResponse(BaseModel):
    unit: int
    total_attempts: int
    times_passed: int
    best_score: float | None
    status: str
    latest: CardAttemptItem | None


def _attempt_response(attempt: ExamAttempt) -> AttemptResponse:
    return AttemptResponse(
        id=attempt.id,
        student_id=attempt.student_id,
        examiner_id=attempt.examiner_id,
        unit=attempt.unit_number,
        review_units=attempt.review_units,
        date=attempt.exam_date.isoformat(),
        status=attempt.status,
        current_part_score=attempt.current_part_score,
        cumulative_score=attempt.cumulative_score,
        final_score=attempt.final_score,
        gatekeeper_passed=attempt.gatekeeper_passed,
        passed=attempt.passed,
        notes=attempt.notes,
        questions=[
            QuestionItem(
                id=q.id,
                kind=q.kind,
                unit_reference=q.unit_reference,
                question_text=q.question_text,
                mistake_count=q.mistake_count,
                max_weight=q.max_weight,
                achieved_score=q.achieved_score,
            )
            for q in attempt.questions
        ],
    )


def _card_item(entry: CardEntry) -> CardAttemptItem:
    return CardAttemptItem(
        attempt_id=entry.attempt_id,
        attempt_number=entry.attempt_number,
        date=entry.exam_date.isoformat(),
        status=entry.status,
        final_score=entry.final_score,
        passed=entry.passed,
        is_primary=entry.is_primary,
    )


@router.post("", response_model=AttemptResponse, status_code=201)
async def create_exam(
    body: CreateExamRequest,
    user: User = Depends(require_examiner),
    db: AsyncSession = Depends(get_db),
):
    """Open a pending exam attempt."""
    attempt = await exams.create_attempt(
        db,
        body.student_id,
        body.unit,
        body.review_units,
        user.id,
        exam_date=body.date,
        notes=body.notes,
    )
    return _attempt_response(await exams.get_attempt(db, attempt.id))


@router.post("/wizard", response_model=WizardResponse, status_code=201)
async def commit_wizard(
    body: WizardRequest,
    user: User = Depends(require_examiner),
    db: AsyncSession = Depends(get_db),
):
    """Validate a finished wizard run and record it as one completed attempt."""
    session = exam_session.replay(
        body.student_id,
        body.unit,
        body.review_units,
        body.current_mistakes,
        body.review_mistakes,
        current_texts=body.current_texts,
        review_texts=body.review_texts,
        forced_fail=body.forced_fail,
    )
    session, attempt = await exam_session.commit(
        session,
        db,
        user.id,
        exam_date=body.date,
        notes=body.notes,
        score_override=body.score,
        passed_override=body.passed,
    )
    return WizardResponse(stage=session.stage.value, attempt=_attempt_response(attempt))


@router.post("/{attempt_id}/submit", response_model=AttemptResponse)
async def submit_exam(
    attempt_id: int,
    body: SubmitExamRequest,
    user: User = Depends(require_examiner),
    db: AsyncSession = Depends(get_db),
):
    """Grade and complete a pending attempt."""
    questions = [
        QuestionInput(
            kind=q.kind,
            mistake_count=q.mistake_count,
            max_weight=q.max_weight,
            unit_reference=q.unit_reference,
            question_text=q.question_text,
        )
        for q in body.questions
    ]
    attempt = await exams.submit_attempt(
        db,
        attempt_id,
        questions,
        score_override=body.score,
        passed_override=body.passed,
        notes=body.notes,
    )
    return _attempt_response(attempt)


@router.get("/{attempt_id}", response_model=AttemptResponse)
async def get_exam(
    attempt_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _attempt_response(await exams.get_attempt(db, attempt_id))


@router.get("/students/{student_id}/history", response_model=list[AttemptResponse])
async def exam_history(
    student_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """All attempts of a student, oldest first."""
    attempts = await exams.history(db, student_id)
    return [_attempt_response(a) for a in attempts]


@router.get("/students/{student_id}/card", response_model=list[CardSlot])
async def exam_card(
    student_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """30-slot exam card, one slot per Juz."""
    card = await exams.exam_card(db, student_id)
    return [
        CardSlot(
            unit=unit,
            status=exams.slot_status(entries),
            attempts=[_card_item(e) for e in entries],
        )
        for unit, entries in card.items()
    ]


@router.get("/students/{student_id}/units/{unit}", response_model=UnitSummaryResponse)
async def unit_summary(
    student_id: int,
    unit: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    summary = await exams.unit_summary(db, student_id, unit)
    return UnitSummaryResponse(
        unit=summary.unit,
        total_attempts=summary.total_attempts,
        times_passed=summary.times_passed,
        best_score=summary.best_score,
        status=summary.status,
        latest=_card_item(summary.latest) if summary.latest else None,
    )
