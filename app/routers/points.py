"""Point ledger API routes."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, require_admin, require_teacher
from app.errors import InvalidInput
from app.models.point_rule import PointRule
from app.models.point_transaction import PointTransaction
from app.models.user import User
from app.services import points

router = APIRouter(prefix="/api/points", tags=["points"])


class AwardRequest(BaseModel):
    student_id: int
    session_id: int | None = None
    rule_key: points.PointRuleKey | None = None
    amount: int | None = None
    reason: str | None = None


class ManualPointsRequest(BaseModel):
    student_id: int
    session_id: int
    amount: int
    reason: str


class RuleUpdateRequest(BaseModel):
    points: int | None = None
    is_active: bool | None = None
    description: str | None = None


class TransactionItem(BaseModel):
    id: int
    student_id: int
    amount: int
    reason: str
    source_kind: str
    session_id: int | None
    awarded_by_id: int | None
    created_at: str


class AwardResponse(BaseModel):
    awarded: bool
    transaction: TransactionItem | None
    balance: int


class BalanceResponse(BaseModel):
    student_id: int
    balance: int


class BudgetResponse(BaseModel):
    session_id: int
    teacher_id: int
    cap: int
    used: int
    remaining: int


class RuleItem(BaseModel):
    key: str
    description: str
    points: int
    is_active: bool


def _txn_item(t: PointTransaction) -> TransactionItem:
    return TransactionItem(
        id=t.id,
        student_id=t.student_id,
        amount=t.amount,
        reason=t.reason,
        source_kind=t.source_kind,
        session_id=t.session_id,
        awarded_by_id=t.awarded_by_id,
        created_at=t.created_at.isoformat(),
    )


def _rule_item(rule: PointRule) -> RuleItem:
    return RuleItem(
        key=rule.key,
        description=rule.description,
        points=rule.points,
        is_active=rule.is_active,
    )


@router.post("/award", response_model=AwardResponse)
async def award_points(
    body: AwardRequest,
    user: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    """Award a configured rule, or a manual amount charged to the teacher's budget."""
    if (body.rule_key is None) == (body.amount is None):
        raise InvalidInput("Provide exactly one of rule_key or amount")

    if body.rule_key is not None:
        txn = await points.award_from_rule(
            db,
            body.student_id,
            body.rule_key,
            body.session_id,
            reason=body.reason,
            awarded_by=user.id,
        )
    else:
        if body.session_id is None:
            raise InvalidInput("Manual points require a session")
        txn = await points.award_manual(
            db, body.student_id, body.amount, body.reason or "", body.session_id, user.id
        )

    return AwardResponse(
        awarded=txn is not None,
        transaction=_txn_item(txn) if txn else None,
        balance=await points.get_balance(db, body.student_id),
    )


@router.post("/manual", response_model=TransactionItem, status_code=201)
async def add_manual_points(
    body: ManualPointsRequest,
    user: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    """Add bonus/penalty points within the per-session budget."""
    txn = await points.award_manual(
        db, body.student_id, body.amount, body.reason, body.session_id, user.id
    )
    return _txn_item(txn)


@router.get("/students/{student_id}/history", response_model=list[TransactionItem])
async def point_history(
    student_id: int,
    limit: int | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Return the student's point transactions, newest first."""
    txns = await points.history(db, student_id, limit)
    return [_txn_item(t) for t in txns]


@router.get("/students/{student_id}/balance", response_model=BalanceResponse)
async def point_balance(
    student_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return BalanceResponse(
        student_id=student_id, balance=await points.get_balance(db, student_id)
    )


@router.get("/sessions/{session_id}/budget", response_model=BudgetResponse)
async def session_budget(
    session_id: int,
    user: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    """The calling teacher's manual-points budget for a session."""
    status = await points.budget_status(db, user.id, session_id)
    return BudgetResponse(
        session_id=session_id,
        teacher_id=user.id,
        cap=status.cap,
        used=status.used,
        remaining=status.remaining,
    )


@router.get("/rules", response_model=list[RuleItem])
async def list_rules(
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return [_rule_item(r) for r in await points.list_rules(db)]


@router.patch("/rules/{key}", response_model=RuleItem)
async def update_rule(
    key: str,
    body: RuleUpdateRequest,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rule = await points.update_rule(
        db,
        key,
        points=body.points,
        is_active=body.is_active,
        description=body.description,
    )
    return _rule_item(rule)
