"""Point ledger - append-only transactions and the materialized balance.

Every balance change goes through :func:`award`, which inserts one
``PointTransaction`` row and increments ``students.total_points`` with a
single SQL expression. Nothing in the request path recomputes a balance from
history; :func:`reconcile_balances` exists for offline audits only.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import BudgetExceeded, InvalidInput, NotFound
from app.models.circle_session import CircleSession
from app.models.point_rule import PointRule
from app.models.point_transaction import (
    MANUAL_SOURCE_KINDS,
    PointSourceKind,
    PointTransaction,
)
from app.models.student import Student
from app.services.locks import KeyedLocks

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------


class PointRuleKey(str, Enum):
    RECITATION_EXCELLENT = "RECITATION_EXCELLENT"
    RECITATION_VERY_GOOD = "RECITATION_VERY_GOOD"
    RECITATION_GOOD = "RECITATION_GOOD"
    RECITATION_ACCEPTABLE = "RECITATION_ACCEPTABLE"
    RECITATION_POOR = "RECITATION_POOR"
    ATTENDANCE_PRESENT = "ATTENDANCE_PRESENT"
    ATTENDANCE_ON_TIME = "ATTENDANCE_ON_TIME"
    EXAM_PASSED = "EXAM_PASSED"
    EXAM_FAILED = "EXAM_FAILED"


class RecitationQuality(str, Enum):
    EXCELLENT = "EXCELLENT"
    VERY_GOOD = "VERY_GOOD"
    GOOD = "GOOD"
    ACCEPTABLE = "ACCEPTABLE"
    POOR = "POOR"


RULE_SOURCE_KINDS: dict[PointRuleKey, PointSourceKind] = {
    PointRuleKey.RECITATION_EXCELLENT: PointSourceKind.RECITATION,
    PointRuleKey.RECITATION_VERY_GOOD: PointSourceKind.RECITATION,
    PointRuleKey.RECITATION_GOOD: PointSourceKind.RECITATION,
    PointRuleKey.RECITATION_ACCEPTABLE: PointSourceKind.RECITATION,
    PointRuleKey.RECITATION_POOR: PointSourceKind.RECITATION,
    PointRuleKey.ATTENDANCE_PRESENT: PointSourceKind.ATTENDANCE,
    PointRuleKey.ATTENDANCE_ON_TIME: PointSourceKind.ATTENDANCE,
    PointRuleKey.EXAM_PASSED: PointSourceKind.EXAM,
    PointRuleKey.EXAM_FAILED: PointSourceKind.EXAM,
}

RECITATION_RULES: dict[RecitationQuality, PointRuleKey] = {
    RecitationQuality.EXCELLENT: PointRuleKey.RECITATION_EXCELLENT,
    RecitationQuality.VERY_GOOD: PointRuleKey.RECITATION_VERY_GOOD,
    RecitationQuality.GOOD: PointRuleKey.RECITATION_GOOD,
    RecitationQuality.ACCEPTABLE: PointRuleKey.RECITATION_ACCEPTABLE,
    RecitationQuality.POOR: PointRuleKey.RECITATION_POOR,
}

# Seed values: (key, description, points)
DEFAULT_POINT_RULES: list[tuple[PointRuleKey, str, int]] = [
    (PointRuleKey.RECITATION_EXCELLENT, "Excellent recitation with no mistakes", 5),
    (PointRuleKey.RECITATION_VERY_GOOD, "Very good recitation with few mistakes", 3),
    (PointRuleKey.RECITATION_GOOD, "Good recitation", 1),
    (PointRuleKey.RECITATION_ACCEPTABLE, "Acceptable recitation", 0),
    (PointRuleKey.RECITATION_POOR, "Poor recitation (encouragement only)", 0),
    (PointRuleKey.ATTENDANCE_PRESENT, "Present in the session", 2),
    (PointRuleKey.ATTENDANCE_ON_TIME, "Arrived on time", 1),
    (PointRuleKey.EXAM_PASSED, "Passed a Juz examination", 10),
    (PointRuleKey.EXAM_FAILED, "Sat a Juz examination", 0),
]

_budget_locks = KeyedLocks()


@dataclass(frozen=True)
class BudgetStatus:
    cap: int
    used: int

    @property
    def remaining(self) -> int:
        return max(0, self.cap - self.used)


@dataclass(frozen=True)
class BalanceDrift:
    student_id: int
    recorded: int
    expected: int

    @property
    def difference(self) -> int:
        return self.recorded - self.expected


def parse_rule_key(value) -> PointRuleKey:
    try:
        return PointRuleKey(value)
    except ValueError:
        raise InvalidInput(f"Unknown point rule key: {value!r}") from None


def rule_for_recitation(quality) -> PointRuleKey:
    """Map a recitation grade to its point rule."""
    try:
        return RECITATION_RULES[RecitationQuality(quality)]
    except ValueError:
        raise InvalidInput(f"Unknown recitation quality: {quality!r}") from None


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def _require_student(db: AsyncSession, student_id: int) -> None:
    result = await db.execute(select(Student.id).where(Student.id == student_id))
    if result.scalar_one_or_none() is None:
        raise NotFound(f"Student {student_id} not found")


async def _require_session(db: AsyncSession, session_id: int, *, for_update: bool = False) -> None:
    query = select(CircleSession.id).where(CircleSession.id == session_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    if result.scalar_one_or_none() is None:
        raise NotFound(f"Session {session_id} not found")


async def get_balance(db: AsyncSession, student_id: int) -> int:
    """Return the student's materialized point balance."""
    result = await db.execute(
        select(Student.total_points).where(Student.id == student_id)
    )
    balance = result.scalar_one_or_none()
    if balance is None:
        raise NotFound(f"Student {student_id} not found")
    return balance


async def history(
    db: AsyncSession, student_id: int, limit: int | None = None
) -> list[PointTransaction]:
    """Return the student's transactions, newest first."""
    if limit is None:
        limit = settings.POINT_HISTORY_DEFAULT_LIMIT
    if limit < 1:
        raise InvalidInput("limit must be at least 1")
    await _require_student(db, student_id)
    result = await db.execute(
        select(PointTransaction)
        .where(PointTransaction.student_id == student_id)
        .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def award(
    db: AsyncSession,
    student_id: int,
    amount: int,
    reason: str,
    source_kind: PointSourceKind | str,
    *,
    session_id: int | None = None,
    awarded_by: int | None = None,
    exam_attempt_id: int | None = None,
    commit: bool = True,
) -> PointTransaction:
    """Append one transaction and increment the student's balance.

    With ``commit=False`` the caller owns the transaction (used when the award
    is part of a larger unit of work, e.g. an exam submission).
    """
    try:
        kind = PointSourceKind(source_kind)
    except ValueError:
        raise InvalidInput(f"Unknown point source: {source_kind!r}") from None
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInput("amount must be an integer")
    if not reason or not reason.strip():
        raise InvalidInput("reason is required")
    if kind in MANUAL_SOURCE_KINDS and awarded_by is None:
        raise InvalidInput("Manual point adjustments require the awarding teacher")
    if kind is PointSourceKind.ATTENDANCE and session_id is None:
        raise InvalidInput("Attendance points require a session")

    await _require_student(db, student_id)
    if session_id is not None:
        await _require_session(db, session_id)

    txn = PointTransaction(
        student_id=student_id,
        amount=amount,
        reason=reason.strip(),
        source_kind=kind.value,
        session_id=session_id,
        awarded_by_id=awarded_by,
        exam_attempt_id=exam_attempt_id,
    )
    db.add(txn)
    await db.execute(
        update(Student)
        .where(Student.id == student_id)
        .values(total_points=Student.total_points + amount)
        .execution_options(synchronize_session=False)
    )

    if commit:
        await db.commit()
        await db.refresh(txn)
    else:
        await db.flush()

    logger.info(
        "Points %+d to student %d (%s, session=%s, by=%s)",
        amount, student_id, kind.value, session_id, awarded_by,
    )
    return txn


async def award_from_rule(
    db: AsyncSession,
    student_id: int,
    rule_key: PointRuleKey | str,
    session_id: int | None = None,
    *,
    reason: str | None = None,
    awarded_by: int | None = None,
    exam_attempt_id: int | None = None,
    commit: bool = True,
) -> PointTransaction | None:
    """Award the configured value of a rule.

    Returns ``None`` without writing anything when the rule is inactive or
    worth 0 points. A missing rule is an error, not a no-op.
    """
    key = parse_rule_key(rule_key)
    rule = await get_rule(db, key)
    if not rule.is_active or rule.points == 0:
        logger.debug("Rule %s inactive or zero; no points for student %d", key.value, student_id)
        return None

    try:
        return await award(
            db,
            student_id,
            rule.points,
            reason or rule.description,
            RULE_SOURCE_KINDS[key],
            session_id=session_id,
            awarded_by=awarded_by,
            exam_attempt_id=exam_attempt_id,
            commit=commit,
        )
    except (InvalidInput, NotFound):
        logger.error("Rule award %s for student %d failed", key.value, student_id, exc_info=True)
        raise


async def award_for_recitation(
    db: AsyncSession, student_id: int, quality, session_id: int, awarded_by: int | None = None
) -> PointTransaction | None:
    """Award points for a graded recitation page."""
    return await award_from_rule(
        db, student_id, rule_for_recitation(quality), session_id, awarded_by=awarded_by
    )


async def budget_usage(db: AsyncSession, teacher_id: int, session_id: int) -> int:
    """Sum of |amount| of the teacher's manual adjustments in a session."""
    result = await db.execute(
        select(func.coalesce(func.sum(func.abs(PointTransaction.amount)), 0)).where(
            PointTransaction.awarded_by_id == teacher_id,
            PointTransaction.session_id == session_id,
            PointTransaction.source_kind.in_([k.value for k in MANUAL_SOURCE_KINDS]),
        )
    )
    return int(result.scalar_one())


async def budget_status(db: AsyncSession, teacher_id: int, session_id: int) -> BudgetStatus:
    await _require_session(db, session_id)
    used = await budget_usage(db, teacher_id, session_id)
    return BudgetStatus(cap=settings.MANUAL_POINTS_BUDGET_PER_SESSION, used=used)


async def award_manual(
    db: AsyncSession,
    student_id: int,
    amount: int,
    reason: str,
    session_id: int,
    teacher_id: int,
) -> PointTransaction:
    """Teacher bonus/penalty, capped per teacher per session.

    The budget check and the write run under one lock for the
    ``(teacher_id, session_id)`` pair, and the session row is locked for the
    duration of the transaction.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
        raise InvalidInput("amount must be a non-zero integer")
    max_abs = settings.MANUAL_POINTS_MAX_ABS
    if abs(amount) > max_abs:
        raise InvalidInput(f"amount must be between -{max_abs} and {max_abs}")
    if not reason or not reason.strip():
        raise InvalidInput("reason is required")

    async with _budget_locks.lock((teacher_id, session_id)):
        await _require_session(db, session_id, for_update=True)
        await _require_student(db, student_id)

        cap = settings.MANUAL_POINTS_BUDGET_PER_SESSION
        used = await budget_usage(db, teacher_id, session_id)
        requested = abs(amount)
        if used + requested > cap:
            await db.rollback()
            logger.warning(
                "Budget exceeded: teacher %d session %d (cap=%d used=%d requested=%d)",
                teacher_id, session_id, cap, used, requested,
            )
            raise BudgetExceeded(cap=cap, used=used, requested=requested)

        kind = PointSourceKind.MANUAL_REWARD if amount >= 0 else PointSourceKind.MANUAL_PENALTY
        return await award(
            db,
            student_id,
            amount,
            reason,
            kind,
            session_id=session_id,
            awarded_by=teacher_id,
        )


# ---------------------------------------------------------------------------
# Rule administration
# ---------------------------------------------------------------------------


async def list_rules(db: AsyncSession) -> list[PointRule]:
    result = await db.execute(select(PointRule).order_by(PointRule.key))
    return list(result.scalars().all())


async def get_rule(db: AsyncSession, key: PointRuleKey | str) -> PointRule:
    key = parse_rule_key(key)
    result = await db.execute(select(PointRule).where(PointRule.key == key.value))
    rule = result.scalar_one_or_none()
    if rule is None:
        raise NotFound(f'Point rule "{key.value}" not found')
    return rule


async def update_rule(
    db: AsyncSession,
    key: PointRuleKey | str,
    *,
    points: int | None = None,
    is_active: bool | None = None,
    description: str | None = None,
) -> PointRule:
    """Edit a rule's value, active flag or description."""
    rule = await get_rule(db, key)
    if points is not None:
        if isinstance(points, bool) or not isinstance(points, int):
            raise InvalidInput("points must be an integer")
        rule.points = points
    if is_active is not None:
        rule.is_active = is_active
    if description is not None:
        if not description.strip():
            raise InvalidInput("description cannot be empty")
        rule.description = description.strip()
    await db.commit()
    await db.refresh(rule)
    logger.info("Point rule %s updated: points=%d active=%s", rule.key, rule.points, rule.is_active)
    return rule


async def ensure_default_rules(db: AsyncSession) -> int:
    """Insert any missing default rules; existing rows are left untouched."""
    result = await db.execute(select(PointRule.key))
    existing = set(result.scalars().all())
    created = 0
    for key, description, points in DEFAULT_POINT_RULES:
        if key.value in existing:
            continue
        db.add(PointRule(key=key.value, description=description, points=points, is_active=True))
        created += 1
    await db.commit()
    return created


# ---------------------------------------------------------------------------
# Offline audit
# ---------------------------------------------------------------------------


async def reconcile_balances(db: AsyncSession, *, fix: bool = False) -> list[BalanceDrift]:
    """Compare every materialized balance with its transaction sum.

    Not for the request path: it scans the whole ledger.
    """
    sums_result = await db.execute(
        select(PointTransaction.student_id, func.sum(PointTransaction.amount)).group_by(
            PointTransaction.student_id
        )
    )
    expected_by_student = {sid: int(total or 0) for sid, total in sums_result.all()}

    students_result = await db.execute(select(Student.id, Student.total_points))
    drifts = []
    for sid, recorded in students_result.all():
        expected = expected_by_student.get(sid, 0)
        if recorded != expected:
            drifts.append(BalanceDrift(student_id=sid, recorded=recorded, expected=expected))

    if fix and drifts:
        for drift in drifts:
            await db.execute(
                update(Student)
                .where(Student.id == drift.student_id)
                .values(total_points=drift.expected)
                .execution_options(synchronize_session=False)
            )
        await db.commit()
        logger.warning("Repaired %d drifted balances", len(drifts))

    return drifts
