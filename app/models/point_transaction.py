"""PointTransaction ORM model - append-only point ledger rows."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class PointSourceKind(str, Enum):
    RECITATION = "recitation"
    ATTENDANCE = "attendance"
    EXAM = "exam"
    MANUAL_REWARD = "manual_reward"
    MANUAL_PENALTY = "manual_penalty"


MANUAL_SOURCE_KINDS = (PointSourceKind.MANUAL_REWARD, PointSourceKind.MANUAL_PENALTY)


class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    source_kind: Mapped[str] = mapped_column(String, nullable=False)
    session_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("circle_sessions.id"), nullable=True, index=True
    )
    awarded_by_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True, index=True
    )
    exam_attempt_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("exam_attempts.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    student: Mapped["Student"] = relationship(
        "Student", back_populates="point_transactions"
    )
