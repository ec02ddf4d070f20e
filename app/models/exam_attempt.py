"""ExamAttempt ORM model."""

import json
from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class ExamStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class ExamAttempt(Base):
    __tablename__ = "exam_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("students.id"), nullable=False, index=True
    )
    examiner_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    unit_number: Mapped[int] = mapped_column(Integer, nullable=False)
    # JSON list of review unit numbers, e.g. "[1, 2]"
    review_units_json: Mapped[str] = mapped_column(
        "review_units", Text, nullable=False, default="[]"
    )
    exam_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=ExamStatus.PENDING.value
    )
    current_part_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    cumulative_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    final_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    gatekeeper_passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    student: Mapped["Student"] = relationship("Student", back_populates="exam_attempts")
    questions: Mapped[list["ExamQuestion"]] = relationship(
        "ExamQuestion",
        back_populates="exam_attempt",
        order_by="ExamQuestion.id",
        cascade="all, delete-orphan",
    )

    @property
    def review_units(self) -> list[int]:
        return json.loads(self.review_units_json or "[]")

    @review_units.setter
    def review_units(self, units: list[int]) -> None:
        self.review_units_json = json.dumps(list(units))

    @property
    def tested_units(self) -> list[int]:
        """Primary unit followed by the review units, without duplicates."""
        units = [self.unit_number]
        for unit in self.review_units:
            if unit not in units:
                units.append(unit)
        return units

    @property
    def is_completed(self) -> bool:
        return self.status == ExamStatus.COMPLETED.value
