"""ExamQuestion ORM model."""

from enum import Enum

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class QuestionKind(str, Enum):
    CURRENT_PART = "current_part"
    CUMULATIVE = "cumulative"


class ExamQuestion(Base):
    __tablename__ = "exam_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    exam_attempt_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("exam_attempts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String, nullable=False)
    unit_reference: Mapped[int] = mapped_column(Integer, nullable=False)
    question_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    mistake_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_weight: Mapped[int] = mapped_column(Integer, nullable=False)
    # Derived by the scoring engine at submission time
    achieved_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    exam_attempt: Mapped["ExamAttempt"] = relationship(
        "ExamAttempt", back_populates="questions"
    )
