"""ORM models package - exports all models and Base."""

from app.database import Base
from app.models.user import User, UserRole
from app.models.student import Student
from app.models.circle_session import CircleSession
from app.models.exam_attempt import ExamAttempt, ExamStatus
from app.models.exam_question import ExamQuestion, QuestionKind
from app.models.point_rule import PointRule
from app.models.point_transaction import (
    MANUAL_SOURCE_KINDS,
    PointSourceKind,
    PointTransaction,
)

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Student",
    "CircleSession",
    "ExamAttempt",
    "ExamStatus",
    "ExamQuestion",
    "QuestionKind",
    "PointRule",
    "PointTransaction",
    "PointSourceKind",
    "MANUAL_SOURCE_KINDS",
]
