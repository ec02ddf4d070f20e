"""Domain error taxonomy for the exam and point ledgers.

Services raise these before any persistence write; ``main.py`` registers a
handler that renders them as JSON responses with the matching status code.
"""


class HalaqatError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": type(self).__name__}


class InvalidInput(HalaqatError):
    """Malformed scoring parameters, dates or unit references."""

    status_code = 400


class InvalidTransition(InvalidInput):
    """An exam session transition that the current stage does not allow."""


class NotFound(HalaqatError):
    status_code = 404


class AlreadyCompleted(HalaqatError):
    """Resubmission of an exam attempt that is no longer pending."""

    status_code = 409


class Forbidden(HalaqatError):
    status_code = 403


class BudgetExceeded(HalaqatError):
    """A manual award would push a teacher past the per-session cap."""

    status_code = 400

    def __init__(self, cap: int, used: int, requested: int) -> None:
        super().__init__(
            "Manual points budget exceeded for this session. "
            f"Budget: {cap}, Used: {used}, Requested: {requested}"
        )
        self.cap = cap
        self.used = used
        self.requested = requested

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(cap=self.cap, used=self.used, requested=self.requested)
        return data
