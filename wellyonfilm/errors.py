"""
Classified failures raised by the domain services.

Services raise these; the exception handler registered in ``main.py`` turns
them into JSON responses so request handlers never crash on a domain error.
``kind`` tells the client *why* a command failed (bad input, wrong state,
not allowed, missing) independently of the message text.
"""
from typing import Any, Optional

from .timeutil import as_utc


class DomainError(Exception):
    kind = "domain"
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "kind": self.kind,
            "error": type(self).__name__,
            "retryable": self.retryable,
        }


# Validation: the caller must correct the input

class ValidationError(DomainError):
    kind = "validation"
    status_code = 400


class InvalidFileError(ValidationError):
    pass


class InvalidCategoryError(ValidationError):
    pass


# State: the input is fine but the system is not in a state that allows it

class StateError(DomainError):
    kind = "state"
    status_code = 409


class SubmissionsClosedError(StateError):
    pass


class QuotaExceededError(StateError):
    pass


class InvalidTransitionError(StateError):
    pass


class MonthAlreadyOpenError(StateError):
    pass


class MonthNotClosedError(StateError):
    pass


class JudgingClosedError(StateError):
    pass


class JudgePanelFullError(StateError):
    pass


class DuplicateAssignmentError(StateError):
    pass


class AlreadyFinalizedError(StateError):
    pass


class NoParticipantsError(StateError):
    pass


class AlreadyDrawnError(StateError):
    def __init__(self, message: str, winner: Optional[Any] = None):
        super().__init__(message)
        self.winner = winner

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.winner is not None:
            data["winner"] = {
                "winner_id": self.winner.winner_id,
                "user_id": self.winner.user_id,
                "month_year": self.winner.month_year,
                "created_at": as_utc(self.winner.created_at).isoformat(),
            }
        return data


class ConcurrencyConflictError(StateError):
    # Another request changed the row first; re-reading and retrying is safe
    retryable = True


# Authorization

class AuthorizationError(DomainError):
    kind = "authorization"
    status_code = 403


class ForbiddenError(AuthorizationError):
    pass


# Not found (also used for removed/deleted rows the caller may not see)

class NotFoundError(DomainError):
    kind = "not_found"
    status_code = 404
