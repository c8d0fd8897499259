"""
Custom exceptions for the scoreboard with stable, user-safe error messages.

Every exception carries an ErrorKind so transport layers (Discord cogs, a web
collaborator) can map failures without inspecting internals. `message` is for
logs; `user_message` is what callers may see.
"""

from enum import Enum


class ErrorKind(Enum):
    INVALID_REQUEST = "invalid_request"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    NOT_FOUND = "not_found"


_STATUS_CODES = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE_UNAVAILABLE: 503,
}


class ScoreboardException(Exception):
    """Base exception for scoreboard errors."""
    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message
        # Last UpdateStage a submission completed before this error; set by the coordinator
        self.stage = None

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.kind]


class InvalidRequestError(ScoreboardException):
    """Raised for malformed submissions or out-of-bound deltas."""
    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, reason: str):
        super().__init__(
            f"Invalid request: {reason}",
            f"❌ {reason}"
        )


class ForbiddenError(ScoreboardException):
    """Raised when a submission is not authorized."""
    kind = ErrorKind.FORBIDDEN

    def __init__(self, message: str = "Submission not authorized"):
        super().__init__(
            message,
            "❌ This action token is not valid. Request a new one and try again."
        )


class InvalidTokenError(ForbiddenError):
    """Raised for forged, mismatched, expired or reused action tokens.

    The reason is kept on the exception for logging only; the user message is
    identical for every reason.
    """

    def __init__(self, reason: str):
        super().__init__(f"Action token rejected: {reason}")
        self.reason = reason


class ScoreConflictError(ScoreboardException):
    """Raised when a delta would move a score outside its allowed range."""
    kind = ErrorKind.CONFLICT

    def __init__(self, user_id: str, category: str, current: int, delta: int, reason: str):
        super().__init__(
            f"Score update for {user_id} in '{category}' rejected ({current} + {delta}): {reason}",
            f"❌ {reason}"
        )
        self.current = current
        self.delta = delta


class NegativeScoreError(ScoreConflictError):
    def __init__(self, user_id: str, category: str, current: int, delta: int):
        super().__init__(user_id, category, current, delta, "Score cannot go below zero.")


class ScoreCapExceededError(ScoreConflictError):
    def __init__(self, user_id: str, category: str, current: int, delta: int, max_score: int):
        super().__init__(
            user_id, category, current, delta,
            f"Score cannot exceed {max_score:,}."
        )
        self.max_score = max_score


class StorageUnavailableError(ScoreboardException):
    """Raised when storage operations keep failing after all retries."""
    kind = ErrorKind.STORAGE_UNAVAILABLE

    def __init__(self, operation: str, attempts: int, details: str = None):
        super().__init__(
            f"Storage unavailable during {operation} after {attempts} attempts: {details}",
            "❌ Scores are temporarily unavailable. Please try again later."
        )
        self.operation = operation
        self.attempts = attempts


class NotFoundError(ScoreboardException):
    """Raised when a user or category that must exist does not."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, what: str):
        super().__init__(
            f"{what} not found",
            f"❌ {what} not found."
        )
