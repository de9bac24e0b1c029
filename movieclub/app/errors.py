"""Typed errors raised by the ranking core.

The web layer maps each class to an HTTP status; everything else lets them
propagate unchanged.
"""


class RankingError(Exception):
    """Base class for all ranking errors."""

    code = "RANKING_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class PreconditionViolation(RankingError):
    """A programming error: the caller broke an ordering or size contract."""

    code = "PRECONDITION_VIOLATION"


class NotFoundError(RankingError):
    """Movie, session or ranking entry does not exist (or has expired)."""

    code = "NOT_FOUND"


class CatalogUnavailable(RankingError):
    """The external catalog timed out or could not be reached."""

    code = "CATALOG_UNAVAILABLE"


class ConflictError(RankingError):
    """Request contradicts current state (already ranked, already completed)."""

    code = "CONFLICT"


class UnauthorizedError(RankingError):
    """A user touched a session or entry they do not own."""

    code = "UNAUTHORIZED"


class ValidationError(RankingError):
    """Bad input: unknown category, unknown preference, missing field."""

    code = "VALIDATION_ERROR"
