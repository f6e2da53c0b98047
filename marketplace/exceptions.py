"""
Domain errors raised by the service layer.

Services never let raw SQLAlchemy exceptions escape: store failures are
translated into ``PersistenceError`` by ``marketplace.database``, and
every other failure is detected where it happens and raised as one of
the kinds below.  The HTTP layer maps ``kind`` to a status code; the
services themselves know nothing about transport.
"""
from __future__ import annotations


class DomainError(Exception):
    """Base class for every error a service may raise."""

    kind: str = "domain"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class ValidationError(DomainError):
    """Malformed or out-of-range domain input.  Not retryable."""

    kind = "validation"


class NotFoundError(DomainError):
    """Referenced row is absent or not owned by the caller."""

    kind = "not_found"


class DuplicateError(DomainError):
    """A uniqueness rule would be violated."""

    kind = "duplicate"


class PersistenceError(DomainError):
    """The store failed (unavailable, deadlock, unrelated constraint).

    Safe for the caller to retry with backoff; the core never retries.
    """

    kind = "persistence"


__all__ = [
    "DomainError",
    "ValidationError",
    "NotFoundError",
    "DuplicateError",
    "PersistenceError",
]
