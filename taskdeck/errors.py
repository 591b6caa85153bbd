"""
TaskDeck — Error hierarchy.

Every error carries an HTTP-like ``status`` so the route layer can report it
without knowing the core:

    TaskDeckError
    ├── AuthorizationError   (403) — role insufficient for a visible task
    ├── NotFoundError        (404) — task/share/user missing, or task not visible
    ├── ValidationError      (400) — malformed input, self-invite, owner-as-grantee
    ├── ConflictError        (409) — a unique record already exists
    └── TransientStoreError  (503) — record store I/O failure
"""

from __future__ import annotations


class TaskDeckError(Exception):
    """Base error for all TaskDeck core failures."""

    status: int = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        body: dict = {"message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class AuthorizationError(TaskDeckError):
    """The caller can see the task but their role does not allow the operation."""

    status = 403


class NotFoundError(TaskDeckError):
    """The subject does not exist, or is not visible to the caller."""

    status = 404


class ValidationError(TaskDeckError):
    """Input was rejected before touching the store."""

    status = 400


class ConflictError(TaskDeckError):
    """A write collided with an existing record (duplicate email or share)."""

    status = 409


class TransientStoreError(TaskDeckError):
    """The record store failed; the operation may succeed if retried."""

    status = 503
