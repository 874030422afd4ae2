from typing import Optional


class SyncError(Exception):
    """Base class for failures reported by the sync bridge.

    All of these are recoverable from the caller's point of view: the local
    task record is never rolled back when one is raised or reported.
    """

    retryable = False

    def __init__(self, message: str, task_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.task_id = task_id

    @property
    def kind(self) -> str:
        return type(self).__name__

    def as_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "task_id": self.task_id,
            "retryable": self.retryable,
        }


class NotFound(SyncError):
    """The task vanished from the store. Callers should navigate away."""


class TransientFailure(SyncError):
    """Store or network error. Safe to retry."""

    retryable = True


class ValidationFailure(SyncError):
    """Malformed update. Callers must correct the input."""
