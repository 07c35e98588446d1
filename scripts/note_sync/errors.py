"""Error hierarchy shared by the note sync engine and the summary pipeline."""

from __future__ import annotations


class NoteSyncError(RuntimeError):
    """Base class for errors raised by the note sync package."""


class NoteValidationError(NoteSyncError, ValueError):
    """Raised when a note draft or patch is rejected before reaching the store."""


class RemoteStoreError(NoteSyncError):
    """Raised when a remote note store call fails."""


class NoteNotFound(RemoteStoreError):
    """Raised when the remote record is missing (or owned by someone else)."""

    def __init__(self, note_id: str) -> None:
        super().__init__(f"Note '{note_id}' not found")
        self.note_id = note_id


class ModelUnavailable(NoteSyncError):
    """Raised when the summary model has not been configured."""


class ModelError(NoteSyncError):
    """Raised when a summary model call fails or returns unusable data."""


__all__ = [
    "ModelError",
    "ModelUnavailable",
    "NoteNotFound",
    "NoteSyncError",
    "NoteValidationError",
    "RemoteStoreError",
]
