"""Interfaces the engine expects from a remote note store, plus push event types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, Union, runtime_checkable

from .notes import Note

Unsubscribe = Callable[[], None]


@dataclass(frozen=True, slots=True)
class NoteInserted:
    note: Note


@dataclass(frozen=True, slots=True)
class NoteUpdated:
    note: Note


@dataclass(frozen=True, slots=True)
class NoteDeleted:
    note_id: str


RemoteEvent = Union[NoteInserted, NoteUpdated, NoteDeleted]


@runtime_checkable
class RemoteNoteStore(Protocol):
    """Durable note storage scoped by owner.

    Every call returns full persisted records, including the timestamps the
    store assigned, or raises ``RemoteStoreError`` (``NoteNotFound`` when the
    record does not exist for that owner).
    """

    async def create(self, owner_id: str, fields: Mapping[str, Any]) -> Note:
        ...

    async def read_all(self, owner_id: str) -> list[Note]:
        """All notes of ``owner_id``, newest first."""
        ...

    async def get(self, note_id: str, owner_id: str) -> Note | None:
        ...

    async def update(self, note_id: str, owner_id: str, changes: Mapping[str, Any]) -> Note:
        ...

    async def delete(self, note_id: str, owner_id: str) -> None:
        ...

    async def search(self, owner_id: str, query: str) -> list[Note]:
        """Case-insensitive substring match on title and content, newest first."""
        ...

    def subscribe(
        self,
        owner_id: str,
        on_insert: Callable[[Note], None],
        on_update: Callable[[Note], None],
        on_delete: Callable[[str], None],
    ) -> Unsubscribe:
        """Deliver changes to the owner's notes on the running event loop."""
        ...


class NoteSubscription:
    """Handle for an active push subscription; closing it is idempotent."""

    def __init__(self, unsubscribe: Unsubscribe) -> None:
        self._unsubscribe: Unsubscribe | None = unsubscribe

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def close(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def __enter__(self) -> "NoteSubscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = [
    "NoteDeleted",
    "NoteInserted",
    "NoteSubscription",
    "NoteUpdated",
    "RemoteEvent",
    "RemoteNoteStore",
    "Unsubscribe",
]
