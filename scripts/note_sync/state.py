"""Session state for the note sync engine and the pure transition function over it.

Every change to ``SyncState`` is expressed as one of the action dataclasses
below and applied by ``reduce``. Local operation results and remote push
events both end up here, so a note reaches the same state whichever path
delivered it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from .notes import Note


class SyncStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class SelectionMode(Enum):
    NONE = "none"
    CREATING = "creating"
    EDITING = "editing"


class Operation(Enum):
    LOAD = "load"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SEARCH = "search"
    RELOAD = "reload"


@dataclass(frozen=True, slots=True)
class Selection:
    mode: SelectionMode = SelectionMode.NONE
    note_id: str | None = None

    @property
    def creating(self) -> bool:
        return self.mode is SelectionMode.CREATING

    @property
    def editing_id(self) -> str | None:
        return self.note_id if self.mode is SelectionMode.EDITING else None


NO_SELECTION = Selection()


def _frozen(notes: Mapping[str, Note]) -> Mapping[str, Note]:
    return MappingProxyType(dict(notes))


@dataclass(frozen=True, slots=True)
class SyncState:
    notes: Mapping[str, Note] = field(default_factory=lambda: MappingProxyType({}))
    status: SyncStatus = SyncStatus.IDLE
    selection: Selection = NO_SELECTION
    last_error: str | None = None
    error_operation: Operation | None = None
    # ids observed as deleted during this session; they are never re-inserted
    deleted_ids: frozenset[str] = frozenset()

    @property
    def is_creating(self) -> bool:
        return self.selection.creating

    @property
    def editing_id(self) -> str | None:
        return self.selection.editing_id

    def ordered_notes(self) -> list[Note]:
        return sorted(self.notes.values(), key=lambda note: note.created_at, reverse=True)


@dataclass(frozen=True, slots=True)
class LoadStarted:
    pass


@dataclass(frozen=True, slots=True)
class LoadSucceeded:
    notes: tuple[Note, ...]


@dataclass(frozen=True, slots=True)
class OperationFailed:
    operation: Operation
    message: str


@dataclass(frozen=True, slots=True)
class OperationSucceeded:
    operation: Operation


@dataclass(frozen=True, slots=True)
class NoteCreated:
    note: Note


@dataclass(frozen=True, slots=True)
class NoteUpserted:
    note: Note
    operation: Operation | None = None


@dataclass(frozen=True, slots=True)
class NoteRemoved:
    note_id: str
    operation: Operation | None = None


@dataclass(frozen=True, slots=True)
class SelectionChanged:
    selection: Selection


@dataclass(frozen=True, slots=True)
class ErrorCleared:
    pass


@dataclass(frozen=True, slots=True)
class SessionReset:
    pass


SyncAction = Union[
    LoadStarted,
    LoadSucceeded,
    OperationFailed,
    OperationSucceeded,
    NoteCreated,
    NoteUpserted,
    NoteRemoved,
    SelectionChanged,
    ErrorCleared,
    SessionReset,
]


def _upsert(state: SyncState, note: Note) -> SyncState:
    if note.id in state.deleted_ids:
        return state
    if note.id in state.notes:
        notes = dict(state.notes)
        notes[note.id] = note
    else:
        notes = {note.id: note}
        notes.update(state.notes)
    return replace(state, notes=_frozen(notes))


def _remove(state: SyncState, note_id: str) -> SyncState:
    notes = {key: value for key, value in state.notes.items() if key != note_id}
    selection = state.selection
    if selection.editing_id == note_id:
        selection = NO_SELECTION
    return replace(
        state,
        notes=_frozen(notes),
        selection=selection,
        deleted_ids=state.deleted_ids | {note_id},
    )


def _succeeded(state: SyncState, operation: Operation | None) -> SyncState:
    """Clear the recorded error if this operation is the one that produced it."""

    if operation is None or state.error_operation is not operation:
        return state
    status = SyncStatus.READY if state.status is SyncStatus.ERROR else state.status
    return replace(state, status=status, last_error=None, error_operation=None)


def reduce(state: SyncState, action: SyncAction) -> SyncState:
    if isinstance(action, LoadStarted):
        return replace(state, status=SyncStatus.LOADING)
    if isinstance(action, LoadSucceeded):
        notes = {note.id: note for note in action.notes if note.id not in state.deleted_ids}
        loaded = replace(state, notes=_frozen(notes), status=SyncStatus.READY)
        return _succeeded(loaded, Operation.LOAD)
    if isinstance(action, OperationFailed):
        return replace(
            state,
            status=SyncStatus.ERROR,
            last_error=action.message,
            error_operation=action.operation,
        )
    if isinstance(action, OperationSucceeded):
        return _succeeded(state, action.operation)
    if isinstance(action, NoteCreated):
        created = _upsert(state, action.note)
        if created.selection.creating:
            created = replace(created, selection=NO_SELECTION)
        return _succeeded(created, Operation.CREATE)
    if isinstance(action, NoteUpserted):
        return _succeeded(_upsert(state, action.note), action.operation)
    if isinstance(action, NoteRemoved):
        if action.note_id not in state.notes and action.note_id in state.deleted_ids:
            return _succeeded(state, action.operation)
        return _succeeded(_remove(state, action.note_id), action.operation)
    if isinstance(action, SelectionChanged):
        return replace(state, selection=action.selection)
    if isinstance(action, ErrorCleared):
        status = SyncStatus.READY if state.status is SyncStatus.ERROR else state.status
        return replace(state, status=status, last_error=None, error_operation=None)
    if isinstance(action, SessionReset):
        return SyncState()
    raise TypeError(f"Unsupported action: {action!r}")


__all__ = [
    "ErrorCleared",
    "LoadStarted",
    "LoadSucceeded",
    "NO_SELECTION",
    "NoteCreated",
    "NoteRemoved",
    "NoteUpserted",
    "Operation",
    "OperationFailed",
    "OperationSucceeded",
    "Selection",
    "SelectionChanged",
    "SelectionMode",
    "SessionReset",
    "SyncAction",
    "SyncState",
    "SyncStatus",
    "reduce",
]
