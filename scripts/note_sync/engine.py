"""In-memory view of a user's notes kept in step with the remote store."""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator, Callable, Mapping

from .errors import NoteNotFound, NoteValidationError, RemoteStoreError
from .heuristics import HeuristicSummarizer
from .notes import Note, NoteDraft, NotePatch, UserSession
from .state import (
    NO_SELECTION,
    ErrorCleared,
    LoadStarted,
    LoadSucceeded,
    NoteCreated,
    NoteRemoved,
    NoteUpserted,
    Operation,
    OperationFailed,
    OperationSucceeded,
    Selection,
    SelectionChanged,
    SelectionMode,
    SessionReset,
    SyncAction,
    SyncState,
    reduce,
)
from .store import (
    NoteDeleted,
    NoteInserted,
    NoteSubscription,
    NoteUpdated,
    RemoteEvent,
    RemoteNoteStore,
)
from .views import SortKey, notes_view

logger = logging.getLogger(__name__)

StateListener = Callable[[SyncState], None]


class NoteSyncEngine:
    """Owns the session's note collection and serializes every change to it.

    Remote calls are the only suspension points. Their results, like push
    events from ``subscribe``, are applied through ``reduce`` in the order
    they arrive. Remote failures are recorded in ``state.last_error`` rather
    than raised; invalid drafts and patches raise ``NoteValidationError``
    before the store is called.
    """

    def __init__(self, store: RemoteNoteStore, session: UserSession) -> None:
        self._store = store
        self._session = session
        self._state = SyncState()
        self._listeners: list[StateListener] = []
        self._subscriptions: list[NoteSubscription] = []
        # bumped when the session ends so late responses are dropped
        self._generation = 0

    @property
    def session(self) -> UserSession:
        return self._session

    @property
    def state(self) -> SyncState:
        return self._state

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _dispatch(self, action: SyncAction) -> SyncState:
        previous = self._state
        self._state = reduce(previous, action)
        if self._state is not previous:
            for listener in list(self._listeners):
                listener(self._state)
        return self._state

    def _fail(self, operation: Operation, exc: Exception) -> None:
        logger.warning("Note %s failed: %s", operation.value, exc)
        self._dispatch(OperationFailed(operation, str(exc)))

    async def load(self) -> bool:
        generation = self._generation
        self._dispatch(LoadStarted())
        try:
            notes = await self._store.read_all(self._session.user_id)
        except RemoteStoreError as exc:
            if generation == self._generation:
                self._fail(Operation.LOAD, exc)
            return False
        if generation != self._generation:
            return False
        self._dispatch(LoadSucceeded(tuple(notes)))
        logger.debug("Loaded %d notes for %s", len(notes), self._session.user_id)
        return True

    async def create(self, draft: NoteDraft | Mapping[str, object]) -> Note | None:
        if not isinstance(draft, NoteDraft):
            try:
                draft = NoteDraft(**draft)  # type: ignore[arg-type]
            except TypeError as exc:
                raise NoteValidationError(f"Invalid note fields: {exc}") from exc
        draft = draft.validated()
        fields = draft.to_map()
        if not fields["summary"]:
            fields["summary"] = HeuristicSummarizer.generate(draft.content)

        generation = self._generation
        try:
            note = await self._store.create(self._session.user_id, fields)
        except RemoteStoreError as exc:
            if generation == self._generation:
                self._fail(Operation.CREATE, exc)
            return None
        if generation != self._generation:
            return None
        self._dispatch(NoteCreated(note))
        return note

    async def update(self, note_id: str, patch: NotePatch | Mapping[str, object]) -> Note | None:
        if not isinstance(patch, NotePatch):
            try:
                patch = NotePatch(**patch)  # type: ignore[arg-type]
            except TypeError as exc:
                raise NoteValidationError(f"Invalid note fields: {exc}") from exc
        patch = patch.validated()
        if patch.is_empty():
            raise NoteValidationError("Nothing to update")

        generation = self._generation
        try:
            note = await self._store.update(note_id, self._session.user_id, patch.to_map())
        except NoteNotFound:
            if generation == self._generation:
                logger.info("Note %s no longer exists upstream; dropping it", note_id)
                self._dispatch(NoteRemoved(note_id, Operation.UPDATE))
            return None
        except RemoteStoreError as exc:
            if generation == self._generation:
                self._fail(Operation.UPDATE, exc)
            return None
        if generation != self._generation:
            return None
        self._dispatch(NoteUpserted(note, Operation.UPDATE))
        return self._state.notes.get(note.id)

    async def delete(self, note_id: str) -> bool:
        generation = self._generation
        try:
            await self._store.delete(note_id, self._session.user_id)
        except NoteNotFound:
            logger.info("Note %s was already deleted", note_id)
        except RemoteStoreError as exc:
            if generation == self._generation:
                self._fail(Operation.DELETE, exc)
            return False
        if generation != self._generation:
            return False
        self._dispatch(NoteRemoved(note_id, Operation.DELETE))
        return True

    async def reload(self, note_id: str) -> Note | None:
        """Re-read one note; a note missing upstream is removed locally."""

        generation = self._generation
        try:
            note = await self._store.get(note_id, self._session.user_id)
        except RemoteStoreError as exc:
            if generation == self._generation:
                self._fail(Operation.RELOAD, exc)
            return None
        if generation != self._generation:
            return None
        if note is None:
            self._dispatch(NoteRemoved(note_id, Operation.RELOAD))
            return None
        self._dispatch(NoteUpserted(note, Operation.RELOAD))
        return self._state.notes.get(note.id)

    async def search(self, query: str) -> list[Note]:
        if not query.strip():
            return self._state.ordered_notes()
        generation = self._generation
        try:
            results = await self._store.search(self._session.user_id, query.strip())
        except RemoteStoreError as exc:
            if generation == self._generation:
                self._fail(Operation.SEARCH, exc)
            return []
        if generation != self._generation:
            return []
        self._dispatch(OperationSucceeded(Operation.SEARCH))
        return list(results)

    def apply_remote_event(self, event: RemoteEvent) -> SyncState:
        if isinstance(event, (NoteInserted, NoteUpdated)):
            logger.debug("Remote %s for note %s", type(event).__name__, event.note.id)
            return self._dispatch(NoteUpserted(event.note))
        if isinstance(event, NoteDeleted):
            logger.debug("Remote delete for note %s", event.note_id)
            return self._dispatch(NoteRemoved(event.note_id))
        raise TypeError(f"Unsupported remote event: {event!r}")

    def subscribe(self) -> NoteSubscription:
        """Start receiving push events; must be called from the running loop."""

        unsubscribe = self._store.subscribe(
            self._session.user_id,
            lambda note: self.apply_remote_event(NoteInserted(note)),
            lambda note: self.apply_remote_event(NoteUpdated(note)),
            lambda note_id: self.apply_remote_event(NoteDeleted(note_id)),
        )
        subscription = NoteSubscription(unsubscribe)
        self._subscriptions.append(subscription)
        return subscription

    @contextlib.asynccontextmanager
    async def live_updates(self) -> AsyncIterator[NoteSubscription]:
        subscription = self.subscribe()
        try:
            yield subscription
        finally:
            subscription.close()
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def select_for_create(self) -> None:
        self._dispatch(SelectionChanged(Selection(SelectionMode.CREATING)))

    def select_for_edit(self, note_id: str) -> None:
        if note_id not in self._state.notes:
            raise KeyError(note_id)
        self._dispatch(SelectionChanged(Selection(SelectionMode.EDITING, note_id)))

    def clear_selection(self) -> None:
        self._dispatch(SelectionChanged(NO_SELECTION))

    def clear_error(self) -> None:
        self._dispatch(ErrorCleared())

    def view(self, query: str = "", sort: SortKey | str = SortKey.NEWEST) -> list[Note]:
        return notes_view(self._state.notes.values(), query, sort)

    def on_session_end(self) -> None:
        """Drop all session state and stop push delivery."""

        self._generation += 1
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.close()
        self._dispatch(SessionReset())


__all__ = ["NoteSyncEngine", "StateListener"]
