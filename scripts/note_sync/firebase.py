"""Firebase helpers and the Firestore-backed note store."""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, TypeVar

import firebase_admin
from firebase_admin import App, auth, credentials, firestore
from firebase_admin import exceptions as firebase_exceptions
from google.api_core.exceptions import GoogleAPIError, NotFound
from google.api_core.retry import Retry
from google.cloud import firestore as gcf
from google.cloud.firestore_v1.base_query import FieldFilter

from .errors import NoteNotFound, RemoteStoreError
from .notes import Note, UserSession, parse_remote_note
from .store import NoteDeleted, NoteInserted, NoteUpdated, RemoteEvent, Unsubscribe

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "notes"
T = TypeVar("T")


def _normalize_service_account(path: str | Path) -> Path:
    candidate = Path(path).expanduser()
    if not candidate.is_file():
        raise FileNotFoundError(f"Service account key not found: {candidate}")
    return candidate


def initialize_app(
    service_account: str | Path,
    project_id: str | None = None,
    *,
    app_name: str | None = None,
) -> App:
    """Initialise a Firebase Admin app if one has not already been created."""

    name = app_name or firebase_admin._DEFAULT_APP_NAME  # type: ignore[attr-defined]
    try:
        return firebase_admin.get_app(name)
    except ValueError:
        key_path = _normalize_service_account(service_account)
        cred = credentials.Certificate(key_path)
        options: Mapping[str, Any] | None = None
        if project_id:
            options = {"projectId": project_id}
        return firebase_admin.initialize_app(cred, options, name=name)


def initialize_firestore(
    service_account: str | Path,
    project_id: str | None = None,
    *,
    app_name: str | None = None,
) -> gcf.Client:
    """Create (or reuse) a Firestore client bound to the configured app."""

    app = initialize_app(service_account, project_id, app_name=app_name)
    return firestore.client(app=app)


def resolve_user(uid: str, app: App | None = None) -> UserSession:
    """Look up a Firebase Auth user and wrap it as the engine's session context."""

    try:
        record = auth.get_user(uid, app=app)
    except auth.UserNotFoundError as exc:
        raise RemoteStoreError(f"User '{uid}' not found") from exc
    except firebase_exceptions.FirebaseError as exc:
        raise RemoteStoreError(f"Failed to look up user '{uid}': {exc}") from exc
    return UserSession(user_id=record.uid, email=record.email)


def changes_to_events(changes: Iterable[Any]) -> list[RemoteEvent]:
    """Translate Firestore watch changes into remote note events.

    Documents that do not parse as notes are logged and skipped.
    """

    events: list[RemoteEvent] = []
    for change in changes:
        kind = getattr(change.type, "name", str(change.type))
        document = change.document
        if kind == "REMOVED":
            events.append(NoteDeleted(str(document.id)))
            continue
        try:
            note = parse_remote_note(document)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping remote change: %s", exc)
            continue
        if note is None:
            logger.warning("Skipping remote document %s: not a valid note", document.id)
            continue
        if kind == "ADDED":
            events.append(NoteInserted(note))
        elif kind == "MODIFIED":
            events.append(NoteUpdated(note))
        else:
            logger.warning("Skipping remote document %s: unknown change type %s", document.id, kind)
    return events


class FirestoreNoteStore:
    """Note records in a Firestore collection, one document per note.

    The SDK is blocking, so every call runs in a worker thread. Timestamps are
    server-assigned and read back after each write.
    """

    def __init__(
        self,
        client: gcf.Client,
        *,
        collection: str = DEFAULT_COLLECTION,
        retry: Retry | None = None,
    ) -> None:
        self._client = client
        self._collection_name = collection
        self._retry = retry or Retry(deadline=30.0)

    def _collection(self) -> gcf.CollectionReference:
        return self._client.collection(self._collection_name)

    def _owner_query(self, owner_id: str) -> gcf.Query:
        return (
            self._collection()
            .where(filter=FieldFilter("ownerId", "==", owner_id))
            .order_by("createdAt", direction=gcf.Query.DESCENDING)
        )

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except NotFound as exc:
            raise NoteNotFound(str(args[0]) if args else "") from exc
        except (GoogleAPIError, firebase_exceptions.FirebaseError) as exc:
            raise RemoteStoreError(str(exc)) from exc

    def _parse(self, snapshot: Any) -> Note:
        note = parse_remote_note(snapshot)
        if note is None:
            raise RemoteStoreError(f"Stored note '{snapshot.id}' is malformed")
        return note

    def _owned_snapshot(self, note_id: str, owner_id: str) -> Any | None:
        snapshot = self._collection().document(note_id).get(retry=self._retry)
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        if str(data.get("ownerId", "")) != owner_id:
            return None
        return snapshot

    def _stream(self, owner_id: str) -> list[Note]:
        notes: list[Note] = []
        for snapshot in self._owner_query(owner_id).stream(retry=self._retry):
            try:
                note = parse_remote_note(snapshot)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping remote document %s: %s", snapshot.id, exc)
                continue
            if note is None:
                logger.warning("Skipping remote document %s: not a valid note", snapshot.id)
                continue
            notes.append(note)
        return notes

    def _create(self, owner_id: str, fields: Mapping[str, Any]) -> Note:
        reference = self._collection().document()
        payload = dict(fields)
        payload.pop("id", None)
        payload["ownerId"] = owner_id
        payload["createdAt"] = gcf.SERVER_TIMESTAMP
        payload["updatedAt"] = gcf.SERVER_TIMESTAMP
        reference.set(payload)
        return self._parse(reference.get(retry=self._retry))

    def _get(self, note_id: str, owner_id: str) -> Note | None:
        snapshot = self._owned_snapshot(note_id, owner_id)
        return self._parse(snapshot) if snapshot is not None else None

    def _update(self, note_id: str, owner_id: str, changes: Mapping[str, Any]) -> Note:
        if self._owned_snapshot(note_id, owner_id) is None:
            raise NoteNotFound(note_id)
        payload = {key: value for key, value in changes.items() if key not in {"id", "ownerId", "createdAt"}}
        payload["updatedAt"] = gcf.SERVER_TIMESTAMP
        reference = self._collection().document(note_id)
        reference.update(payload)
        return self._parse(reference.get(retry=self._retry))

    def _delete(self, note_id: str, owner_id: str) -> None:
        if self._owned_snapshot(note_id, owner_id) is None:
            raise NoteNotFound(note_id)
        self._collection().document(note_id).delete()

    async def create(self, owner_id: str, fields: Mapping[str, Any]) -> Note:
        return await self._call(self._create, owner_id, fields)

    async def read_all(self, owner_id: str) -> list[Note]:
        return await self._call(self._stream, owner_id)

    async def get(self, note_id: str, owner_id: str) -> Note | None:
        return await self._call(self._get, note_id, owner_id)

    async def update(self, note_id: str, owner_id: str, changes: Mapping[str, Any]) -> Note:
        return await self._call(self._update, note_id, owner_id, changes)

    async def delete(self, note_id: str, owner_id: str) -> None:
        await self._call(self._delete, note_id, owner_id)

    async def search(self, owner_id: str, query: str) -> list[Note]:
        # Firestore has no substring index; match client side on the owner's notes
        notes = await self.read_all(owner_id)
        needle = query.strip().lower()
        return [note for note in notes if needle in note.title.lower() or needle in note.content.lower()]

    def subscribe(
        self,
        owner_id: str,
        on_insert: Callable[[Note], None],
        on_update: Callable[[Note], None],
        on_delete: Callable[[str], None],
    ) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        closed = threading.Event()

        def deliver(event: RemoteEvent) -> None:
            if closed.is_set():
                return
            if isinstance(event, NoteInserted):
                on_insert(event.note)
            elif isinstance(event, NoteUpdated):
                on_update(event.note)
            else:
                on_delete(event.note_id)

        def on_snapshot(_documents: Any, changes: Any, _read_time: Any) -> None:
            if closed.is_set() or loop.is_closed():
                return
            for event in changes_to_events(changes):
                loop.call_soon_threadsafe(deliver, event)

        watch = self._owner_query(owner_id).on_snapshot(on_snapshot)
        logger.debug("Subscribed to notes of %s", owner_id)

        def unsubscribe() -> None:
            if closed.is_set():
                return
            closed.set()
            watch.unsubscribe()
            logger.debug("Unsubscribed from notes of %s", owner_id)

        return unsubscribe


__all__ = [
    "DEFAULT_COLLECTION",
    "FirestoreNoteStore",
    "changes_to_events",
    "initialize_app",
    "initialize_firestore",
    "resolve_user",
]
