from __future__ import annotations

import asyncio
import enum
import itertools
import threading
import unittest
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from google.api_core.exceptions import NotFound, ServiceUnavailable
from google.cloud import firestore as gcf

from scripts.note_sync.errors import NoteNotFound, RemoteStoreError
from scripts.note_sync.firebase import FirestoreNoteStore, changes_to_events
from scripts.note_sync.store import NoteDeleted, NoteInserted, NoteUpdated

SERVER_TIME = datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc)


class ChangeType(enum.Enum):
    ADDED = 1
    REMOVED = 2
    MODIFIED = 3


@dataclass
class DummySnapshot:
    doc_id: str
    data: dict[str, Any] | None

    @property
    def id(self) -> str:
        return self.doc_id

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any] | None:
        return dict(self.data) if self.data is not None else None


@dataclass
class DummyChange:
    type: ChangeType
    document: DummySnapshot


class FakeDocument:
    def __init__(self, collection: "FakeCollection", doc_id: str) -> None:
        self._collection = collection
        self.id = doc_id

    def _resolve(self, payload: dict[str, Any]) -> dict[str, Any]:
        return {key: SERVER_TIME if value is gcf.SERVER_TIMESTAMP else value for key, value in payload.items()}

    def get(self, retry: Any = None) -> DummySnapshot:
        if self._collection.unavailable:
            raise ServiceUnavailable("firestore down")
        return DummySnapshot(self.id, self._collection.docs.get(self.id))

    def set(self, payload: dict[str, Any]) -> None:
        self._collection.docs[self.id] = self._resolve(payload)

    def update(self, payload: dict[str, Any]) -> None:
        if self.id not in self._collection.docs:
            raise NotFound("no document")
        self._collection.docs[self.id].update(self._resolve(payload))

    def delete(self) -> None:
        self._collection.docs.pop(self.id, None)


class FakeWatch:
    def __init__(self, callback: Callable[..., None]) -> None:
        self.callback = callback
        self.unsubscribed = False

    def unsubscribe(self) -> None:
        self.unsubscribed = True


class FakeQuery:
    def __init__(self, collection: "FakeCollection", field: str, value: Any) -> None:
        self._collection = collection
        self._field = field
        self._value = value

    def order_by(self, field: str, direction: str | None = None) -> "FakeQuery":
        return self

    def stream(self, retry: Any = None) -> list[DummySnapshot]:
        if self._collection.unavailable:
            raise ServiceUnavailable("firestore down")
        matches = [
            DummySnapshot(doc_id, data)
            for doc_id, data in self._collection.docs.items()
            if data.get(self._field) == self._value
        ]
        return sorted(matches, key=lambda snapshot: snapshot.data.get("createdAt"), reverse=True)

    def on_snapshot(self, callback: Callable[..., None]) -> FakeWatch:
        watch = FakeWatch(callback)
        self._collection.watches.append(watch)
        return watch


class FakeCollection:
    def __init__(self) -> None:
        self.docs: dict[str, dict[str, Any]] = {}
        self.watches: list[FakeWatch] = []
        self.unavailable = False
        self._ids = itertools.count(1)

    def document(self, doc_id: str | None = None) -> FakeDocument:
        return FakeDocument(self, doc_id or f"auto-{next(self._ids)}")

    def where(self, *, filter: Any) -> FakeQuery:
        return FakeQuery(self, filter.field_path, filter.value)


class FakeClient:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def collection(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


def _stored(title: str, owner: str = "user-1", created: int = 1) -> dict[str, Any]:
    timestamp = datetime(2024, 1, created, tzinfo=timezone.utc)
    return {"title": title, "content": f"{title} body", "ownerId": owner, "createdAt": timestamp, "updatedAt": timestamp}


class ChangesToEventsTest(unittest.TestCase):
    def test_translates_change_kinds(self) -> None:
        events = changes_to_events(
            [
                DummyChange(ChangeType.ADDED, DummySnapshot("a", _stored("A"))),
                DummyChange(ChangeType.MODIFIED, DummySnapshot("b", _stored("B"))),
                DummyChange(ChangeType.REMOVED, DummySnapshot("c", None)),
            ]
        )
        self.assertIsInstance(events[0], NoteInserted)
        self.assertEqual(events[0].note.id, "a")
        self.assertIsInstance(events[1], NoteUpdated)
        self.assertEqual(events[2], NoteDeleted("c"))

    def test_skips_malformed_documents(self) -> None:
        with self.assertLogs("scripts.note_sync.firebase", level="WARNING"):
            events = changes_to_events([DummyChange(ChangeType.ADDED, DummySnapshot("bad", {"title": "No body"}))])
        self.assertEqual(events, [])


class FirestoreNoteStoreTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.client = FakeClient()
        self.collection = self.client.collection("notes")
        self.store = FirestoreNoteStore(self.client)

    async def test_create_reads_back_server_timestamps(self) -> None:
        note = await self.store.create("user-1", {"title": "T", "content": "C", "summary": None, "tags": ["x"]})
        self.assertEqual(note.id, "auto-1")
        self.assertEqual(note.owner_id, "user-1")
        self.assertEqual(note.created_at, SERVER_TIME)
        self.assertEqual(note.updated_at, SERVER_TIME)
        self.assertEqual(note.tags, ("x",))
        self.assertEqual(self.collection.docs["auto-1"]["ownerId"], "user-1")

    async def test_read_all_is_scoped_to_owner(self) -> None:
        self.collection.docs.update(
            {"a": _stored("A", created=1), "b": _stored("B", created=2), "z": _stored("Z", owner="other")}
        )
        notes = await self.store.read_all("user-1")
        self.assertEqual([note.id for note in notes], ["b", "a"])

    async def test_update_of_foreign_or_missing_note_is_not_found(self) -> None:
        self.collection.docs["z"] = _stored("Z", owner="other")
        with self.assertRaises(NoteNotFound):
            await self.store.update("z", "user-1", {"title": "Mine now"})
        with self.assertRaises(NoteNotFound):
            await self.store.delete("missing", "user-1")
        self.assertEqual(self.collection.docs["z"]["title"], "Z")

    async def test_update_protects_identity_fields(self) -> None:
        self.collection.docs["a"] = _stored("A")
        note = await self.store.update("a", "user-1", {"title": "A2", "ownerId": "thief"})
        self.assertEqual(note.title, "A2")
        self.assertEqual(note.owner_id, "user-1")
        self.assertEqual(note.updated_at, SERVER_TIME)

    async def test_get_and_delete(self) -> None:
        self.collection.docs["a"] = _stored("A")
        self.assertEqual((await self.store.get("a", "user-1")).title, "A")
        self.assertIsNone(await self.store.get("a", "other"))
        await self.store.delete("a", "user-1")
        self.assertNotIn("a", self.collection.docs)

    async def test_search_matches_title_and_content(self) -> None:
        self.collection.docs.update({"a": _stored("Groceries", created=1), "b": _stored("Travel", created=2)})
        results = await self.store.search("user-1", "GROC")
        self.assertEqual([note.id for note in results], ["a"])
        self.assertEqual(len(await self.store.search("user-1", "body")), 2)

    async def test_backend_errors_become_remote_store_errors(self) -> None:
        self.collection.unavailable = True
        with self.assertRaises(RemoteStoreError):
            await self.store.read_all("user-1")

    async def test_subscribe_delivers_on_event_loop(self) -> None:
        received: list[tuple[str, str]] = []
        loop_thread = threading.get_ident()
        threads: set[int] = set()

        def record(kind: str) -> Callable[[Any], None]:
            def callback(value: Any) -> None:
                threads.add(threading.get_ident())
                received.append((kind, value if isinstance(value, str) else value.id))

            return callback

        unsubscribe = self.store.subscribe("user-1", record("insert"), record("update"), record("delete"))
        watch = self.collection.watches[0]
        changes = [
            DummyChange(ChangeType.ADDED, DummySnapshot("a", _stored("A"))),
            DummyChange(ChangeType.REMOVED, DummySnapshot("b", None)),
        ]
        worker = threading.Thread(target=watch.callback, args=([], changes, None))
        worker.start()
        worker.join()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        self.assertEqual(received, [("insert", "a"), ("delete", "b")])
        self.assertEqual(threads, {loop_thread})

        unsubscribe()
        unsubscribe()
        self.assertTrue(watch.unsubscribed)
        watch.callback([], changes, None)
        await asyncio.sleep(0)
        self.assertEqual(len(received), 2)


if __name__ == "__main__":
    unittest.main()
