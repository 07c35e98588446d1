"""In-memory stand-ins for the remote note store and the summary model."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from scripts.note_sync.errors import ModelError, NoteNotFound, RemoteStoreError
from scripts.note_sync.model import SummaryPrompt
from scripts.note_sync.notes import Note

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_note(
    note_id: str,
    title: str = "Title",
    content: str = "Some content for the note.",
    *,
    owner_id: str = "user-1",
    minutes: int = 0,
    summary: str | None = None,
    category: str | None = None,
    tags: tuple[str, ...] | None = None,
    updated_minutes: int | None = None,
) -> Note:
    created_at = T0 + timedelta(minutes=minutes)
    updated_at = T0 + timedelta(minutes=updated_minutes if updated_minutes is not None else minutes)
    return Note(
        id=note_id,
        title=title,
        content=content,
        owner_id=owner_id,
        created_at=created_at,
        updated_at=updated_at,
        summary=summary,
        category=category,
        tags=tags,
    )


class FakeNoteStore:
    def __init__(self) -> None:
        self.records: dict[str, Note] = {}
        self.calls: list[str] = []
        self.failures: dict[str, RemoteStoreError] = {}
        self.failing_update_ids: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.subscribers: list[tuple[Callable, Callable, Callable]] = []
        self.unsubscribed = 0
        self._next_id = 1
        self._ticks = 0

    def seed(self, *notes: Note) -> None:
        for note in notes:
            self.records[note.id] = note

    def _now(self) -> datetime:
        self._ticks += 1
        return T0 + timedelta(hours=1, seconds=self._ticks)

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        gate = self.gates.get(operation)
        if gate is not None:
            await gate.wait()
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    async def create(self, owner_id: str, fields: Mapping[str, Any]) -> Note:
        await self._enter("create")
        note_id = str(self._next_id)
        self._next_id += 1
        now = self._now()
        tags = fields.get("tags")
        note = Note(
            id=note_id,
            title=fields["title"],
            content=fields["content"],
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            summary=fields.get("summary"),
            category=fields.get("category"),
            tags=tuple(tags) if tags is not None else None,
        )
        self.records[note_id] = note
        return note

    async def read_all(self, owner_id: str) -> list[Note]:
        await self._enter("read_all")
        notes = [note for note in self.records.values() if note.owner_id == owner_id]
        return sorted(notes, key=lambda note: note.created_at, reverse=True)

    async def get(self, note_id: str, owner_id: str) -> Note | None:
        await self._enter("get")
        note = self.records.get(note_id)
        if note is None or note.owner_id != owner_id:
            return None
        return note

    async def update(self, note_id: str, owner_id: str, changes: Mapping[str, Any]) -> Note:
        await self._enter("update")
        if note_id in self.failing_update_ids:
            raise RemoteStoreError(f"update of {note_id} rejected")
        note = self.records.get(note_id)
        if note is None or note.owner_id != owner_id:
            raise NoteNotFound(note_id)
        values = dict(changes)
        if "tags" in values and values["tags"] is not None:
            values["tags"] = tuple(values["tags"])
        updated = replace(note, **values, updated_at=self._now())
        self.records[note_id] = updated
        return updated

    async def delete(self, note_id: str, owner_id: str) -> None:
        await self._enter("delete")
        note = self.records.get(note_id)
        if note is None or note.owner_id != owner_id:
            raise NoteNotFound(note_id)
        del self.records[note_id]

    async def search(self, owner_id: str, query: str) -> list[Note]:
        await self._enter("search")
        needle = query.lower()
        notes = await self.read_all(owner_id)
        return [note for note in notes if needle in note.title.lower() or needle in note.content.lower()]

    def subscribe(self, owner_id, on_insert, on_update, on_delete):
        entry = (on_insert, on_update, on_delete)
        self.subscribers.append(entry)

        def unsubscribe() -> None:
            self.unsubscribed += 1
            if entry in self.subscribers:
                self.subscribers.remove(entry)

        return unsubscribe

    def push_insert(self, note: Note) -> None:
        for on_insert, _, _ in list(self.subscribers):
            on_insert(note)

    def push_update(self, note: Note) -> None:
        for _, on_update, _ in list(self.subscribers):
            on_update(note)

    def push_delete(self, note_id: str) -> None:
        for _, _, on_delete in list(self.subscribers):
            on_delete(note_id)


class FakeSummaryModel:
    def __init__(self, replies: list[str | Exception] | None = None, *, configured: bool = True) -> None:
        self.replies = list(replies or [])
        self.configured = configured
        self.prompts: list[SummaryPrompt] = []

    def is_configured(self) -> bool:
        return self.configured

    async def complete(self, prompt: SummaryPrompt) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise ModelError("no scripted reply")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply
