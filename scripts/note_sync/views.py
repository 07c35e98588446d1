"""Read-side helpers that filter and order notes without touching engine state."""

from __future__ import annotations

import locale
from enum import Enum
from typing import Iterable

from .notes import Note


class SortKey(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    TITLE = "title"
    UPDATED = "updated"


def matches_query(note: Note, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    return (
        needle in note.title.lower()
        or needle in note.content.lower()
        or (note.summary is not None and needle in note.summary.lower())
    )


def filter_notes(notes: Iterable[Note], query: str) -> list[Note]:
    return [note for note in notes if matches_query(note, query)]


def sort_notes(notes: Iterable[Note], key: SortKey | str = SortKey.NEWEST) -> list[Note]:
    sort_key = SortKey(key)
    # newest first as the base order so ties resolve the same way every time
    ordered = sorted(notes, key=lambda note: (note.created_at, note.id), reverse=True)
    if sort_key is SortKey.NEWEST:
        return ordered
    if sort_key is SortKey.OLDEST:
        return ordered[::-1]
    if sort_key is SortKey.TITLE:
        return sorted(ordered, key=lambda note: locale.strxfrm(note.title.casefold()))
    return sorted(ordered, key=lambda note: note.updated_at, reverse=True)


def notes_view(notes: Iterable[Note], query: str = "", key: SortKey | str = SortKey.NEWEST) -> list[Note]:
    return sort_notes(filter_notes(notes, query), key)


__all__ = ["SortKey", "filter_notes", "matches_query", "notes_view", "sort_notes"]
