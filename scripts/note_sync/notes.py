"""Dataclasses and helpers for working with user notes."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence

from .errors import NoteValidationError

DocumentData = Mapping[str, Any]

MAX_TITLE_LENGTH = 200

CATEGORIES = (
    "Work",
    "Personal",
    "Learning",
    "Projects",
    "Ideas",
    "Meetings",
    "Tasks",
    "Shopping",
    "Travel",
    "Other",
)
DEFAULT_CATEGORY = "General"
FALLBACK_CATEGORY = "Other"
ALLOWED_CATEGORIES = frozenset(CATEGORIES) | {DEFAULT_CATEGORY}

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)
_WHITESPACE = re.compile(r"\s+")


class _Unset:
    """Marker for patch fields that should be left untouched."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _as_string_sequence(value: Any) -> list[str]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [str(item) for item in value]
    return []


def sanitize_tags(values: Iterable[str]) -> list[str]:
    """Trim tags and drop blanks and duplicates, keeping first-seen order."""

    seen: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        trimmed = value.strip()
        if trimmed and trimmed not in seen:
            seen.append(trimmed)
    return seen


def _coerce_datetime(value: Any, *, default: datetime = _EPOCH) -> datetime:
    """Best-effort conversion of Firestore timestamp fields to aware datetimes.

    Integers are treated as epoch milliseconds, matching what clients write
    when they cannot use server timestamps.
    """

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return default
        if trimmed.endswith("Z"):
            trimmed = trimmed[:-1] + "+00:00"
        try:
            return _coerce_datetime(datetime.fromisoformat(trimmed), default=default)
        except ValueError:
            return default
    return default


def _optional_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


@dataclass(frozen=True, slots=True)
class UserSession:
    """The signed-in user the engine is working for."""

    user_id: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class Note:
    id: str
    title: str
    content: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    summary: str | None = None
    category: str | None = None
    tags: tuple[str, ...] | None = None

    def to_map(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "summary": self.summary,
            "category": self.category,
            "tags": list(self.tags) if self.tags is not None else None,
            "ownerId": self.owner_id,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


def _validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise NoteValidationError("Note title is required")
    trimmed = title.strip()
    if len(trimmed) > MAX_TITLE_LENGTH:
        raise NoteValidationError(f"Note title cannot be longer than {MAX_TITLE_LENGTH} characters")
    return trimmed


def _validate_content(content: Any) -> str:
    if not isinstance(content, str) or not content.strip():
        raise NoteValidationError("Note content is required")
    return content.strip()


def _validate_category(category: Any) -> str | None:
    if category is None:
        return None
    if not isinstance(category, str):
        raise NoteValidationError("Note category must be a string")
    trimmed = category.strip()
    if not trimmed:
        return None
    if trimmed not in ALLOWED_CATEGORIES:
        raise NoteValidationError(f"Unknown note category: {trimmed}")
    return trimmed


def _validate_tags(tags: Any) -> list[str] | None:
    if tags is None:
        return None
    if isinstance(tags, (str, bytes, bytearray)) or not isinstance(tags, Iterable):
        raise NoteValidationError("Note tags must be a sequence of strings")
    cleaned = sanitize_tags(tags)
    return cleaned or None


@dataclass(frozen=True, slots=True)
class NoteDraft:
    title: str
    content: str
    summary: str | None = None
    category: str | None = None
    tags: Sequence[str] | None = None

    def validated(self) -> "NoteDraft":
        """Return a trimmed copy, raising ``NoteValidationError`` on bad input."""

        return NoteDraft(
            title=_validate_title(self.title),
            content=_validate_content(self.content),
            summary=_optional_string(self.summary),
            category=_validate_category(self.category),
            tags=_validate_tags(self.tags),
        )

    def to_map(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "summary": self.summary,
            "category": self.category,
            "tags": list(self.tags) if self.tags is not None else None,
        }


@dataclass(frozen=True, slots=True)
class NotePatch:
    """Partial update; fields left as ``UNSET`` are not sent to the store."""

    title: Any = UNSET
    content: Any = UNSET
    summary: Any = UNSET
    category: Any = UNSET
    tags: Any = UNSET

    def validated(self) -> "NotePatch":
        return NotePatch(
            title=UNSET if self.title is UNSET else _validate_title(self.title),
            content=UNSET if self.content is UNSET else _validate_content(self.content),
            summary=UNSET if self.summary is UNSET else _optional_string(self.summary),
            category=UNSET if self.category is UNSET else _validate_category(self.category),
            tags=UNSET if self.tags is UNSET else _validate_tags(self.tags),
        )

    def is_empty(self) -> bool:
        return not self.to_map()

    def to_map(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name in ("title", "content", "summary", "category", "tags"):
            value = getattr(self, name)
            if value is UNSET:
                continue
            if name == "tags" and value is not None:
                value = list(value)
            payload[name] = value
        return payload


def _document_payload(document: Any) -> tuple[str, DocumentData]:
    if hasattr(document, "to_dict"):
        data = document.to_dict() or {}
    elif isinstance(document, Mapping):
        data = dict(document)
    else:
        raise TypeError("Unsupported document type")

    if hasattr(document, "id"):
        doc_id = getattr(document, "id")
    else:
        doc_id = data.get("id")
    if doc_id is None or str(doc_id).strip() == "":
        raise ValueError("Document is missing an identifier")
    return str(doc_id), data


def parse_remote_note(document: Any) -> Note | None:
    """Build a ``Note`` from a Firestore snapshot or mapping.

    Returns ``None`` when the record is missing a title, content or owner.
    """

    doc_id, data = _document_payload(document)
    title = data.get("title")
    content = data.get("content")
    if not isinstance(title, str) or not title.strip():
        return None
    if not isinstance(content, str) or not content.strip():
        return None
    owner_id = str(data.get("ownerId", data.get("user_id", ""))).strip()
    if not owner_id:
        return None

    created_at = _coerce_datetime(data.get("createdAt", data.get("created_at")))
    updated_at = _coerce_datetime(data.get("updatedAt", data.get("updated_at")), default=created_at)
    if updated_at < created_at:
        updated_at = created_at

    category = _optional_string(data.get("category"))
    if category not in ALLOWED_CATEGORIES:
        category = None
    raw_tags = data.get("tags")
    tags = tuple(sanitize_tags(_as_string_sequence(raw_tags))) if raw_tags is not None else None

    return Note(
        id=doc_id,
        title=title.strip(),
        content=content,
        owner_id=owner_id,
        created_at=created_at,
        updated_at=updated_at,
        summary=data.get("summary") if isinstance(data.get("summary"), str) else None,
        category=category,
        tags=tags or None,
    )


def truncate_text(text: str, max_length: int = 150) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length].strip() + "..."


def count_words(text: str) -> int:
    return len([word for word in _WHITESPACE.split(text.strip()) if word])


def estimate_reading_minutes(text: str, words_per_minute: int = 200) -> int:
    words = count_words(text)
    return -(-words // words_per_minute) if words else 0


def is_recently_created(created_at: datetime, now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return now - created_at <= timedelta(hours=24)


def was_recently_edited(created_at: datetime, updated_at: datetime) -> bool:
    """Edits within a minute of creation do not count."""

    return updated_at - created_at > timedelta(minutes=1)


__all__ = [
    "ALLOWED_CATEGORIES",
    "CATEGORIES",
    "DEFAULT_CATEGORY",
    "FALLBACK_CATEGORY",
    "MAX_TITLE_LENGTH",
    "Note",
    "NoteDraft",
    "NotePatch",
    "UNSET",
    "UserSession",
    "count_words",
    "estimate_reading_minutes",
    "is_recently_created",
    "parse_remote_note",
    "sanitize_tags",
    "truncate_text",
    "was_recently_edited",
]
