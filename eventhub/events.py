"""Event records: validation, derived fields and persistence."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Mapping

import aiosqlite
from pydantic import ValidationError as SchemaError

from eventhub.database import Database
from eventhub.errors import ErrorCode, ValidationError, event_not_found, invalid_field
from eventhub.models import Event, EventCreate

log = logging.getLogger(__name__)

_NON_SLUG_CHARS = re.compile(r"[^\w\s-]", re.ASCII)
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")
_TIME = re.compile(r"([01]?[0-9]|2[0-3]):([0-5][0-9])")

_DATE_FORMATS = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%m/%d/%Y",
    "%d %b %Y",
    "%d %B %Y",
)

_COLUMNS = (
    "id",
    "title",
    "slug",
    "description",
    "overview",
    "image",
    "venue",
    "location",
    "date",
    "time",
    "mode",
    "audience",
    "agenda",
    "organizer",
    "tags",
    "created_at",
    "updated_at",
)
_JSON_COLUMNS = ("agenda", "tags")

_INSERT = (
    f"INSERT INTO events ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)
_UPDATE = (
    "UPDATE events SET "
    + ", ".join(f"{col} = ?" for col in _COLUMNS if col not in ("id", "created_at"))
    + " WHERE id = ?"
)


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def slugify(title: str) -> str:
    """Turn a title into a lowercase, hyphenated, URL-safe slug."""
    slug = _NON_SLUG_CHARS.sub("", title.lower().strip())
    slug = _WHITESPACE.sub("-", slug)
    return _HYPHENS.sub("-", slug)


def normalize_date(value: str) -> str:
    """Parse a date string and return it as ``YYYY-MM-DD``."""
    text = value.strip()
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        raise ValidationError(ErrorCode.INVALID_DATE, f"Invalid date format: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def normalize_time(value: str) -> str:
    """Validate a 24-hour ``H:MM``/``HH:MM`` time and zero-pad the hour."""
    match = _TIME.fullmatch(value.strip())
    if match is None:
        raise ValidationError(ErrorCode.INVALID_TIME, "Time must be in HH:MM format")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def _describe(exc: SchemaError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    )


def _validate(fields: Mapping[str, Any]) -> dict[str, Any]:
    try:
        draft = EventCreate.model_validate(dict(fields))
    except SchemaError as exc:
        raise invalid_field(_describe(exc)) from exc
    return draft.model_dump(mode="json")


def _derive_slug(title: str) -> str:
    slug = slugify(title)
    if not slug:
        raise invalid_field("title: must contain at least one letter or digit")
    return slug


def prepare_event(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Validate submitted fields and compute slug, date and time."""
    values = _validate(fields)
    values["slug"] = _derive_slug(values["title"])
    values["date"] = normalize_date(values["date"])
    values["time"] = normalize_time(values["time"])
    return values


def _params(values: Mapping[str, Any], columns: tuple[str, ...]) -> list[Any]:
    params = []
    for col in columns:
        value = values[col]
        if col in _JSON_COLUMNS:
            value = json.dumps(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        params.append(value)
    return params


def row_to_event(row: aiosqlite.Row) -> Event:
    data = dict(row)
    for col in _JSON_COLUMNS:
        data[col] = json.loads(data[col])
    return Event.model_validate(data)


def _duplicate_slug(slug: str) -> ValidationError:
    return ValidationError(
        ErrorCode.DUPLICATE_SLUG, f"An event with slug {slug!r} already exists"
    )


class EventRecords:
    """Write and query operations on the events collection."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(self, fields: Mapping[str, Any]) -> Event:
        """Validate, derive and insert a new event.

        Raises:
            ValidationError: ``INVALID_FIELD``, ``INVALID_DATE``,
                ``INVALID_TIME`` or ``DUPLICATE_SLUG``.
        """
        values = prepare_event(fields)
        now = utcnow()
        values.update(id=new_id(), created_at=now, updated_at=now)
        try:
            async with self._db.transaction() as conn:
                await conn.execute(_INSERT, _params(values, _COLUMNS))
        except sqlite3.IntegrityError as exc:
            if "events.slug" not in str(exc):
                raise
            raise _duplicate_slug(values["slug"]) from exc
        log.info("Event created", extra={"event_id": values["id"], "slug": values["slug"]})
        return Event.model_validate(values)

    async def list(self) -> AsyncIterator[Event]:
        """Yield every event, newest first."""
        rows = self._db.iterate(
            "SELECT * FROM events ORDER BY created_at DESC, rowid DESC"
        )
        async for row in rows:
            yield row_to_event(row)

    async def get(self, event_id: str) -> Event | None:
        row = await self._db.fetchone("SELECT * FROM events WHERE id = ?", (event_id,))
        return row_to_event(row) if row else None

    async def get_by_slug(self, slug: str) -> Event | None:
        row = await self._db.fetchone(
            "SELECT * FROM events WHERE slug = ?", (slug.strip().lower(),)
        )
        return row_to_event(row) if row else None

    async def exists(self, event_id: str) -> bool:
        row = await self._db.fetchone("SELECT 1 FROM events WHERE id = ?", (event_id,))
        return row is not None

    async def update(self, event_id: str, changes: Mapping[str, Any]) -> Event:
        """Apply field changes to a stored event.

        Slug, date and time are recomputed only when title, date or time are
        among the changed fields.
        """
        changed = {k: v for k, v in changes.items() if k in EventCreate.model_fields}
        try:
            async with self._db.transaction() as conn:
                async with conn.execute(
                    "SELECT * FROM events WHERE id = ?", (event_id,)
                ) as cursor:
                    row = await cursor.fetchone()
                if row is None:
                    raise event_not_found()
                current = row_to_event(row)

                values = _validate({**current.model_dump(), **changed})
                values["slug"] = (
                    _derive_slug(values["title"]) if "title" in changed else current.slug
                )
                values["date"] = (
                    normalize_date(values["date"]) if "date" in changed else current.date
                )
                values["time"] = (
                    normalize_time(values["time"]) if "time" in changed else current.time
                )
                values.update(id=current.id, created_at=current.created_at, updated_at=utcnow())

                columns = tuple(c for c in _COLUMNS if c not in ("id", "created_at"))
                await conn.execute(_UPDATE, [*_params(values, columns), current.id])
        except sqlite3.IntegrityError as exc:
            if "events.slug" not in str(exc):
                raise
            raise _duplicate_slug(values["slug"]) from exc
        log.info("Event updated", extra={"event_id": event_id, "fields": sorted(changed)})
        return Event.model_validate(values)
