"""Booking records.

A booking references an event by id. The store does not enforce that
reference, so :meth:`BookingRecords.create` checks it inside the same write
transaction as the insert. Nothing in this package deletes events, so the
window between check and write cannot currently be hit.
"""

from __future__ import annotations

import logging
import re
import sqlite3

import aiosqlite

from eventhub.database import Database
from eventhub.errors import ErrorCode, ValidationError, event_not_found
from eventhub.events import new_id, utcnow
from eventhub.models import Booking

log = logging.getLogger(__name__)

_EMAIL = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def normalize_email(value: str) -> str:
    """Trim and lowercase an address, rejecting anything not ``local@domain.tld``."""
    email = value.strip().lower()
    if not _EMAIL.fullmatch(email):
        raise ValidationError(
            ErrorCode.INVALID_EMAIL, "Please provide a valid email address"
        )
    return email


def _row_to_booking(row: aiosqlite.Row) -> Booking:
    return Booking.model_validate(dict(row))


class BookingRecords:
    """Write and query operations on the bookings collection."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(self, event_id: str, email: str) -> Booking:
        """Book *email* onto the event *event_id*.

        Raises:
            ValidationError: ``EVENT_NOT_FOUND`` when the event does not exist
                (whatever the email), ``INVALID_EMAIL``, or
                ``DUPLICATE_BOOKING`` when the address already booked it.
        """
        now = utcnow()
        booking_id = new_id()
        try:
            async with self._db.transaction() as conn:
                async with conn.execute(
                    "SELECT 1 FROM events WHERE id = ?", (event_id,)
                ) as cursor:
                    if await cursor.fetchone() is None:
                        raise event_not_found()
                email = normalize_email(email)
                await conn.execute(
                    "INSERT INTO bookings (id, event_id, email, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (booking_id, event_id, email, now.isoformat(), now.isoformat()),
                )
        except sqlite3.IntegrityError as exc:
            if "bookings.event_id" not in str(exc):
                raise
            raise ValidationError(
                ErrorCode.DUPLICATE_BOOKING,
                "This email has already booked this event",
            ) from exc
        log.info("Booking created", extra={"booking_id": booking_id, "event_id": event_id})
        return Booking(
            id=booking_id,
            event_id=event_id,
            email=email,
            created_at=now,
            updated_at=now,
        )

    async def list_for_event(self, event_id: str) -> list[Booking]:
        rows = await self._db.fetchall(
            "SELECT * FROM bookings WHERE event_id = ? ORDER BY created_at, rowid",
            (event_id,),
        )
        return [_row_to_booking(row) for row in rows]

    async def count_for_event(self, event_id: str) -> int:
        row = await self._db.fetchone(
            "SELECT COUNT(*) FROM bookings WHERE event_id = ?", (event_id,)
        )
        return row[0]
