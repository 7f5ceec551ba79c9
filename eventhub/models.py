"""Shared Pydantic models for events and bookings."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EventMode(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    HYBRID = "hybrid"


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class EventCreate(_Schema):
    """Event fields as submitted, before derivation and normalization."""

    model_config = ConfigDict(str_min_length=1, extra="ignore")

    title: str
    description: str
    overview: str
    image: str
    venue: str
    location: str
    date: str
    time: str
    mode: EventMode
    audience: str
    agenda: list[str] = Field(min_length=1)
    organizer: str
    tags: list[str] = Field(min_length=1)


class Event(EventCreate):
    """A stored event, including derived and system-managed fields."""

    id: str
    slug: str
    created_at: datetime
    updated_at: datetime


class BookingCreate(_Schema):
    event_id: str
    email: str


class Booking(BookingCreate):
    id: str
    created_at: datetime
    updated_at: datetime
