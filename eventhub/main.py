"""eventhub HTTP API."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventhub import __version__
from eventhub.bookings import BookingRecords
from eventhub.config import image_store_settings
from eventhub.database import ConnectionCache, get_connection_cache
from eventhub.errors import ErrorCode, ValidationError, invalid_field
from eventhub.events import EventRecords, prepare_event
from eventhub.models import BookingCreate
from eventhub.uploads import ImageStore

log = logging.getLogger(__name__)

ImageStoreFactory = Callable[[], ImageStore]

LIST_FIELDS = ("agenda", "tags")

_STATUS_BY_CODE = {
    ErrorCode.EVENT_NOT_FOUND: 404,
    ErrorCode.DUPLICATE_SLUG: 409,
    ErrorCode.DUPLICATE_BOOKING: 409,
}

router = APIRouter()


def default_image_store() -> ImageStore:
    return ImageStore(image_store_settings())


def _cache(request: Request) -> ConnectionCache:
    return request.app.state.connection_cache


def _image_store(request: Request) -> ImageStore:
    state = request.app.state
    if state.image_store is None:
        state.image_store = state.image_store_factory()
    return state.image_store


def _dump(model: Any) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _error(status: int, message: str, exc: Exception | None = None) -> JSONResponse:
    content: dict[str, Any] = {"message": message}
    if exc is not None:
        content["error"] = str(exc) or type(exc).__name__
    return JSONResponse(content, status_code=status)


def _validation_error(message: str, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        {"message": message, "error": exc.message, "code": exc.code.value},
        status_code=_STATUS_BY_CODE.get(exc.code, 400),
    )


def _list_field(key: str, values: list[str]) -> list[str]:
    """Accept repeated form fields or a single JSON array string."""
    if len(values) == 1 and values[0].lstrip().startswith("["):
        try:
            parsed = json.loads(values[0])
        except json.JSONDecodeError:
            raise invalid_field(f"{key}: not a valid JSON array")
        if not isinstance(parsed, list):
            raise invalid_field(f"{key}: not a valid JSON array")
        return parsed
    return values


def form_fields(form: FormData) -> dict[str, Any]:
    """Collect event fields from a multipart form, skipping file parts."""
    fields: dict[str, Any] = {}
    for key in form.keys():
        values = [v for v in form.getlist(key) if isinstance(v, str)]
        if not values:
            continue
        if key in LIST_FIELDS:
            fields[key] = _list_field(key, values)
        else:
            fields[key] = values[-1]
    return fields


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.post("/api/events")
async def create_event(request: Request):
    """Create an event from a multipart form with an ``image`` file."""
    try:
        form = await request.form()
    except StarletteHTTPException as exc:
        return _error(400, "Invalid form data", exc)

    try:
        fields = form_fields(form)
        image = form.get("image")
        if not isinstance(image, UploadFile):
            return _error(400, "Image file is required")

        # Reject bad fields before anything reaches the image store.
        prepare_event({**fields, "image": image.filename or "upload"})

        db = await _cache(request).acquire()
        data = await image.read()
        fields["image"] = await _image_store(request).upload(
            data, image.filename or "upload", image.content_type
        )
        event = await EventRecords(db).create(fields)
    except ValidationError as exc:
        return _validation_error("Event creation failed", exc)
    except Exception as exc:
        log.exception("Event creation failed")
        return _error(500, "Event creation failed", exc)

    return {"message": "Event created successfully", "event": _dump(event)}


@router.get("/api/events")
async def list_events(request: Request):
    """List all events, newest first."""
    try:
        db = await _cache(request).acquire()
        events = [_dump(event) async for event in EventRecords(db).list()]
    except Exception as exc:
        log.exception("Event fetching failed")
        return _error(500, "Event fetching failed", exc)
    return {"message": "Events fetched successfully", "events": events}


@router.get("/api/events/{slug}")
async def get_event(request: Request, slug: str):
    """Get a single event by slug, with its booking count."""
    try:
        db = await _cache(request).acquire()
        event = await EventRecords(db).get_by_slug(slug)
        if event is None:
            return _error(404, "Event not found")
        bookings = await BookingRecords(db).count_for_event(event.id)
    except Exception as exc:
        log.exception("Event fetching failed")
        return _error(500, "Event fetching failed", exc)
    return {
        "message": "Event fetched successfully",
        "event": _dump(event),
        "bookings": bookings,
    }


@router.post("/api/bookings")
async def create_booking(request: Request, payload: BookingCreate):
    """Book an email address onto an event."""
    try:
        db = await _cache(request).acquire()
        booking = await BookingRecords(db).create(payload.event_id, payload.email)
    except ValidationError as exc:
        return _validation_error("Booking failed", exc)
    except Exception as exc:
        log.exception("Booking failed")
        return _error(500, "Booking failed", exc)
    return {"message": "Booking created successfully", "booking": _dump(booking)}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if app.state.image_store is not None:
        await app.state.image_store.aclose()
    await app.state.connection_cache.close()


def create_app(
    cache: ConnectionCache | None = None,
    image_store_factory: ImageStoreFactory | None = None,
) -> FastAPI:
    """Build the API around an explicit connection cache and image store."""
    app = FastAPI(title="eventhub", version=__version__, lifespan=lifespan)
    app.state.connection_cache = cache or get_connection_cache()
    app.state.image_store_factory = image_store_factory or default_image_store
    app.state.image_store = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()
