"""Integration tests for the HTTP API."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from eventhub.config import ImageStoreSettings
from eventhub.database import ConnectionCache
from eventhub.main import create_app
from eventhub.uploads import ImageStore

IMAGE = ("poster.png", b"\x89PNG\r\n\x1a\n", "image/png")


@pytest.fixture
def uploads():
    """Record upload requests and answer with a fake secure_url."""
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200, json={"secure_url": f"https://res.cloudinary.com/demo/{len(seen)}.png"}
        )

    return seen, handler


@pytest.fixture
def client(database_uri, uploads):
    _, handler = uploads

    def image_store():
        settings = ImageStoreSettings(cloud_name="demo", api_key="k", api_secret="s")
        return ImageStore(
            settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

    app = create_app(cache=ConnectionCache(), image_store_factory=image_store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def form(event_fields):
    data = dict(event_fields)
    del data["image"]
    return data


def create(client, form, **overrides):
    return client.post("/api/events", data={**form, **overrides}, files={"image": IMAGE})


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_create_event(client, form, uploads):
    resp = create(client, form)

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Event created successfully"
    event = body["event"]
    assert event["slug"] == "pycon-berlin-2025"
    assert event["image"] == "https://res.cloudinary.com/demo/1.png"
    assert event["agenda"] == ["Keynote", "Talks", "Sprints"]
    assert "createdAt" in event and "updatedAt" in event
    assert len(uploads[0]) == 1


def test_create_event_agenda_as_json(client, form):
    resp = create(client, form, agenda=json.dumps(["Opening", "Closing"]), tags="python")

    assert resp.status_code == 200
    assert resp.json()["event"]["agenda"] == ["Opening", "Closing"]
    assert resp.json()["event"]["tags"] == ["python"]


def test_create_event_without_image(client, form):
    resp = client.post("/api/events", data=form)

    assert resp.status_code == 400
    assert resp.json()["message"] == "Image file is required"


def test_create_event_malformed_form(client):
    body = (
        b"--wrongboundary\r\n"
        b"Content-Disposition: form-data; name=\"title\"\r\n\r\n"
        b"x\r\n--wrongboundary--\r\n"
    )

    resp = client.post(
        "/api/events",
        content=body,
        headers={"Content-Type": "multipart/form-data; boundary=expectedboundary"},
    )

    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid form data"


def test_create_event_invalid_date_skips_upload(client, form, uploads):
    resp = create(client, form, date="not-a-date")

    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_DATE"
    assert uploads[0] == []


def test_create_event_invalid_time(client, form):
    resp = create(client, form, time="25:00")

    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_TIME"


def test_create_event_duplicate_slug(client, form):
    assert create(client, form).status_code == 200
    resp = create(client, form, title="PyCon  Berlin 2025!")

    assert resp.status_code == 409
    assert resp.json()["code"] == "DUPLICATE_SLUG"


def test_create_event_upload_failure(database_uri, form):
    def image_store():
        settings = ImageStoreSettings(cloud_name="demo", api_key="k", api_secret="s")
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        return ImageStore(settings, client=httpx.AsyncClient(transport=transport))

    app = create_app(cache=ConnectionCache(), image_store_factory=image_store)
    with TestClient(app) as client:
        resp = create(client, form)

    assert resp.status_code == 500
    assert resp.json()["message"] == "Event creation failed"


def test_list_events_newest_first(client, form):
    create(client, form, title="Event A")
    create(client, form, title="Event B")

    resp = client.get("/api/events")

    assert resp.status_code == 200
    assert [e["slug"] for e in resp.json()["events"]] == ["event-b", "event-a"]


def test_list_events_without_database_uri(client, monkeypatch):
    monkeypatch.delenv("DATABASE_URI")

    resp = client.get("/api/events")

    assert resp.status_code == 500
    assert resp.json()["message"] == "Event fetching failed"
    assert "DATABASE_URI" in resp.json()["error"]


def test_get_event_by_slug(client, form):
    event = create(client, form).json()["event"]
    client.post("/api/bookings", json={"eventId": event["id"], "email": "ada@example.com"})

    resp = client.get(f"/api/events/{event['slug']}")

    assert resp.status_code == 200
    assert resp.json()["event"]["id"] == event["id"]
    assert resp.json()["bookings"] == 1


def test_get_event_not_found(client):
    resp = client.get("/api/events/no-such-event")
    assert resp.status_code == 404


def test_create_booking(client, form):
    event = create(client, form).json()["event"]

    resp = client.post(
        "/api/bookings", json={"eventId": event["id"], "email": " Ada@Example.com"}
    )

    assert resp.status_code == 200
    booking = resp.json()["booking"]
    assert booking["eventId"] == event["id"]
    assert booking["email"] == "ada@example.com"


def test_create_booking_duplicate(client, form):
    event = create(client, form).json()["event"]
    payload = {"eventId": event["id"], "email": "ada@example.com"}

    assert client.post("/api/bookings", json=payload).status_code == 200
    resp = client.post("/api/bookings", json=payload)

    assert resp.status_code == 409
    assert resp.json()["code"] == "DUPLICATE_BOOKING"


def test_create_booking_unknown_event(client):
    resp = client.post(
        "/api/bookings", json={"eventId": "f" * 32, "email": "ada@example.com"}
    )

    assert resp.status_code == 404
    assert resp.json()["code"] == "EVENT_NOT_FOUND"


def test_create_booking_invalid_email(client, form):
    event = create(client, form).json()["event"]

    resp = client.post("/api/bookings", json={"eventId": event["id"], "email": "nope"})

    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_EMAIL"
