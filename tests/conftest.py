"""Pytest configuration and shared fixtures."""

import asyncio

import pytest

from eventhub.database import ConnectionCache


@pytest.fixture
def database_uri(tmp_path, monkeypatch):
    """Point DATABASE_URI at a fresh SQLite file."""
    uri = str(tmp_path / "events.db")
    monkeypatch.setenv("DATABASE_URI", uri)
    return uri


@pytest.fixture
def run_with_db(database_uri):
    """Run ``scenario(db)`` on a freshly connected store and return its result."""

    def runner(scenario):
        async def main():
            cache = ConnectionCache()
            db = await cache.acquire()
            try:
                return await scenario(db)
            finally:
                await cache.close()

        return asyncio.run(main())

    return runner


@pytest.fixture
def event_fields():
    """Valid event fields as a client would submit them."""
    return {
        "title": "PyCon Berlin 2025",
        "description": "Three days of talks on Python.",
        "overview": "Talks, sprints and workshops.",
        "image": "https://res.cloudinary.com/demo/image/upload/pycon.png",
        "venue": "bcc Berlin",
        "location": "Berlin, Germany",
        "date": "2025-04-23",
        "time": "09:00",
        "mode": "hybrid",
        "audience": "Developers",
        "agenda": ["Keynote", "Talks", "Sprints"],
        "organizer": "Python Software Verband",
        "tags": ["python", "conference"],
    }
