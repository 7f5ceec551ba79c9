import pytest
from typer.testing import CliRunner

import eventhub.__main__ as cli
from eventhub.events import EventRecords

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda level: None)


def test_init_db(database_uri):
    result = runner.invoke(cli.app, ["init-db"])
    assert result.exit_code == 0
    assert "Database ready." in result.output


def test_init_db_without_uri(monkeypatch):
    monkeypatch.delenv("DATABASE_URI", raising=False)
    result = runner.invoke(cli.app, ["init-db"])
    assert result.exit_code == 1
    assert "DATABASE_URI" in result.output


def test_events_empty(database_uri):
    result = runner.invoke(cli.app, ["events"])
    assert result.exit_code == 0
    assert "No events." in result.output


def test_events_lists_newest_first(run_with_db, event_fields):
    async def seed(db):
        records = EventRecords(db)
        await records.create({**event_fields, "title": "Older", "date": "2025-01-02"})
        await records.create({**event_fields, "title": "Newer", "time": "18:30"})

    run_with_db(seed)
    result = runner.invoke(cli.app, ["events"])

    assert result.exit_code == 0
    lines = [line.strip() for line in result.output.strip().splitlines()]
    assert lines == ["2025-04-23 18:30  newer", "2025-01-02 09:00  older"]
