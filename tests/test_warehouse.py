"""Tests for the DuckDB warehouse and event sinks."""

import json
import logging
from datetime import datetime, timezone

import pytest

from src.collector.schemas import Event, EventType
from src.collector.sink import InMemorySink, LoggingSink, WarehouseSink
from src.warehouse.db import get_connection, init_db, insert_events


@pytest.fixture
def conn():
    conn = get_connection(":memory:")
    init_db(conn)
    yield conn
    conn.close()


def _event(event_id="e1", event_type=EventType.AB_TEST_ASSIGNED, **properties):
    return Event(
        event_id=event_id,
        user_id="v-123",
        event_type=event_type,
        timestamp=datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc),
        properties=properties or {"test_id": "cta_v1", "variant_id": "B"},
    )


class TestInsertEvents:
    def test_insert(self, conn):
        inserted, dupes = insert_events(conn, [_event("e1"), _event("e2")])
        assert (inserted, dupes) == (2, 0)

    def test_duplicates_skipped(self, conn):
        insert_events(conn, [_event("e1")])
        inserted, dupes = insert_events(conn, [_event("e1"), _event("e2"), _event("e2")])
        assert (inserted, dupes) == (1, 2)

    def test_empty(self, conn):
        assert insert_events(conn, []) == (0, 0)

    def test_row_contents(self, conn):
        insert_events(conn, [_event(event_type=EventType.AB_TEST_CONVERSION, value=2.5)])
        row = conn.execute(
            "SELECT user_id, event_type, timestamp, properties FROM events"
        ).fetchone()
        assert row[0] == "v-123"
        assert row[1] == "ab_test_conversion"
        assert row[2] == datetime(2025, 3, 1, 12, 0)
        assert json.loads(row[3]) == {"value": 2.5}

    def test_init_idempotent(self, conn):
        init_db(conn)
        insert_events(conn, [_event()])
        init_db(conn)
        assert conn.execute("SELECT count(*) FROM events").fetchone()[0] == 1


class TestSinks:
    def test_in_memory_filters(self):
        sink = InMemorySink()
        sink.emit(_event("a"))
        sink.emit(_event("b", EventType.AB_TEST_CONVERSION))
        assert [e.event_id for e in sink.of_type(EventType.AB_TEST_CONVERSION)] == ["b"]
        sink.clear()
        assert sink.events == []

    def test_logging_sink(self, caplog):
        with caplog.at_level(logging.INFO):
            LoggingSink().emit(_event())
        assert "ab_test_assigned" in caplog.text

    def test_warehouse_sink(self, conn):
        sink = WarehouseSink(conn)
        sink.emit(_event("a"))
        sink.emit(_event("a"))
        assert conn.execute("SELECT count(*) FROM events").fetchone()[0] == 1
