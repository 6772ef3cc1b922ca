"""DuckDB warehouse: emitted events plus server-side assignment state.

Two tables:
  events    one row per emitted experiment event, deduplicated on event_id
  ab_state  one row per session key, holding the serialized assignment state
"""

import json
from datetime import timezone
from pathlib import Path

import duckdb

from src.ab.storage import StorageError
from src.collector.schemas import Event

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    event_id   VARCHAR PRIMARY KEY,
    user_id    VARCHAR NOT NULL,
    event_type VARCHAR NOT NULL,
    timestamp  TIMESTAMP NOT NULL,
    properties JSON
);

CREATE TABLE IF NOT EXISTS ab_state (
    state_key VARCHAR PRIMARY KEY,
    payload   VARCHAR NOT NULL
);
"""


def get_connection(path: str = ":memory:") -> duckdb.DuckDBPyConnection:
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(path)


def init_db(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(SCHEMA)


def insert_events(conn: duckdb.DuckDBPyConnection, events: list[Event]) -> tuple[int, int]:
    """Insert events, skipping ids already present.

    Returns (inserted, duplicates_skipped).
    """
    if not events:
        return 0, 0

    rows = [
        (
            e.event_id,
            e.user_id,
            e.event_type.value,
            # Stored as naive UTC
            e.timestamp.astimezone(timezone.utc).replace(tzinfo=None),
            json.dumps(e.properties),
        )
        for e in events
    ]
    before = conn.execute("SELECT count(*) FROM events").fetchone()[0]
    conn.executemany("INSERT OR IGNORE INTO events VALUES (?, ?, ?, ?, ?)", rows)
    after = conn.execute("SELECT count(*) FROM events").fetchone()[0]

    inserted = after - before
    return inserted, len(events) - inserted


class DuckDBStorage:
    """Assignment state persisted in the ``ab_state`` table under one key.

    ``state_key`` is whatever identifies the session server-side, e.g. the
    value of a first-party cookie.
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection, state_key: str):
        self.conn = conn
        self.state_key = state_key

    def load(self) -> bytes | None:
        try:
            row = self.conn.execute(
                "SELECT payload FROM ab_state WHERE state_key = ?", [self.state_key]
            ).fetchone()
        except duckdb.Error as exc:
            raise StorageError(f"Cannot read state {self.state_key!r}: {exc}") from exc
        if row is None:
            return None
        return row[0].encode()

    def save(self, payload: bytes) -> None:
        try:
            self.conn.execute(
                "INSERT OR REPLACE INTO ab_state VALUES (?, ?)",
                [self.state_key, payload.decode()],
            )
        except duckdb.Error as exc:
            raise StorageError(f"Cannot write state {self.state_key!r}: {exc}") from exc
