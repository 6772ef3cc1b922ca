"""Tests for assignment state persistence backends."""

import random

import pytest

from src.ab.engine import AssignmentEngine
from src.ab.experiment import DEFAULT_REGISTRY
from src.ab.storage import (
    FileStorage,
    MemoryStorage,
    StorageError,
    decode_state,
    encode_state,
)
from src.collector.sink import InMemorySink
from src.warehouse.db import DuckDBStorage, get_connection, init_db


@pytest.fixture
def conn():
    conn = get_connection(":memory:")
    init_db(conn)
    yield conn
    conn.close()


def _engine(storage, seed=0):
    return AssignmentEngine(DEFAULT_REGISTRY, storage, InMemorySink(), rng=random.Random(seed))


class TestStateEncoding:
    def test_preserves_mapping(self):
        state = decode_state(encode_state("v-1", {"a": "x", "b": "y"}))
        assert state.visitor_id == "v-1"
        assert dict(state.assignments) == {"a": "x", "b": "y"}

    @pytest.mark.parametrize("payload", [b"", b"null", b"[1, 2]", b'{"visitor_id": 3}'])
    def test_garbage_raises_storage_error(self, payload):
        with pytest.raises(StorageError, match="Corrupt"):
            decode_state(payload)


class TestMemoryStorage:
    def test_empty(self):
        assert MemoryStorage().load() is None

    def test_save_then_load(self):
        storage = MemoryStorage()
        storage.save(b"abc")
        assert storage.load() == b"abc"


class TestFileStorage:
    def test_missing_file_is_empty(self, tmp_path):
        assert FileStorage(tmp_path / "state.json").load() is None

    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "state.json"
        FileStorage(path).save(b"{}")
        assert path.read_bytes() == b"{}"
        assert list(path.parent.iterdir()) == [path]

    def test_unreadable_path_raises(self, tmp_path):
        # A directory where the file should be
        path = tmp_path / "state.json"
        path.mkdir()
        with pytest.raises(StorageError):
            FileStorage(path).load()

    def test_assignments_survive_restart(self, tmp_path):
        path = tmp_path / "state.json"
        first = _engine(FileStorage(path), seed=1)
        variant = first.get_variant("cta_button_v1").id

        second = _engine(FileStorage(path), seed=2)
        assert second.visitor_id == first.visitor_id
        assert second.list_current_assignments() == {"cta_button_v1": variant}


class TestDuckDBStorage:
    def test_empty_key(self, conn):
        assert DuckDBStorage(conn, "session-1").load() is None

    def test_overwrite(self, conn):
        storage = DuckDBStorage(conn, "session-1")
        storage.save(b'{"visitor_id": "a"}')
        storage.save(b'{"visitor_id": "b"}')
        assert storage.load() == b'{"visitor_id": "b"}'
        assert conn.execute("SELECT count(*) FROM ab_state").fetchone()[0] == 1

    def test_keys_isolated(self, conn):
        DuckDBStorage(conn, "s1").save(b"one")
        DuckDBStorage(conn, "s2").save(b"two")
        assert DuckDBStorage(conn, "s1").load() == b"one"
        assert DuckDBStorage(conn, "s2").load() == b"two"

    def test_missing_table_raises(self):
        conn = get_connection(":memory:")
        with pytest.raises(StorageError):
            DuckDBStorage(conn, "s1").load()
        with pytest.raises(StorageError):
            DuckDBStorage(conn, "s1").save(b"x")
        conn.close()

    def test_engine_sessions_share_state(self, conn):
        first = _engine(DuckDBStorage(conn, "cookie-abc"), seed=1)
        variant = first.get_variant("cta_button_v1").id

        second = _engine(DuckDBStorage(conn, "cookie-abc"), seed=2)
        assert second.get_variant("cta_button_v1").id == variant
        assert second.visitor_id == first.visitor_id

    def test_engine_degrades_without_table(self):
        conn = get_connection(":memory:")
        engine = _engine(DuckDBStorage(conn, "cookie-abc"))
        assert engine.get_variant("cta_button_v1") is not None
        assert not engine.is_persistent
        conn.close()
