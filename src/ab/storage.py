"""Persistence port for per-visitor assignment state.

The engine only ever sees opaque bytes through ``load()`` / ``save()``, so
the same logic runs against browser-like local storage, a file, or a
server-side session table (see ``src.warehouse.db.DuckDBStorage``).

The payload holds two logical records: the visitor identity and the list
of (experiment_id, variant_id) pairs.
"""

import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ValidationError


class StorageError(Exception):
    """Backend unavailable, or the stored payload cannot be read."""


class StateStorage(Protocol):
    def load(self) -> bytes | None: ...

    def save(self, payload: bytes) -> None: ...


class PersistedState(BaseModel):
    visitor_id: str
    assignments: list[tuple[str, str]] = []


def encode_state(visitor_id: str, assignments: dict[str, str]) -> bytes:
    state = PersistedState(visitor_id=visitor_id, assignments=list(assignments.items()))
    return state.model_dump_json().encode()


def decode_state(payload: bytes) -> PersistedState:
    try:
        return PersistedState.model_validate_json(payload)
    except ValidationError as exc:
        raise StorageError(f"Corrupt assignment state: {exc.error_count()} error(s)") from exc


class MemoryStorage:
    """Keeps the payload in process memory. Survives engine re-creation, not restarts."""

    def __init__(self, payload: bytes | None = None):
        self.payload = payload

    def load(self) -> bytes | None:
        return self.payload

    def save(self, payload: bytes) -> None:
        self.payload = payload


class FileStorage:
    """Stores the payload as a JSON file. Writes are atomic (temp file + rename)."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Cannot read {self.path}: {exc}") from exc

    def save(self, payload: bytes) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(payload)
                os.replace(tmp, self.path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as exc:
            raise StorageError(f"Cannot write {self.path}: {exc}") from exc
