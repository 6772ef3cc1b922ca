"""Per-visitor assignment engine.

One engine instance is built per browser context / session and passed to
whatever needs experiment variants. It owns the visitor's assignment
mapping exclusively:

  get_variant(exp) -> stored variant, or gate + weighted draw + persist + emit
  track_conversion(exp, type) -> conversion event tagged with stored variant

Storage and sink failures never reach the caller. If state cannot be
loaded or saved, the engine logs it and keeps working in memory only for
the rest of the session.
"""

import logging
import random
import string
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from src.ab.assignment import in_traffic, select_variant, traffic_gate_value
from src.ab.experiment import ExperimentDefinition, ExperimentRegistry, VariantDefinition
from src.ab.storage import StateStorage, StorageError, decode_state, encode_state
from src.collector.schemas import Event, EventSink, EventType

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_visitor_id() -> str:
    """Anonymous id of the form ``user_<epoch ms>_<9 base-36 chars>``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


def new_event_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentEngine:
    def __init__(
        self,
        registry: ExperimentRegistry,
        storage: StateStorage,
        sink: EventSink,
        *,
        rng: random.Random | None = None,
        identity_factory: Callable[[], str] = new_visitor_id,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_event_id,
    ):
        self.registry = registry
        self.storage = storage
        self.sink = sink
        # Variant draws only; the traffic gate never touches this
        self._rng = rng or random.Random()
        self._identity_factory = identity_factory
        self._clock = clock
        self._id_factory = id_factory

        self._lock = threading.RLock()
        # Assignment events wait here until the record is saved
        self._pending: list[tuple[datetime, dict]] = []
        self._initialized = False
        self._persistent = True
        self._visitor_id = ""
        self._assignments: dict[str, str] = {}

    # --- Lifecycle ---

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        try:
            payload = self.storage.load()
            state = decode_state(payload) if payload is not None else None
        except StorageError as exc:
            logger.warning("Assignment state unavailable, running in memory only: %s", exc)
            self._persistent = False
            state = None

        if state is not None:
            self._visitor_id = state.visitor_id
            self._assignments = dict(state.assignments)
        else:
            self._visitor_id = self._identity_factory()
            self._assignments = {}
            self._save()
        self._initialized = True

    def _save(self) -> None:
        if not self._persistent:
            return
        try:
            self.storage.save(encode_state(self._visitor_id, self._assignments))
        except StorageError as exc:
            logger.warning("Failed to save assignment state, running in memory only: %s", exc)
            self._persistent = False

    @property
    def visitor_id(self) -> str:
        with self._lock:
            self._ensure_initialized()
            return self._visitor_id

    @property
    def is_persistent(self) -> bool:
        with self._lock:
            self._ensure_initialized()
            return self._persistent

    # --- Operations ---

    def get_variant(self, experiment_id: str) -> VariantDefinition | None:
        """Return the visitor's variant for an experiment, assigning on first call.

        None means "not assigned": unknown or inactive experiment, visitor
        outside the traffic allocation, or a stored variant id that the
        current registry no longer defines.
        """
        with self._lock:
            self._ensure_initialized()

            if experiment_id in self._assignments:
                return self._stored_variant(experiment_id)

            experiment = self.registry.find(experiment_id)
            if experiment is None or not experiment.is_active:
                return None

            variant = self._assign(experiment)
            if variant is not None:
                self._save()
                self._flush_assigned()
            return variant

    def track_conversion(
        self, experiment_id: str, conversion_type: str, value: float | None = None,
    ) -> None:
        with self._lock:
            variant = self._stored_variant(experiment_id)
            if variant is None:
                return

            properties = {
                "test_id": experiment_id,
                "variant_id": variant.id,
                "variant_name": variant.name,
                "conversion_type": conversion_type,
            }
            if value is not None:
                properties["value"] = value
            now = self._clock()
            properties["timestamp"] = int(now.timestamp() * 1000)
            logger.debug("Conversion %s for %s/%s", conversion_type, experiment_id, variant.id)
            self._emit(EventType.AB_TEST_CONVERSION, now, properties)

    def reset_all(self) -> None:
        """Drop every stored assignment and re-assign all active experiments.

        The visitor identity is kept, so traffic gates come out the same;
        only the variant draws are redone.
        """
        with self._lock:
            self._ensure_initialized()
            self._assignments.clear()
            for experiment in self.registry.list_active():
                self._assign(experiment)
            self._save()
            self._flush_assigned()

    def list_current_assignments(self) -> dict[str, str]:
        with self._lock:
            self._ensure_initialized()
            return dict(self._assignments)

    def get_config(self, experiment_id: str, default: dict | None = None) -> dict | None:
        variant = self.get_variant(experiment_id)
        if variant is None:
            return default
        # Copy: the registry's payload is shared by every visitor
        return dict(variant.config)

    def bind(self, experiment_id: str) -> "ExperimentHandle":
        return ExperimentHandle(self, experiment_id, self.get_variant(experiment_id))

    # --- Internals ---

    def _stored_variant(self, experiment_id: str) -> VariantDefinition | None:
        # Never assigns: conversions for unassigned experiments are dropped
        self._ensure_initialized()
        variant_id = self._assignments.get(experiment_id)
        if variant_id is None:
            return None
        experiment = self.registry.find(experiment_id)
        if experiment is None:
            return None
        return experiment.find_variant(variant_id)

    def _assign(self, experiment: ExperimentDefinition) -> VariantDefinition | None:
        gate = traffic_gate_value(experiment.id, self._visitor_id)
        if not in_traffic(experiment, gate):
            # Not cached: a later allocation increase can still pull this visitor in
            return None

        variant = select_variant(experiment.variants, self._rng.random())
        self._assignments[experiment.id] = variant.id
        logger.debug("Assigned %s to %s/%s", self._visitor_id, experiment.id, variant.id)
        self._pending.append((self._clock(), {
            "test_id": experiment.id,
            "test_name": experiment.name,
            "variant_id": variant.id,
            "variant_name": variant.name,
            "traffic_gate_value": gate,
        }))
        return variant

    def _flush_assigned(self) -> None:
        pending, self._pending = self._pending, []
        for timestamp, properties in pending:
            self._emit(EventType.AB_TEST_ASSIGNED, timestamp, properties)

    def _emit(self, event_type: EventType, timestamp: datetime, properties: dict) -> None:
        event = Event(
            event_id=self._id_factory(),
            user_id=self._visitor_id,
            event_type=event_type,
            timestamp=timestamp,
            properties=properties,
        )
        try:
            self.sink.emit(event)
        except Exception:
            logger.exception("Event sink failed for %s", event_type.value)


@dataclass
class ExperimentHandle:
    """A page's view of one experiment: the variant it got and a conversion hook."""

    engine: AssignmentEngine
    experiment_id: str
    variant: VariantDefinition | None

    @property
    def is_active(self) -> bool:
        return self.variant is not None

    @property
    def config(self) -> dict | None:
        return dict(self.variant.config) if self.variant is not None else None

    def track_conversion(self, conversion_type: str, value: float | None = None) -> None:
        self.engine.track_conversion(self.experiment_id, conversion_type, value)
