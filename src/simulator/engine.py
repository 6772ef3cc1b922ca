"""Simulation engine that drives real assignment engines with fake traffic.

Each simulated visitor gets its own browser storage and its own
AssignmentEngine, then visits the site several times:
  visit -> get_variant(each active experiment) -> maybe cta_click -> maybe form_submission

Assignments are made on the first visit and read back from storage on
every later one. All randomness is seeded for full reproducibility.
"""

import hashlib
import random
from datetime import datetime, timedelta, timezone

from src.ab.engine import AssignmentEngine
from src.ab.experiment import DEFAULT_REGISTRY, ExperimentRegistry
from src.ab.storage import MemoryStorage
from src.collector.schemas import Event, EventType
from src.collector.sink import InMemorySink
from src.simulator.config import SimulationConfig


class _SimClock:
    def __init__(self, start: datetime):
        self.now = start

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)

    def __call__(self) -> datetime:
        return self.now


def simulate_traffic(
    config: SimulationConfig | None = None,
    registry: ExperimentRegistry | None = None,
) -> list[Event]:
    """Run every simulated visitor through the site.

    Returns all emitted events sorted by timestamp.
    """
    if config is None:
        config = SimulationConfig()
    if registry is None:
        registry = DEFAULT_REGISTRY

    rng = random.Random(config.seed)
    sink = InMemorySink()
    # End at yesterday's midnight so repeated runs share a window
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    end_time = today - timedelta(days=1)
    start_time = end_time - timedelta(days=config.days)

    for i in range(config.num_visitors):
        _simulate_visitor(f"visitor_{i:05d}", start_time, config, registry, rng, sink)

    return sorted(sink.events, key=lambda e: e.timestamp)


def _simulate_visitor(
    visitor_id: str,
    start_time: datetime,
    config: SimulationConfig,
    registry: ExperimentRegistry,
    rng: random.Random,
    sink: InMemorySink,
) -> None:
    clock = _SimClock(start_time + timedelta(seconds=rng.randint(0, config.days * 86400)))
    # One browser profile per visitor; it outlives each page load
    storage = MemoryStorage()

    for _ in range(rng.randint(config.min_visits, config.max_visits)):
        # Fresh engine per page load, as after a reload
        engine = AssignmentEngine(
            registry, storage, sink,
            rng=random.Random(rng.getrandbits(64)),
            identity_factory=lambda: visitor_id,
            clock=clock,
            id_factory=lambda: _event_id(rng),
        )
        for experiment in registry.list_active():
            engine.get_variant(experiment.id)
            clock.advance(rng.randint(1, 5))

        for experiment_id in engine.list_current_assignments():
            if rng.random() < config.prob_cta_click:
                clock.advance(rng.randint(2, 30))
                engine.track_conversion(experiment_id, "cta_click", 1)
            if rng.random() < config.prob_form_submission:
                clock.advance(rng.randint(30, 300))
                engine.track_conversion(
                    experiment_id, "form_submission", config.form_submission_value,
                )

        clock.advance(rng.randint(600, 3 * 86400))


def _event_id(rng: random.Random) -> str:
    # Deterministic event ID derived from seeded RNG
    return hashlib.md5(rng.randbytes(16)).hexdigest()


def variant_split(events: list[Event]) -> dict[str, dict[str, int]]:
    """Count assignment events per experiment and variant."""
    split: dict[str, dict[str, int]] = {}
    for e in events:
        if e.event_type != EventType.AB_TEST_ASSIGNED:
            continue
        by_variant = split.setdefault(e.properties["test_id"], {})
        variant_id = e.properties["variant_id"]
        by_variant[variant_id] = by_variant.get(variant_id, 0) + 1
    return split
