"""Event sinks: where emitted experiment events go.

Delivery is fire-and-forget. A sink may raise; the assignment engine
catches and logs anything a sink throws.
"""

import logging

from src.collector.schemas import Event, EventSink, EventType
from src.warehouse.db import insert_events

logger = logging.getLogger(__name__)


class InMemorySink:
    """Collects events in a list. Used by the simulator and in tests."""

    def __init__(self):
        self.events: list[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class LoggingSink:
    """Logs every event at INFO, the development stand-in for a real pipeline."""

    def emit(self, event: Event) -> None:
        logger.info("Analytics event: %s %s", event.event_type.value, event.properties)


class WarehouseSink:
    """Writes each event straight into the DuckDB events table."""

    def __init__(self, conn):
        self.conn = conn

    def emit(self, event: Event) -> None:
        insert_events(self.conn, [event])
