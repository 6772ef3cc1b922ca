"""Event schemas handed to the analytics pipeline."""

from datetime import datetime
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field


class EventType(str, Enum):
    AB_TEST_ASSIGNED = "ab_test_assigned"
    AB_TEST_CONVERSION = "ab_test_conversion"


class Event(BaseModel):
    event_id: str
    user_id: str
    event_type: EventType
    timestamp: datetime
    properties: dict = Field(default_factory=dict)


class EventSink(Protocol):
    def emit(self, event: Event) -> None: ...
