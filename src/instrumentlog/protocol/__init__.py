from .events import (
    CaseAssumptionFailureEvent,
    CaseEndedEvent,
    CaseFailedEvent,
    CaseIgnoredEvent,
    CaseStartedEvent,
    LifecycleEvent,
    RunEndedEvent,
    RunFailedEvent,
    RunStartedEvent,
    RunStoppedEvent,
    parse_event,
)
from .jsonl import iter_events, write_event

__all__ = [
    "CaseAssumptionFailureEvent",
    "CaseEndedEvent",
    "CaseFailedEvent",
    "CaseIgnoredEvent",
    "CaseStartedEvent",
    "LifecycleEvent",
    "RunEndedEvent",
    "RunFailedEvent",
    "RunStartedEvent",
    "RunStoppedEvent",
    "iter_events",
    "parse_event",
    "write_event",
]
