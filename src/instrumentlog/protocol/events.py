from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _CaseEvent(BaseModel):
    class_name: str
    method_name: str


class RunStartedEvent(BaseModel):
    type: Literal["run_started"]
    name: str
    expected_count: int

    model_config = ConfigDict(extra="forbid")


class CaseStartedEvent(_CaseEvent):
    type: Literal["test_started"]

    model_config = ConfigDict(extra="forbid")


class CaseFailedEvent(_CaseEvent):
    type: Literal["test_failed"]
    trace: str

    model_config = ConfigDict(extra="forbid")


class CaseAssumptionFailureEvent(_CaseEvent):
    type: Literal["test_assumption_failure"]
    trace: str

    model_config = ConfigDict(extra="forbid")


class CaseIgnoredEvent(_CaseEvent):
    type: Literal["test_ignored"]

    model_config = ConfigDict(extra="forbid")


class CaseEndedEvent(_CaseEvent):
    type: Literal["test_ended"]
    metrics: dict[str, str | int | float] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class RunFailedEvent(BaseModel):
    type: Literal["test_run_failed"]
    message: str

    model_config = ConfigDict(extra="forbid")


class RunStoppedEvent(BaseModel):
    type: Literal["test_run_stopped"]
    elapsed_ms: int

    model_config = ConfigDict(extra="forbid")


class RunEndedEvent(BaseModel):
    type: Literal["test_run_ended"]
    elapsed_ms: int
    metrics: dict[str, str | int | float] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


LifecycleEvent = Union[
    RunStartedEvent,
    CaseStartedEvent,
    CaseFailedEvent,
    CaseAssumptionFailureEvent,
    CaseIgnoredEvent,
    CaseEndedEvent,
    RunFailedEvent,
    RunStoppedEvent,
    RunEndedEvent,
]

_EVENT_TYPES: dict[str, type[BaseModel]] = {
    "run_started": RunStartedEvent,
    "test_started": CaseStartedEvent,
    "test_failed": CaseFailedEvent,
    "test_assumption_failure": CaseAssumptionFailureEvent,
    "test_ignored": CaseIgnoredEvent,
    "test_ended": CaseEndedEvent,
    "test_run_failed": RunFailedEvent,
    "test_run_stopped": RunStoppedEvent,
    "test_run_ended": RunEndedEvent,
}


def parse_event(data: Any) -> LifecycleEvent:
    if not isinstance(data, dict):
        raise ValueError("Event must be a JSON object")
    event_type = data.get("type")
    if not isinstance(event_type, str):
        raise ValueError("Event missing type field")
    model = _EVENT_TYPES.get(event_type)
    if model is None:
        raise ValueError(f"Unknown event type: {event_type}")
    return model.model_validate(data)
