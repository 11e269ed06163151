from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from instrumentlog.device.models import DeviceInfo


class TestOutcome(str, Enum):
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    ASSUMPTION_FAILURE = "assumption_failure"
    IGNORED = "ignored"


@dataclass(frozen=True)
class TestIdentifier:
    __test__ = False

    class_name: str
    method_name: str

    def __str__(self) -> str:
        return f"{self.class_name}#{self.method_name}"


@dataclass(frozen=True)
class TestCase:
    """A finalized test case. Cases are only created once their end event arrived."""

    __test__ = False

    identifier: TestIdentifier
    outcome: TestOutcome
    index: int
    elapsed_ms: int = 0
    trace: str | None = None
    metrics: Mapping[str, str] = field(default_factory=dict)
    synthetic: bool = False

    def __post_init__(self) -> None:
        if self.elapsed_ms < 0:
            raise ValueError(f"elapsed_ms must be >= 0, got {self.elapsed_ms}")
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))


class SuiteModel:
    """All cases of one test class, in the order their start events arrived.

    Slots are reserved when a case starts and filled when it is finalized, so a
    long running case keeps its position even if later cases finish first.
    """

    def __init__(self, class_name: str) -> None:
        self.class_name = class_name
        self.elapsed_ms = 0
        self.properties: tuple[tuple[str, str], ...] = ()
        self._slots: list[TestCase | None] = []
        self._sealed = False

    def __repr__(self) -> str:
        return f"SuiteModel({self.class_name!r}, tests={self.tests}, sealed={self._sealed})"

    @property
    def sealed(self) -> bool:
        return self._sealed

    def reserve(self) -> int:
        self._check_open()
        self._slots.append(None)
        return len(self._slots) - 1

    def place(self, slot: int, case: TestCase) -> None:
        self._check_open()
        if self._slots[slot] is not None:
            raise RuntimeError(f"Slot {slot} of {self.class_name} is already finalized")
        self._slots[slot] = case

    def append(self, case: TestCase) -> None:
        self.place(self.reserve(), case)

    def seal(self, elapsed_ms: int, properties: list[tuple[str, str]]) -> None:
        self._check_open()
        if any(slot is None for slot in self._slots):
            raise RuntimeError(f"Cannot seal {self.class_name} with unfinished cases")
        self.elapsed_ms = max(0, elapsed_ms)
        self.properties = tuple(properties)
        self._sealed = True

    def _check_open(self) -> None:
        if self._sealed:
            raise RuntimeError(f"Suite {self.class_name} is sealed")

    @property
    def cases(self) -> tuple[TestCase, ...]:
        return tuple(case for case in self._slots if case is not None)

    def _count(self, *outcomes: TestOutcome) -> int:
        return sum(1 for case in self.cases if case.outcome in outcomes)

    @property
    def tests(self) -> int:
        return len(self.cases)

    @property
    def passed(self) -> int:
        return self._count(TestOutcome.PASSED)

    @property
    def failures(self) -> int:
        return self._count(TestOutcome.FAILED)

    @property
    def errors(self) -> int:
        return 0

    @property
    def skipped(self) -> int:
        # Assumption failures are reported as skipped cases.
        return self._count(TestOutcome.IGNORED, TestOutcome.ASSUMPTION_FAILURE)


@dataclass(frozen=True)
class RunResult:
    name: str
    expected_count: int
    device: DeviceInfo
    suites: tuple[SuiteModel, ...]
    elapsed_ms: int
    failure: str | None = None
    metrics: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "suites", tuple(self.suites))
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    @property
    def cases(self) -> list[TestCase]:
        return [case for suite in self.suites for case in suite.cases]

    @property
    def tests(self) -> int:
        return sum(suite.tests for suite in self.suites)

    @property
    def failures(self) -> int:
        return sum(suite.failures for suite in self.suites)

    @property
    def skipped(self) -> int:
        return sum(suite.skipped for suite in self.suites)

    @property
    def has_failures(self) -> bool:
        return self.failures > 0 or self.failure is not None
