from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
import time
from typing import Callable, Mapping, Protocol

from instrumentlog.device.models import DeviceInfo
from instrumentlog.errors import (
    ConfigurationError,
    ProtocolViolation,
    ReportWriteError,
    WriteError,
)
from instrumentlog.protocol.events import (
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
)

from .models import RunResult, SuiteModel, TestCase, TestIdentifier, TestOutcome

logger = logging.getLogger(__name__)

MISSING_START_TRACE = "missing start event"
RUN_ENDED_TRACE = "test run ended before test completed"
DUPLICATE_START_TRACE = "duplicate start event; previous attempt did not complete"

_INDENT = "  "


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    ENDED = "ended"


class ReportSink(Protocol):
    def write_run(self, result: RunResult) -> list[Path]: ...


@dataclass
class _ActiveCase:
    identifier: TestIdentifier
    suite: SuiteModel
    slot: int
    index: int
    started_at: float
    outcome: TestOutcome = TestOutcome.PASSED
    trace: str | None = None


def _stringify(metrics: Mapping[str, object] | None) -> dict[str, str]:
    return {str(key): str(value) for key, value in (metrics or {}).items()}


class RunListener:
    """Aggregates the lifecycle events of one device/run pair into a RunResult.

    The listener is driven sequentially by a single event source. Ordering
    problems in the stream are recorded as ProtocolViolations and recovered
    locally; they never raise. Only malformed run-start parameters raise
    ConfigurationError, leaving the listener idle.
    """

    def __init__(
        self,
        device: DeviceInfo,
        writer: ReportSink | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.device = device
        self.state = RunState.IDLE
        self.result: RunResult | None = None
        self.violations: list[ProtocolViolation] = []
        self.write_errors: list[WriteError] = []
        self.report_paths: list[Path] = []
        self._writer = writer
        self._clock = clock
        self._prefix = device.log_prefix
        self._run_name = ""
        self._expected_count = 0
        self._run_failure: str | None = None
        self._suites: dict[str, SuiteModel] = {}
        self._active: dict[TestIdentifier, _ActiveCase] = {}
        self._arrivals = 0
        self._started = 0

    def handle(self, event: LifecycleEvent) -> None:
        if isinstance(event, RunStartedEvent):
            self.run_started(event.name, event.expected_count)
        elif isinstance(event, CaseStartedEvent):
            self.test_started(TestIdentifier(event.class_name, event.method_name))
        elif isinstance(event, CaseFailedEvent):
            self.test_failed(TestIdentifier(event.class_name, event.method_name), event.trace)
        elif isinstance(event, CaseAssumptionFailureEvent):
            self.test_assumption_failure(
                TestIdentifier(event.class_name, event.method_name), event.trace
            )
        elif isinstance(event, CaseIgnoredEvent):
            self.test_ignored(TestIdentifier(event.class_name, event.method_name))
        elif isinstance(event, CaseEndedEvent):
            self.test_ended(TestIdentifier(event.class_name, event.method_name), event.metrics)
        elif isinstance(event, RunFailedEvent):
            self.test_run_failed(event.message)
        elif isinstance(event, RunStoppedEvent):
            self.test_run_stopped(event.elapsed_ms)
        elif isinstance(event, RunEndedEvent):
            self.test_run_ended(event.elapsed_ms, event.metrics)
        else:
            raise TypeError(f"Unsupported event: {type(event).__name__}")

    def run_started(self, name: str, expected_count: int) -> None:
        if self.state is RunState.RUNNING:
            self._violation("duplicate_run_start", f"run {name!r} started while {self._run_name!r} is running")
            return
        if self.state is RunState.ENDED:
            self._violation("event_after_run_end", f"run {name!r} started after the run ended")
            return
        if not isinstance(name, str):
            raise ConfigurationError(f"Run name must be a string, got {type(name).__name__}")
        if isinstance(expected_count, bool) or not isinstance(expected_count, int):
            raise ConfigurationError(f"Expected test count must be an integer, got {expected_count!r}")
        if expected_count < 0:
            raise ConfigurationError(f"Expected test count must be >= 0, got {expected_count}")
        self._begin(name, expected_count)

    def test_started(self, identifier: TestIdentifier) -> None:
        if not self._require_running("test_started", identifier):
            return
        self._started += 1
        previous = self._active.pop(identifier, None)
        if previous is not None:
            self._violation("duplicate_start", "test started again before it ended", identifier)
            previous.outcome = TestOutcome.FAILED
            previous.trace = DUPLICATE_START_TRACE
            self._finalize(previous, {}, synthetic=True)
        suite = self._suite_for(identifier.class_name)
        self._active[identifier] = _ActiveCase(
            identifier=identifier,
            suite=suite,
            slot=suite.reserve(),
            index=self._next_index(),
            started_at=self._clock(),
        )
        logger.info(
            "%s%s%sStart [%d/%d]: %s",
            self._prefix,
            _INDENT,
            _INDENT,
            self._started,
            self._expected_count,
            identifier,
        )

    def test_failed(self, identifier: TestIdentifier, trace: str) -> None:
        active = self._active_case("test_failed", identifier)
        if active is None:
            return
        # Failed and assumption failure overwrite each other: the last one wins.
        active.outcome = TestOutcome.FAILED
        active.trace = trace
        logger.warning("%s%s%s FAILED\n%s", self._prefix, _INDENT, identifier, trace)

    def test_assumption_failure(self, identifier: TestIdentifier, trace: str) -> None:
        active = self._active_case("test_assumption_failure", identifier)
        if active is None:
            return
        active.outcome = TestOutcome.ASSUMPTION_FAILURE
        active.trace = trace
        logger.warning("%s%s%s SKIPPED\n%s", self._prefix, _INDENT, identifier, trace)

    def test_ignored(self, identifier: TestIdentifier) -> None:
        active = self._active_case("test_ignored", identifier)
        if active is None:
            return
        if active.outcome is not TestOutcome.PASSED:
            logger.debug(
                "%s%s%s ignored after %s, keeping %s",
                self._prefix,
                _INDENT,
                identifier,
                active.outcome.value,
                active.outcome.value,
            )
            return
        active.outcome = TestOutcome.IGNORED
        logger.info("%s%s%s SKIPPED", self._prefix, _INDENT, identifier)

    def test_ended(self, identifier: TestIdentifier, metrics: Mapping[str, object] | None = None) -> None:
        if not self._require_running("test_ended", identifier):
            return
        active = self._active.pop(identifier, None)
        if active is None:
            self._violation("end_without_start", "test ended without a start event", identifier)
            self._suite_for(identifier.class_name).append(
                TestCase(
                    identifier=identifier,
                    outcome=TestOutcome.FAILED,
                    index=self._next_index(),
                    trace=MISSING_START_TRACE,
                    metrics=_stringify(metrics),
                    synthetic=True,
                )
            )
            return
        self._finalize(active, metrics)

    def test_run_failed(self, message: str) -> None:
        if not self._require_running("test_run_failed"):
            return
        self._run_failure = message
        logger.warning("%s%sRun failed: %s", self._prefix, _INDENT, message)

    def test_run_stopped(self, elapsed_ms: int) -> None:
        if not self._require_running("test_run_stopped"):
            return
        logger.info("%s%sRun stopped: %d ms", self._prefix, _INDENT, elapsed_ms)

    def test_run_ended(self, elapsed_ms: int, metrics: Mapping[str, object] | None = None) -> None:
        if not self._require_running("test_run_ended"):
            return
        if elapsed_ms < 0:
            self._violation("negative_elapsed", f"run reported elapsed time {elapsed_ms} ms")
            elapsed_ms = 0
        for active in list(self._active.values()):
            self._violation("incomplete_test", "run ended before the test ended", active.identifier)
            active.outcome = TestOutcome.FAILED
            active.trace = RUN_ENDED_TRACE
            self._finalize(active, {}, synthetic=True)
        self._active.clear()

        run_metrics = _stringify(metrics)
        suites = tuple(self._suites.values())
        properties = self._run_properties(run_metrics)
        for suite in suites:
            if len(suites) == 1:
                suite_elapsed = elapsed_ms
            else:
                suite_elapsed = sum(case.elapsed_ms for case in suite.cases)
            suite.seal(suite_elapsed, properties)

        self.result = RunResult(
            name=self._run_name,
            expected_count=self._expected_count,
            device=self.device,
            suites=suites,
            elapsed_ms=elapsed_ms,
            failure=self._run_failure,
            metrics=run_metrics,
        )
        self.state = RunState.ENDED

        logger.info("%s%sRun ended: %d ms", self._prefix, _INDENT, elapsed_ms)
        if self.result.has_failures:
            logger.error("%s%sFAILURES!!!", self._prefix, _INDENT)
        of_expected = f" (of {self._expected_count})" if self._started < self._expected_count else ""
        logger.info(
            "%sTests run: %d%s,  Failures: %d,  Errors: 0,  Ignored: %d",
            _INDENT,
            self.result.tests,
            of_expected,
            self.result.failures,
            self.result.skipped,
        )
        for key, value in run_metrics.items():
            logger.debug("%s%s%s%s: %s", self._prefix, _INDENT, _INDENT, key, value)
        self._flush()

    def _begin(self, name: str, expected_count: int) -> None:
        self._run_name = name
        self._expected_count = expected_count
        self.state = RunState.RUNNING
        logger.info("%s%sRun started: %s, %d tests", self._prefix, _INDENT, name, expected_count)

    def _require_running(self, event_name: str, identifier: TestIdentifier | None = None) -> bool:
        if self.state is RunState.RUNNING:
            return True
        if self.state is RunState.ENDED:
            self._violation("event_after_run_end", f"{event_name} received after the run ended", identifier)
            return False
        self._violation("event_before_run_start", f"{event_name} received before the run started", identifier)
        self._begin(self.device.serial, 0)
        return True

    def _active_case(self, event_name: str, identifier: TestIdentifier) -> _ActiveCase | None:
        if not self._require_running(event_name, identifier):
            return None
        active = self._active.get(identifier)
        if active is None:
            self._violation("event_without_start", f"{event_name} for a test that is not running", identifier)
        return active

    def _suite_for(self, class_name: str) -> SuiteModel:
        suite = self._suites.get(class_name)
        if suite is None:
            suite = SuiteModel(class_name)
            self._suites[class_name] = suite
        return suite

    def _next_index(self) -> int:
        index = self._arrivals
        self._arrivals += 1
        return index

    def _finalize(
        self,
        active: _ActiveCase,
        metrics: Mapping[str, object] | None,
        *,
        synthetic: bool = False,
    ) -> None:
        elapsed_ms = max(0, round((self._clock() - active.started_at) * 1000))
        case = TestCase(
            identifier=active.identifier,
            outcome=active.outcome,
            index=active.index,
            elapsed_ms=elapsed_ms,
            trace=active.trace,
            metrics=_stringify(metrics),
            synthetic=synthetic,
        )
        active.suite.place(active.slot, case)
        logger.info(
            "%s%s%sEnd [%d/%d]: %s",
            self._prefix,
            _INDENT,
            _INDENT,
            self._started,
            self._expected_count,
            active.identifier,
        )
        for key, value in case.metrics.items():
            logger.debug("%s%s%s%s: %s", self._prefix, _INDENT, _INDENT, key, value)

    def _run_properties(self, run_metrics: dict[str, str]) -> list[tuple[str, str]]:
        props = self.device.report_properties()
        props.append(("run.name", self._run_name))
        if self._run_failure is not None:
            props.append(("run.failure", self._run_failure))
        props.extend((f"run.metric.{key}", run_metrics[key]) for key in sorted(run_metrics))
        return props

    def _violation(
        self,
        kind: str,
        detail: str,
        identifier: TestIdentifier | None = None,
    ) -> None:
        violation = ProtocolViolation(
            kind=kind,
            detail=detail,
            class_name=None if identifier is None else identifier.class_name,
            method_name=None if identifier is None else identifier.method_name,
        )
        self.violations.append(violation)
        logger.warning("%sProtocol violation: %s", self._prefix, violation)

    def _flush(self) -> None:
        if self._writer is None or self.result is None:
            return
        try:
            self.report_paths = self._writer.write_run(self.result)
        except ReportWriteError as exc:
            self.report_paths = list(exc.written)
            self.write_errors = list(exc.errors)
            for error in exc.errors:
                logger.error("%s%s", self._prefix, error)
            return
        for path in self.report_paths:
            logger.info("%sReport file written to %s", self._prefix, path)
