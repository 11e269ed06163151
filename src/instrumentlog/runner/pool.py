from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Iterable, Sequence

from instrumentlog.artifacts.junit import ReportWriter
from instrumentlog.artifacts.summary import build_summary, exit_status, write_summary
from instrumentlog.device.models import DeviceInfo
from instrumentlog.device.resolver import DeviceInfoResolver
from instrumentlog.errors import ConfigurationError, EventParseError, ProtocolViolation, WriteError
from instrumentlog.listener.engine import RunListener, RunState
from instrumentlog.listener.models import RunResult
from instrumentlog.protocol.events import LifecycleEvent
from instrumentlog.protocol.jsonl import iter_events

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceSession:
    resolver: DeviceInfoResolver
    events_path: Path


@dataclass(frozen=True)
class SessionOutcome:
    source: Path
    device: DeviceInfo | None
    result: RunResult | None = None
    report_paths: list[Path] = field(default_factory=list)
    write_errors: list[WriteError] = field(default_factory=list)
    violations: list[ProtocolViolation] = field(default_factory=list)
    summary_path: Path | None = None
    error: str | None = None

    @property
    def label(self) -> str:
        if self.device is None:
            return str(self.source)
        return self.device.descriptive_name

    @property
    def status(self) -> str:
        return exit_status(self.result, write_errors=self.write_errors, error=self.error)

    @property
    def passed(self) -> bool:
        return self.status == "success"


def drive(listener: RunListener, events: Iterable[LifecycleEvent]) -> RunResult | None:
    """Feed events to the listener and make sure captured cases get flushed.

    A stream that stops before ``test_run_ended`` is closed with an elapsed time
    of zero so the cases seen so far still reach the report writer.
    """
    for event in events:
        listener.handle(event)
    if listener.state is RunState.RUNNING:
        logger.warning("%sEvent stream ended before the run ended", listener.device.log_prefix)
        listener.test_run_ended(0, {})
    return listener.result


def run_session(session: DeviceSession, writer: ReportWriter) -> SessionOutcome:
    """Replay one device's event log; faults end this session only.

    A fault after the run started marks the run failed and ends it, so cases
    captured up to that point are still written.
    """
    try:
        device = session.resolver.resolve()
    except ConfigurationError as exc:
        logger.error("%s: Cannot resolve device: %s", session.events_path, exc)
        return SessionOutcome(source=session.events_path, device=None, error=str(exc))

    listener = RunListener(device, writer)
    error: str | None = None
    try:
        with session.events_path.open("rb") as stream:
            drive(listener, iter_events(stream))
    except (ConfigurationError, EventParseError, OSError) as exc:
        error = str(exc)
        logger.error("%sSession aborted: %s", device.log_prefix, exc)
        if listener.state is RunState.RUNNING:
            listener.test_run_failed(error)
            listener.test_run_ended(0, {})

    summary_path: Path | None = None
    summary = build_summary(
        device=device,
        result=listener.result,
        report_paths=listener.report_paths,
        write_errors=listener.write_errors,
        violations=listener.violations,
        error=error,
    )
    try:
        summary_path = write_summary(writer.run_dir(device), summary)
    except OSError as exc:
        logger.error("%sFailed to write summary: %s", device.log_prefix, exc)
        if error is None:
            error = f"Failed to write summary: {exc}"

    return SessionOutcome(
        source=session.events_path,
        device=device,
        result=listener.result,
        report_paths=list(listener.report_paths),
        write_errors=list(listener.write_errors),
        violations=list(listener.violations),
        summary_path=summary_path,
        error=error,
    )


def run_sessions(
    sessions: Sequence[DeviceSession],
    writer: ReportWriter,
    *,
    max_workers: int = 4,
) -> list[SessionOutcome]:
    """Drive every device session in parallel; outcomes keep the input order.

    Each session owns its listener and writes below its own device directory, so
    sessions share nothing but the writer's configuration.
    """
    if max_workers < 1:
        raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="device") as executor:
        return list(executor.map(lambda session: run_session(session, writer), sessions))
