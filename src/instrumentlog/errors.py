from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class ProtocolViolation:
    """A recoverable ordering problem in a device's event stream.

    Violations are logged and collected by the listener; they never abort a run.
    """

    kind: str
    detail: str
    class_name: str | None = None
    method_name: str | None = None

    def __str__(self) -> str:
        if self.class_name is None:
            return f"{self.kind}: {self.detail}"
        return f"{self.kind}: {self.detail} ({self.class_name}#{self.method_name})"


@dataclass
class ConfigurationError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class EventParseError(Exception):
    message: str
    line: str
    line_number: int

    def __str__(self) -> str:
        return f"{self.message} (line {self.line_number}): {self.line}"


@dataclass
class WriteError(Exception):
    class_name: str
    path: Path
    cause: str

    def __str__(self) -> str:
        return f"Failed to write report for {self.class_name} to {self.path}: {self.cause}"


@dataclass
class ReportWriteError(Exception):
    errors: list[WriteError]
    written: list[Path] = field(default_factory=list)

    def __str__(self) -> str:
        failed = ", ".join(error.class_name for error in self.errors) or "<none>"
        return f"{len(self.errors)} report(s) failed to persist: {failed}"
