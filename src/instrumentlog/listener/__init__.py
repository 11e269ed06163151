from .engine import (
    DUPLICATE_START_TRACE,
    MISSING_START_TRACE,
    RUN_ENDED_TRACE,
    ReportSink,
    RunListener,
    RunState,
)
from .models import RunResult, SuiteModel, TestCase, TestIdentifier, TestOutcome

__all__ = [
    "DUPLICATE_START_TRACE",
    "MISSING_START_TRACE",
    "RUN_ENDED_TRACE",
    "ReportSink",
    "RunListener",
    "RunResult",
    "RunState",
    "SuiteModel",
    "TestCase",
    "TestIdentifier",
    "TestOutcome",
]
