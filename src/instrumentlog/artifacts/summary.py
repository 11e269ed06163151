from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from instrumentlog import __version__ as instrumentlog_version
from instrumentlog.device.models import DeviceInfo
from instrumentlog.errors import ProtocolViolation, WriteError
from instrumentlog.listener.models import RunResult

from .junit import atomic_write


def _percentile(values: list[float], pct: float) -> float:
    if not values:
        raise ValueError("No values for percentile")
    values_sorted = sorted(values)
    rank = math.ceil((pct / 100.0) * len(values_sorted)) - 1
    rank = max(0, min(rank, len(values_sorted) - 1))
    return values_sorted[rank]


def _metric_summary(values: list[int]) -> dict[str, float | None]:
    numeric = [float(v) for v in values]
    if not numeric:
        return {"min": None, "p50": None, "p95": None, "mean": None, "max": None}
    return {
        "min": min(numeric),
        "p50": _percentile(numeric, 50),
        "p95": _percentile(numeric, 95),
        "mean": sum(numeric) / len(numeric),
        "max": max(numeric),
    }


def exit_status(
    result: RunResult | None,
    *,
    write_errors: Sequence[WriteError] = (),
    error: str | None = None,
) -> str:
    if error is not None or write_errors or result is None:
        return "error"
    if result.has_failures:
        return "failed"
    return "success"


def build_summary(
    *,
    device: DeviceInfo,
    result: RunResult | None,
    report_paths: Sequence[Path] = (),
    write_errors: Sequence[WriteError] = (),
    violations: Sequence[ProtocolViolation] = (),
    error: str | None = None,
    generated_at: datetime | None = None,
) -> dict[str, object]:
    if generated_at is None:
        generated_at = datetime.now(timezone.utc)

    summary: dict[str, object] = {
        "schema_version": 1,
        "generated_at": generated_at.isoformat().replace("+00:00", "Z"),
        "instrumentlog_version": instrumentlog_version,
        "device": {
            "serial": device.serial,
            "avd_name": device.avd_name,
            "manufacturer": device.manufacturer,
            "model": device.model,
            "descriptive_name": device.descriptive_name,
        },
        "exit_status": exit_status(result, write_errors=write_errors, error=error),
        "error": error,
        "protocol_violations": [
            {
                "kind": violation.kind,
                "detail": violation.detail,
                "class_name": violation.class_name,
                "method_name": violation.method_name,
            }
            for violation in violations
        ],
        "write_errors": [
            {"class_name": item.class_name, "path": str(item.path), "cause": item.cause}
            for item in write_errors
        ],
        "reports": [str(path) for path in report_paths],
    }
    if result is None:
        summary["run"] = None
        return summary

    summary["run"] = {
        "name": result.name,
        "expected_count": result.expected_count,
        "elapsed_ms": result.elapsed_ms,
        "failure": result.failure,
        "metrics": dict(result.metrics),
    }
    summary["aggregates"] = {
        "tests": result.tests,
        "failures": result.failures,
        "skipped": result.skipped,
        "passed": sum(suite.passed for suite in result.suites),
        "synthetic": sum(1 for case in result.cases if case.synthetic),
        "elapsed_ms": _metric_summary([case.elapsed_ms for case in result.cases]),
    }
    summary["suites"] = [
        {
            "class_name": suite.class_name,
            "tests": suite.tests,
            "failures": suite.failures,
            "errors": suite.errors,
            "skipped": suite.skipped,
            "elapsed_ms": suite.elapsed_ms,
            "cases": [
                {
                    "name": case.identifier.method_name,
                    "outcome": case.outcome.value,
                    "elapsed_ms": case.elapsed_ms,
                    "synthetic": case.synthetic,
                    "metrics": dict(case.metrics),
                }
                for case in suite.cases
            ],
        }
        for suite in result.suites
    ]
    return summary


def write_summary(run_dir: Path, summary: dict[str, object]) -> Path:
    summary_path = run_dir / "summary.json"
    run_dir.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(summary, indent=2, sort_keys=True) + "\n"
    atomic_write(summary_path, payload.encode("utf-8"))
    return summary_path
