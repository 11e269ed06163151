from .junit import ReportWriter, atomic_write, build_suite_element, parse_trace, render_suite
from .schema import find_reports, validate_report
from .summary import build_summary, exit_status, write_summary

__all__ = [
    "ReportWriter",
    "atomic_write",
    "build_suite_element",
    "build_summary",
    "exit_status",
    "find_reports",
    "parse_trace",
    "render_suite",
    "validate_report",
    "write_summary",
]
