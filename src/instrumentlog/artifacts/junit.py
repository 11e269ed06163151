from __future__ import annotations

import logging
import os
from pathlib import Path
import re
import tempfile
import xml.etree.ElementTree as ET

from instrumentlog.device.models import DeviceInfo, fix_file_name
from instrumentlog.errors import ReportWriteError, WriteError
from instrumentlog.listener.models import RunResult, SuiteModel, TestCase, TestOutcome

logger = logging.getLogger(__name__)

# Code points XML 1.0 cannot represent, even as character references.
_XML_ILLEGAL = re.compile(r"[^\x09\x0a\x0d\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def _xml_safe(text: str) -> str:
    return _XML_ILLEGAL.sub(lambda match: f"\\u{ord(match.group()):04x}", text)


def _seconds(elapsed_ms: int) -> str:
    return f"{elapsed_ms / 1000.0:.3f}"


def parse_trace(trace: str) -> tuple[str, str]:
    """Split the first line of a stack trace into (exception type, message).

    ``java.lang.AssertionError: expected:<1> but was:<2>`` yields
    ``("java.lang.AssertionError", "expected:<1> but was:<2>")``. A first line
    without a colon is taken as the type with an empty message.
    """
    lines = trace.strip().splitlines()
    if not lines:
        return "", ""
    head, sep, tail = lines[0].partition(":")
    if not sep:
        return head.strip(), ""
    return head.strip(), tail.strip()


def _case_element(suite: ET.Element, class_name: str, case: TestCase) -> None:
    testcase = ET.SubElement(
        suite,
        "testcase",
        attrib={
            "classname": _xml_safe(class_name),
            "name": _xml_safe(case.identifier.method_name),
            "time": _seconds(case.elapsed_ms),
        },
    )
    trace = _xml_safe(case.trace or "")
    if case.outcome is TestOutcome.FAILED:
        exc_type, message = parse_trace(trace)
        failure = ET.SubElement(
            testcase,
            "failure",
            attrib={"message": message, "type": exc_type},
        )
        failure.text = trace
    elif case.outcome is TestOutcome.ASSUMPTION_FAILURE:
        _, message = parse_trace(trace)
        skipped = ET.SubElement(testcase, "skipped", attrib={"message": message})
        skipped.text = trace
    elif case.outcome is TestOutcome.IGNORED:
        ET.SubElement(testcase, "skipped")


def build_suite_element(suite: SuiteModel) -> ET.Element:
    root = ET.Element(
        "testsuite",
        attrib={
            "name": _xml_safe(suite.class_name),
            "tests": str(suite.tests),
            "failures": str(suite.failures),
            "errors": str(suite.errors),
            "skipped": str(suite.skipped),
            "time": _seconds(suite.elapsed_ms),
        },
    )
    properties = ET.SubElement(root, "properties")
    for name, value in suite.properties:
        ET.SubElement(
            properties,
            "property",
            attrib={"name": _xml_safe(name), "value": _xml_safe(value)},
        )
    for case in suite.cases:
        _case_element(root, suite.class_name, case)
    return root


def render_suite(suite: SuiteModel) -> bytes:
    return ET.tostring(build_suite_element(suite), encoding="utf-8", xml_declaration=True)


def atomic_write(path: Path, payload: bytes) -> None:
    """Replace ``path`` with ``payload`` so readers never observe a partial file."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class ReportWriter:
    """Writes one surefire report per test class below ``output_root``.

    Reports land in ``<output_root>/<device-suffix>/TEST-<class>.xml`` where the
    device suffix is the device's descriptive name plus the optional report suffix.
    """

    def __init__(self, output_root: Path, *, report_suffix: str = "") -> None:
        self.output_root = Path(output_root)
        self.report_suffix = report_suffix

    def run_dir(self, device: DeviceInfo) -> Path:
        return self.output_root / fix_file_name(device.descriptive_name + self.report_suffix)

    def report_path(self, device: DeviceInfo, class_name: str) -> Path:
        return self.run_dir(device) / f"TEST-{fix_file_name(class_name)}.xml"

    def write_run(self, result: RunResult) -> list[Path]:
        run_dir = self.run_dir(result.device)
        try:
            run_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            failed = [
                WriteError(suite.class_name, self.report_path(result.device, suite.class_name), str(exc))
                for suite in result.suites
            ]
            if not failed:
                failed.append(WriteError("<run>", run_dir, str(exc)))
            raise ReportWriteError(failed) from exc

        written: list[Path] = []
        errors: list[WriteError] = []
        owners: dict[Path, str] = {}
        for suite in result.suites:
            path = self.report_path(result.device, suite.class_name)
            owner = owners.setdefault(path, suite.class_name)
            if owner != suite.class_name:
                errors.append(
                    WriteError(suite.class_name, path, f"report file name collides with {owner}")
                )
                continue
            try:
                atomic_write(path, render_suite(suite))
            except OSError as exc:
                logger.debug("Writing %s failed", path, exc_info=True)
                errors.append(WriteError(suite.class_name, path, str(exc)))
                continue
            written.append(path)

        if errors:
            raise ReportWriteError(errors, written)
        return written
