from __future__ import annotations

from pathlib import Path
import xml.etree.ElementTree as ET

import pytest

from instrumentlog.artifacts import junit
from instrumentlog.artifacts.junit import ReportWriter, atomic_write, parse_trace
from instrumentlog.artifacts.schema import validate_report
from instrumentlog.device.models import DeviceInfo
from instrumentlog.errors import ReportWriteError
from instrumentlog.listener.engine import MISSING_START_TRACE, RunListener
from instrumentlog.listener.models import RunResult, TestIdentifier

CALCULATOR = "com.example.CalculatorTest"
PARSER = "com.example.ParserTest"


def _scenario(device: DeviceInfo, clock) -> RunResult:
    listener = RunListener(device, clock=clock)
    listener.run_started("suite", 3)
    a = TestIdentifier(CALCULATOR, "adds")
    b = TestIdentifier(CALCULATOR, "divides")
    c = TestIdentifier(CALCULATOR, "flaky")
    listener.test_started(a)
    clock.advance(4)
    listener.test_ended(a, {})
    listener.test_started(b)
    listener.test_failed(b, "boom")
    listener.test_ended(b, {})
    listener.test_started(c)
    listener.test_ignored(c)
    listener.test_ended(c, {})
    listener.test_run_ended(123, {})
    assert listener.result is not None
    return listener.result


def _two_classes(device: DeviceInfo, clock) -> RunResult:
    listener = RunListener(device, clock=clock)
    listener.run_started("suite", 2)
    for class_name in (CALCULATOR, PARSER):
        ident = TestIdentifier(class_name, "works")
        listener.test_started(ident)
        listener.test_ended(ident, {})
    listener.test_run_ended(10, {})
    assert listener.result is not None
    return listener.result


def test_writes_one_valid_report_per_class(tmp_path: Path, device, clock) -> None:
    writer = ReportWriter(tmp_path / "reports")
    paths = writer.write_run(_scenario(device, clock))

    expected = (
        tmp_path
        / "reports"
        / "emulator-5554_Pixel_API_34_Google_sdkgphone64"
        / f"TEST-{CALCULATOR}.xml"
    )
    assert paths == [expected]
    assert validate_report(expected) == []

    root = ET.parse(expected).getroot()
    assert root.tag == "testsuite"
    assert root.attrib["name"] == CALCULATOR
    assert root.attrib["tests"] == "3"
    assert root.attrib["failures"] == "1"
    assert root.attrib["errors"] == "0"
    assert root.attrib["skipped"] == "1"
    assert root.attrib["time"] == "0.123"

    properties = {prop.attrib["name"]: prop.attrib["value"] for prop in root.iter("property")}
    assert properties["device.serial"] == "emulator-5554"
    assert properties["device.model"] == "sdk gphone64"
    assert properties["ro.build.version.sdk"] == "34"
    assert properties["run.name"] == "suite"

    cases = root.findall("testcase")
    assert [case.attrib["name"] for case in cases] == ["adds", "divides", "flaky"]
    assert all(case.attrib["classname"] == CALCULATOR for case in cases)
    assert cases[0].attrib["time"] == "0.004"
    assert list(cases[0]) == []
    failure = cases[1].find("failure")
    assert failure is not None
    assert failure.text == "boom"
    assert failure.attrib["type"] == "boom"
    assert cases[2].find("skipped") is not None
    assert cases[2].find("failure") is None


def test_special_characters_are_escaped(tmp_path: Path, device, clock) -> None:
    trace = 'java.lang.AssertionError: expected <a & "b"> but was \x1b[31mred\x1b[0m\n\tat Foo.bar(Foo.java:3)'
    listener = RunListener(device, clock=clock)
    listener.run_started("suite <nightly> & co", 1)
    ident = TestIdentifier("com.example.Outer$Inner", 'handles "<quotes>"')
    listener.test_started(ident)
    listener.test_failed(ident, trace)
    listener.test_ended(ident, {})
    listener.test_run_ended(1, {})
    assert listener.result is not None

    [path] = ReportWriter(tmp_path).write_run(listener.result)

    assert path.name == "TEST-com.example.Outer$Inner.xml"
    assert validate_report(path) == []
    root = ET.parse(path).getroot()
    case = root.find("testcase")
    assert case is not None
    assert case.attrib["name"] == 'handles "<quotes>"'
    failure = case.find("failure")
    assert failure is not None
    assert failure.attrib["type"] == "java.lang.AssertionError"
    assert failure.attrib["message"].startswith('expected <a & "b"> but was')
    assert failure.text == trace.replace("\x1b", "\\u001b")
    properties = {prop.attrib["name"]: prop.attrib["value"] for prop in root.iter("property")}
    assert properties["run.name"] == "suite <nightly> & co"


def test_assumption_failure_is_reported_as_skipped(tmp_path: Path, device, clock) -> None:
    listener = RunListener(device, clock=clock)
    listener.run_started("suite", 1)
    ident = TestIdentifier(CALCULATOR, "needsNetwork")
    listener.test_started(ident)
    listener.test_assumption_failure(ident, "org.junit.AssumptionViolatedException: offline")
    listener.test_ended(ident, {})
    listener.test_run_ended(1, {})
    assert listener.result is not None

    [path] = ReportWriter(tmp_path).write_run(listener.result)

    assert validate_report(path) == []
    root = ET.parse(path).getroot()
    assert root.attrib["skipped"] == "1"
    assert root.attrib["failures"] == "0"
    skipped = root.find("testcase/skipped")
    assert skipped is not None
    assert skipped.attrib["message"] == "offline"


def test_synthetic_cases_are_visible(tmp_path: Path, device, clock) -> None:
    listener = RunListener(device, clock=clock)
    listener.run_started("suite", 1)
    listener.test_ended(TestIdentifier(CALCULATOR, "orphan"), {})
    listener.test_run_ended(1, {})
    assert listener.result is not None

    [path] = ReportWriter(tmp_path).write_run(listener.result)

    failure = ET.parse(path).getroot().find("testcase/failure")
    assert failure is not None
    assert failure.text == MISSING_START_TRACE


def test_report_suffix_and_file_names_are_sanitized(tmp_path: Path, clock) -> None:
    device = DeviceInfo(serial="192.168.1.7:5555", manufacturer="ACME Corp")
    writer = ReportWriter(tmp_path, report_suffix="-nightly/arm")

    assert writer.run_dir(device) == tmp_path / "192.168.1.7_5555_ACMECorp-nightly_arm"
    assert writer.report_path(device, "a.b.C") == writer.run_dir(device) / "TEST-a.b.C.xml"


def test_one_failing_class_does_not_block_others(
    tmp_path: Path, device, clock, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_write = junit.atomic_write

    def flaky_write(path: Path, payload: bytes) -> None:
        if CALCULATOR in path.name:
            raise OSError(28, "No space left on device")
        real_write(path, payload)

    monkeypatch.setattr(junit, "atomic_write", flaky_write)
    writer = ReportWriter(tmp_path)
    result = _two_classes(device, clock)

    with pytest.raises(ReportWriteError) as excinfo:
        writer.write_run(result)

    error = excinfo.value
    assert [item.class_name for item in error.errors] == [CALCULATOR]
    assert "No space left on device" in error.errors[0].cause
    assert error.written == [writer.report_path(device, PARSER)]
    assert writer.report_path(device, PARSER).is_file()
    assert not writer.report_path(device, CALCULATOR).exists()


def test_directory_creation_failure_is_reported(tmp_path: Path, device, clock) -> None:
    blocker = tmp_path / "reports"
    blocker.write_text("not a directory", encoding="utf-8")
    writer = ReportWriter(blocker)

    with pytest.raises(ReportWriteError) as excinfo:
        writer.write_run(_two_classes(device, clock))

    assert [item.class_name for item in excinfo.value.errors] == [CALCULATOR, PARSER]
    assert excinfo.value.written == []


def test_atomic_write_leaves_previous_file_on_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "TEST-a.xml"
    target.write_bytes(b"<testsuite/>")

    def broken_replace(src: object, dst: object) -> None:
        raise OSError("rename failed")

    monkeypatch.setattr(junit.os, "replace", broken_replace)
    with pytest.raises(OSError):
        atomic_write(target, b"<testsuite name='new'/>")

    assert target.read_bytes() == b"<testsuite/>"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["TEST-a.xml"]


@pytest.mark.parametrize(
    ("trace", "expected"),
    [
        (
            "java.lang.AssertionError: expected:<1> but was:<2>\r\n\tat Foo.test(Foo.java:10)",
            ("java.lang.AssertionError", "expected:<1> but was:<2>"),
        ),
        ("junit.framework.AssertionFailedError\nat Foo.test", ("junit.framework.AssertionFailedError", "")),
        ("boom", ("boom", "")),
        ("", ("", "")),
    ],
)
def test_parse_trace(trace: str, expected: tuple[str, str]) -> None:
    assert parse_trace(trace) == expected


def test_sanitized_name_collision_is_reported(tmp_path: Path, device, clock) -> None:
    listener = RunListener(device, clock=clock)
    listener.run_started("suite", 2)
    for class_name in ("com.example.A:B", "com.example.A_B"):
        ident = TestIdentifier(class_name, "works")
        listener.test_started(ident)
        listener.test_ended(ident, {})
    listener.test_run_ended(5, {})
    assert listener.result is not None
    writer = ReportWriter(tmp_path)

    with pytest.raises(ReportWriteError) as excinfo:
        writer.write_run(listener.result)

    path = writer.report_path(device, "com.example.A_B")
    assert excinfo.value.written == [path]
    [error] = excinfo.value.errors
    assert error.class_name == "com.example.A_B"
    assert error.path == path
    assert "com.example.A:B" in error.cause
    assert ET.parse(path).getroot().attrib["name"] == "com.example.A:B"
