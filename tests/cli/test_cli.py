from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import yaml


def _run_cli(args: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    root = Path(__file__).resolve().parents[2]
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(
        part for part in [str(root / "src"), env.get("PYTHONPATH", "")] if part
    )
    return subprocess.run(
        [sys.executable, "-m", "instrumentlog", *args],
        cwd=cwd,
        text=True,
        capture_output=True,
        env=env,
    )


def _events(fail: bool) -> str:
    events: list[dict[str, object]] = [
        {"type": "run_started", "name": "instrumentation", "expected_count": 2},
        {"type": "test_started", "class_name": "com.example.FooTest", "method_name": "a"},
        {"type": "test_ended", "class_name": "com.example.FooTest", "method_name": "a"},
        {"type": "test_started", "class_name": "com.example.FooTest", "method_name": "b"},
    ]
    if fail:
        events.append(
            {
                "type": "test_failed",
                "class_name": "com.example.FooTest",
                "method_name": "b",
                "trace": "java.lang.AssertionError: boom",
            }
        )
    events.append({"type": "test_ended", "class_name": "com.example.FooTest", "method_name": "b"})
    events.append({"type": "test_run_ended", "elapsed_ms": 42})
    return "\n".join(json.dumps(event) for event in events) + "\n"


def test_run_config_then_validate(tmp_path: Path) -> None:
    logs = tmp_path / "logs"
    logs.mkdir()
    (logs / "a.jsonl").write_text(_events(fail=False), encoding="utf-8")
    (logs / "b.jsonl").write_text(_events(fail=False), encoding="utf-8")
    (tmp_path / "instrumentlog.yaml").write_text(
        yaml.safe_dump(
            {
                "output_dir": "reports",
                "devices": [
                    {"serial": "emulator-5554", "avd_name": "Pixel", "events": "logs/a.jsonl"},
                    {"serial": "emulator-5556", "avd_name": "Tablet", "events": "logs/b.jsonl"},
                ],
            }
        ),
        encoding="utf-8",
    )

    result = _run_cli(["run", str(tmp_path)], cwd=tmp_path)

    assert result.returncode == 0, result.stdout + result.stderr
    assert (tmp_path / "reports" / "emulator-5554_Pixel" / "TEST-com.example.FooTest.xml").is_file()
    assert (tmp_path / "reports" / "emulator-5556_Tablet" / "TEST-com.example.FooTest.xml").is_file()
    assert (tmp_path / "reports" / "emulator-5556_Tablet" / "summary.json").is_file()

    validated = _run_cli(["validate", str(tmp_path / "reports")], cwd=tmp_path)
    assert validated.returncode == 0, validated.stdout + validated.stderr
    assert "2/2 reports valid" in validated.stdout


def test_replay_exit_code_reflects_failures(tmp_path: Path) -> None:
    events = tmp_path / "events.jsonl"
    events.write_text(_events(fail=True), encoding="utf-8")

    result = _run_cli(
        ["replay", str(events), "--serial", "R58M12", "--output-dir", str(tmp_path / "out")],
        cwd=tmp_path,
    )

    assert result.returncode == 1
    report = tmp_path / "out" / "R58M12" / "TEST-com.example.FooTest.xml"
    assert report.is_file()
    summary = json.loads((tmp_path / "out" / "R58M12" / "summary.json").read_text(encoding="utf-8"))
    assert summary["exit_status"] == "failed"
    assert summary["aggregates"]["failures"] == 1


def test_invalid_config_exits_with_error(tmp_path: Path) -> None:
    (tmp_path / "instrumentlog.yaml").write_text("devices: []\n", encoding="utf-8")

    result = _run_cli(["run", str(tmp_path)], cwd=tmp_path)

    assert result.returncode == 1
    assert "Failed to load config" in result.stdout


def test_blank_serial_is_a_config_error(tmp_path: Path) -> None:
    (tmp_path / "instrumentlog.yaml").write_text(
        yaml.safe_dump({"devices": [{"serial": "   ", "events": "a.jsonl"}]}),
        encoding="utf-8",
    )

    result = _run_cli(["run", str(tmp_path)], cwd=tmp_path)

    assert result.returncode == 1
    assert "Failed to load config" in result.stdout
    assert "Traceback" not in result.stderr
