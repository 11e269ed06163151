from __future__ import annotations

from pathlib import Path

import pytest

from instrumentlog.device.models import DeviceInfo
from instrumentlog.listener.models import RunResult


class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms / 1000.0


class FakeSink:
    def __init__(self) -> None:
        self.results: list[RunResult] = []

    def write_run(self, result: RunResult) -> list[Path]:
        self.results.append(result)
        return [Path(f"TEST-{suite.class_name}.xml") for suite in result.suites]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def device() -> DeviceInfo:
    return DeviceInfo(
        serial="emulator-5554",
        avd_name="Pixel_API_34",
        manufacturer="Google",
        model="sdk gphone64",
        properties={"ro.build.version.sdk": "34"},
    )
