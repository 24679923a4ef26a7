from __future__ import annotations

import pytest

from gpibmeter import reader, session
from gpibmeter.notify import FailureInfo


class FakeClock:
    """Stands in for the ``time`` module: sleeping advances the clock instantly."""

    def __init__(self) -> None:
        self.now_ms = 0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now_ms / 1000

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now_ms += round(seconds * 1000)

    @property
    def sleeps_ms(self) -> list[int]:
        return [round(seconds * 1000) for seconds in self.sleeps]


class RecordingSink:
    def __init__(self) -> None:
        self.measurements: list[str] = []
        self.failures: list[FailureInfo] = []

    def on_measurement(self, text: str) -> None:
        self.measurements.append(text)

    def on_error(self, failure: FailureInfo) -> None:
        self.failures.append(failure)


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(session, "time", fake)
    monkeypatch.setattr(reader, "time", fake)
    return fake


@pytest.fixture
def sink():
    return RecordingSink()
