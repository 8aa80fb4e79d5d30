from datetime import datetime, timedelta, timezone
from typing import List

import pytest
import requests

from collar_bridge.config import Settings
from collar_bridge.models.vitals import ParsedReading

SAMPLE_FRAME = "Temperature:38.5C 101.3F\nWaveform:1850 BPM:72 \n"


class FakeClock:
    """Monotonic seconds that only move when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_response(status_code: int, url: str = "http://api.test/dogs/dog-1/vitals") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    return response


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        dog_id="dog-1",
        auth_token="secret-token",
        api_base_url="http://api.test",
        serial_port="/dev/ttyUSB0",
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def utc_ticks():
    """Datetime clock advancing one second per call."""
    state = {"now": datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)}

    def _tick() -> datetime:
        state["now"] += timedelta(seconds=1)
        return state["now"]

    return _tick


@pytest.fixture
def reading() -> ParsedReading:
    return ParsedReading(
        temperature_c=38.5,
        temperature_f=101.3,
        waveform=1850,
        heart_rate=72,
        captured_at=datetime(2026, 10, 17, 12, 0, 0, 123000, tzinfo=timezone.utc),
    )
