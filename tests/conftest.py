"""Shared fixtures for sysmon tests."""

from datetime import datetime, timedelta, timezone

import pytest

from sysmon.mock import MockStatsSource


class FakeClock:
    """Clock returning a controllable timestamp."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> MockStatsSource:
    return MockStatsSource()
