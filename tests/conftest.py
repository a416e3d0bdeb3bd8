"""Shared fixtures."""

import pytest

NOW = 1_700_000_000.0


class Clock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return Clock()
