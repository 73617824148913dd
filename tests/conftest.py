import random
from dataclasses import replace

import pytest

from homeostat.kernel.state import create_initial_state


NOW_MS = 1_700_000_000_000


@pytest.fixture
def now_ms():
    return NOW_MS


@pytest.fixture
def fresh_state(now_ms):
    return create_initial_state(now_ms)


@pytest.fixture
def awake_autonomous_state(fresh_state):
    return replace(fresh_state, autonomous_mode=True)


@pytest.fixture
def seeded_rng():
    return random.Random(1234)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = NOW_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
