from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from tankmon.config import ControlConfig
from tankmon.unit.state import SharedState


class FakeClock:
    """Manual monotonic clock in ms. Starts above 0 (0 means 'never')."""

    def __init__(self, start_ms: int = 1_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> int:
        self.now_ms += ms
        return self.now_ms


class RecordingSink:
    def __init__(self) -> None:
        self.valve: List[int] = []
        self.modes: List[str] = []
        self.fail = False

    def send_valve_command(self, pct: int) -> bool:
        if self.fail:
            return False
        self.valve.append(pct)
        return True

    def send_mode_command(self, mode: str) -> bool:
        if self.fail:
            return False
        self.modes.append(mode)
        return True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def cfg() -> ControlConfig:
    return ControlConfig(l1_cm=20.0, l2_cm=40.0, t1_ms=10_000, t2_ms=10_000, tick_ms=500, history_size=100)


@pytest.fixture
def state(clock: FakeClock) -> SharedState:
    return SharedState(history_size=100, clock=clock)


@pytest.fixture
def run_ticks(clock: FakeClock):
    def _run(loop, duration_ms: int, tick_ms: int = 500, feed=None) -> List[Tuple[int, Optional[int]]]:
        """loop.step() every tick_ms for duration_ms; feed(now) runs before each tick."""
        out: List[Tuple[int, Optional[int]]] = []
        end = clock.now_ms + duration_ms
        while clock.now_ms < end:
            if feed is not None:
                feed(clock.now_ms)
            out.append((clock.now_ms, loop.step()))
            clock.advance(tick_ms)
        return out

    return _run
