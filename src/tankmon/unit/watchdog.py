# tankmon/unit/watchdog.py
from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from ..helpers import monotonic_ms

if TYPE_CHECKING:
    from .state import SharedState


def sensor_alive(last_telemetry_at: int, now_ms: int, timeout_ms: int) -> bool:
    # 0 = never received; a level of 0 cm is a valid reading
    if last_telemetry_at == 0:
        return False
    return (now_ms - last_telemetry_at) < timeout_ms


class ConnectivityWatchdog:
    """Sensor feed liveness, evaluated fresh on every call (no cached verdict)."""

    def __init__(
        self,
        state: SharedState,
        timeout_ms: int,
        clock: Callable[[], int] | None = None,
    ):
        self.state = state
        self.timeout_ms = int(timeout_ms)
        self._clock = clock or monotonic_ms

    def is_connected(self, timeout_ms: int | None = None) -> bool:
        timeout = self.timeout_ms if timeout_ms is None else int(timeout_ms)
        return sensor_alive(self.state.get_last_telemetry_at(), self._clock(), timeout)
