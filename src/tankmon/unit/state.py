# tankmon/unit/state.py
from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Iterable, List, Literal, Optional

from ..helpers import clamp, log, monotonic_ms
from .rwlock import ReadWriteLock
from .watchdog import sensor_alive


Mode = Literal["AUTOMATIC", "MANUAL", "UNCONNECTED"]
MODES: tuple[Mode, ...] = ("AUTOMATIC", "MANUAL", "UNCONNECTED")

VALVE_MIN_PCT = 0
VALVE_MAX_PCT = 100


@dataclass(frozen=True)
class LevelReading:
    level_cm: float
    ts_ms: int


@dataclass(frozen=True)
class StateSnapshot:
    mode: Mode
    level_cm: float
    valve_pct: int
    last_telemetry_at: int
    history_len: int


class SharedState:
    """
    Central state of the control unit, shared by every thread.
    ONLY data and atomic updates. Control rules live in policy.py / control_loop.py.

    Level, last telemetry time and history always change together under one
    write lock, so readers never see one without the others.
    """

    def __init__(self, history_size: int = 100, clock: Callable[[], int] | None = None):
        if history_size <= 0:
            raise ValueError("history_size must be > 0")
        self._lock = ReadWriteLock()
        self._clock = clock or monotonic_ms

        self._mode: Mode = "UNCONNECTED"
        self._level_cm: float = 0.0
        self._valve_pct: int = 0
        self._last_telemetry_at: int = 0  # 0 = never received
        self._history: Deque[LevelReading] = deque(maxlen=history_size)

    @property
    def history_size(self) -> int:
        return self._history.maxlen or 0

    # ======================================================
    # READ
    # ======================================================
    def get_mode(self) -> Mode:
        with self._lock.read():
            return self._mode

    def get_level(self) -> float:
        with self._lock.read():
            return self._level_cm

    def get_valve_opening(self) -> int:
        with self._lock.read():
            return self._valve_pct

    def get_last_telemetry_at(self) -> int:
        with self._lock.read():
            return self._last_telemetry_at

    def get_history(self) -> List[LevelReading]:
        with self._lock.read():
            return list(self._history)

    def snapshot(self) -> StateSnapshot:
        with self._lock.read():
            return StateSnapshot(
                mode=self._mode,
                level_cm=self._level_cm,
                valve_pct=self._valve_pct,
                last_telemetry_at=self._last_telemetry_at,
                history_len=len(self._history),
            )

    def is_connected(self, timeout_ms: int, now_ms: Optional[int] = None) -> bool:
        with self._lock.read():
            last = self._last_telemetry_at
        now = self._clock() if now_ms is None else now_ms
        return sensor_alive(last, now, timeout_ms)

    # ======================================================
    # WRITE
    # ======================================================
    def set_mode(self, mode: Mode) -> None:
        if mode not in MODES:
            raise ValueError(f"unknown mode: {mode!r}")
        with self._lock.write():
            prev = self._mode
            self._mode = mode
        if prev != mode:
            log(f"[STATE] mode {prev} -> {mode}")

    def transition_mode(self, mode: Mode, allowed_from: Iterable[Mode]) -> bool:
        """Set mode only if the current one is in allowed_from (atomic check-and-set)."""
        if mode not in MODES:
            raise ValueError(f"unknown mode: {mode!r}")
        allowed = tuple(allowed_from)
        with self._lock.write():
            prev = self._mode
            if prev not in allowed or prev == mode:
                return False
            self._mode = mode
        log(f"[STATE] mode {prev} -> {mode}")
        return True

    def set_level(self, level_cm: float, now_ms: Optional[int] = None) -> LevelReading:
        now = self._clock() if now_ms is None else int(now_ms)
        reading = LevelReading(level_cm=float(level_cm), ts_ms=now)
        with self._lock.write():
            self._level_cm = reading.level_cm
            self._last_telemetry_at = reading.ts_ms
            # deque(maxlen) drops the oldest entry
            self._history.append(reading)
        return reading

    def set_valve_opening(self, pct: float) -> int:
        # NaN is not ordered against the bounds; treat it as closed
        if math.isnan(pct):
            pct = VALVE_MIN_PCT
        value = int(round(clamp(pct, VALVE_MIN_PCT, VALVE_MAX_PCT)))
        with self._lock.write():
            self._valve_pct = value
        return value

    def __repr__(self) -> str:
        s = self.snapshot()
        return (
            f"SharedState(mode={s.mode}, level={s.level_cm:.2f} cm, "
            f"valve={s.valve_pct}%, last_telemetry_at={s.last_telemetry_at})"
        )
