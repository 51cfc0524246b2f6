# tankmon/unit/operator.py
from __future__ import annotations

import threading
from typing import Any, Callable, Dict

from ..config import ControlConfig
from ..helpers import log, monotonic_ms, utc_iso
from .control_loop import ActuatorSink
from .modes import ModeController, ModeRequestError
from .state import VALVE_MAX_PCT, VALVE_MIN_PCT, SharedState
from .watchdog import sensor_alive


class OperatorError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class OperatorDesk:
    """
    Operator use cases behind the HTTP panel: read status/history,
    switch AUTOMATIC/MANUAL, drive the valve by hand in MANUAL.
    """

    def __init__(
        self,
        state: SharedState,
        modes: ModeController,
        sink: ActuatorSink,
        cfg: ControlConfig | None = None,
        actuation_lock: threading.Lock | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self.cfg = cfg or ControlConfig()
        self.state = state
        self.modes = modes
        self.sink = sink
        self._clock = clock or monotonic_ms
        # same lock as the ControlLoop: command + record never interleave with it
        self.actuation_lock = actuation_lock or threading.Lock()

    def status(self) -> Dict[str, Any]:
        s = self.state.snapshot()
        return {
            "mode": s.mode,
            "level_cm": s.level_cm,
            "valve_pct": s.valve_pct,
            "sensor_connected": sensor_alive(s.last_telemetry_at, self._clock(), self.cfg.t2_ms),
            "last_telemetry_ms": s.last_telemetry_at,
            "history_len": s.history_len,
            "ts": utc_iso(),
        }

    def history(self) -> Dict[str, Any]:
        readings = self.state.get_history()
        return {
            "readings": [{"level_cm": r.level_cm, "ts_ms": r.ts_ms} for r in readings],
            "count": len(readings),
        }

    def request_mode(self, raw: Any) -> str:
        try:
            return self.modes.request_mode(raw)
        except ModeRequestError as e:
            raise OperatorError(str(e), 400) from e

    def set_valve(self, raw: Any) -> int:
        # bool is an int subclass; reject it and any non-integral number
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise OperatorError("Opening must be an integer", 400)
        if isinstance(raw, float) and not raw.is_integer():
            raise OperatorError("Opening must be an integer", 400)
        opening = int(raw)

        if opening < VALVE_MIN_PCT or opening > VALVE_MAX_PCT:
            raise OperatorError("Opening must be 0-100", 400)

        with self.actuation_lock:
            if self.state.get_mode() != "MANUAL":
                raise OperatorError("Can only set valve in MANUAL mode", 409)

            log(f"[OPERATOR] manual valve {opening}%")
            if not self.sink.send_valve_command(opening):
                raise OperatorError("Valve controller unavailable", 503)
            self.state.set_valve_opening(opening)

        return opening
