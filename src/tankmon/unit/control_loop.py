# tankmon/unit/control_loop.py
from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol

from ..config import ControlConfig
from ..helpers import log, monotonic_ms
from .modes import ModeController
from .policy import PolicyEngine
from .state import SharedState
from .watchdog import ConnectivityWatchdog


class ActuatorSink(Protocol):
    """Egress side. Both calls return False when the command was not delivered."""

    def send_valve_command(self, pct: int) -> bool: ...

    def send_mode_command(self, mode: str) -> bool: ...


class ControlLoop:
    """
    Periodic driver: every tick_ms
      1) watchdog -> UNCONNECTED on sensor silence (valve left where it is)
      2) only AUTOMATIC is driven by the policy
      3) command the valve when the target differs from the recorded opening
    Recorded opening is written only after the sink accepted the command,
    so a failed send is retried by the next tick.
    """

    def __init__(
        self,
        state: SharedState,
        sink: ActuatorSink,
        cfg: ControlConfig | None = None,
        modes: ModeController | None = None,
        policy: PolicyEngine | None = None,
        clock: Callable[[], int] | None = None,
        actuation_lock: threading.Lock | None = None,
    ):
        self.cfg = cfg or ControlConfig()
        self.state = state
        self.sink = sink
        self._clock = clock or monotonic_ms
        # shared with OperatorDesk: mode check + send + record happen as one step
        self.actuation_lock = actuation_lock or threading.Lock()
        self.modes = modes or ModeController(state, sink)
        self.policy = policy or PolicyEngine(self.cfg)
        self.watchdog = ConnectivityWatchdog(state, self.cfg.t2_ms, clock=self._clock)

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ======================================================
    # LIFECYCLE: stopped -> running -> stopped (terminal)
    # ======================================================
    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None or self._stop.is_set():
            raise RuntimeError("control loop can only be started once")
        self._thread = threading.Thread(target=self.run, name="control-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float | None = 2.0) -> None:
        self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout_s)

    def run(self, stop_event: threading.Event | None = None) -> None:
        cfg = self.cfg
        log(f"[LOOP] started: L1={cfg.l1_cm} cm L2={cfg.l2_cm} cm T1={cfg.t1_ms} ms T2={cfg.t2_ms} ms tick={cfg.tick_ms} ms")
        period_s = cfg.tick_ms / 1000.0

        while not self._stopped(stop_event):
            try:
                self.step()
            except Exception as e:
                log(f"[LOOP] tick failed: {e!r}")
            self._stop.wait(period_s)

        log("[LOOP] stopped")

    def _stopped(self, stop_event: threading.Event | None) -> bool:
        if stop_event is not None and stop_event.is_set():
            self._stop.set()
        return self._stop.is_set()

    # ======================================================
    # ONE TICK
    # ======================================================
    def step(self) -> Optional[int]:
        """Run one decision step. Returns the commanded opening, or None if nothing was sent."""
        if not self.watchdog.is_connected():
            if self.modes.enter_unconnected():
                log(f"[LOOP] no telemetry for {self.cfg.t2_ms} ms -> UNCONNECTED")
            self.policy.reset()
            return None

        if self.state.get_mode() != "AUTOMATIC":
            # MANUAL/UNCONNECTED exit restarts the band timer from scratch
            self.policy.reset()
            return None

        level = self.state.get_level()
        current = self.state.get_valve_opening()
        target = self.policy.decide(level, self._clock(), current)

        if target == current:
            return None

        with self.actuation_lock:
            # operator may have switched to MANUAL while we were deciding
            mode = self.state.get_mode()
            if mode != "AUTOMATIC":
                log(f"[LOOP] mode changed to {mode}, valve {target}% not sent")
                self.policy.reset()
                return None

            log(f"[LOOP] valve {current}% -> {target}% (level {level:.2f} cm)")
            if not self.sink.send_valve_command(target):
                log(f"[LOOP] valve command {target}% not delivered, retry next tick")
                return None

            self.state.set_valve_opening(target)
        return target
