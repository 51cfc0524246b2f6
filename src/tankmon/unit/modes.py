# tankmon/unit/modes.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..helpers import log
from .state import MODES, Mode, SharedState

if TYPE_CHECKING:
    from .control_loop import ActuatorSink


# operator may only pick these; UNCONNECTED belongs to the watchdog
OPERATOR_MODES: tuple[Mode, ...] = ("AUTOMATIC", "MANUAL")


class ModeRequestError(ValueError):
    pass


def parse_mode(raw: Any) -> Mode:
    if not isinstance(raw, str):
        raise ModeRequestError("Invalid mode: expected a string")
    m = raw.strip().upper()
    if m not in MODES:
        raise ModeRequestError(f"Invalid mode: {raw!r}")
    return m  # type: ignore[return-value]


class ModeController:
    """
    AUTOMATIC / MANUAL / UNCONNECTED.
    - operator:  request_mode(AUTOMATIC|MANUAL), never UNCONNECTED
    - watchdog:  enter_unconnected()
    - telemetry: on_telemetry() promotes UNCONNECTED -> AUTOMATIC
    """

    def __init__(self, state: SharedState, sink: ActuatorSink | None = None):
        self.state = state
        self.sink = sink

    def request_mode(self, raw: Any) -> Mode:
        mode = parse_mode(raw)
        if mode not in OPERATOR_MODES:
            raise ModeRequestError("Cannot manually set UNCONNECTED mode")

        log(f"[MODE] operator request: {mode}")
        self.state.set_mode(mode)

        if self.sink is not None and not self.sink.send_mode_command(mode):
            log(f"[MODE] valve controller not notified of {mode}")
        return mode

    def on_telemetry(self) -> bool:
        promoted = self.state.transition_mode("AUTOMATIC", allowed_from=("UNCONNECTED",))
        if promoted:
            log("[MODE] telemetry resumed -> AUTOMATIC")
        return promoted

    def enter_unconnected(self) -> bool:
        return self.state.transition_mode("UNCONNECTED", allowed_from=OPERATOR_MODES)
