from .control_loop import ActuatorSink, ControlLoop
from .modes import OPERATOR_MODES, ModeController, ModeRequestError
from .operator import OperatorDesk, OperatorError
from .policy import PolicyEngine
from .state import MODES, LevelReading, Mode, SharedState, StateSnapshot
from .watchdog import ConnectivityWatchdog, sensor_alive

__all__ = [
    "ActuatorSink",
    "ConnectivityWatchdog",
    "ControlLoop",
    "LevelReading",
    "MODES",
    "Mode",
    "ModeController",
    "ModeRequestError",
    "OPERATOR_MODES",
    "OperatorDesk",
    "OperatorError",
    "PolicyEngine",
    "SharedState",
    "StateSnapshot",
    "sensor_alive",
]
