"""ControlUnit wiring (no threads started)."""

from tankmon.app import ControlUnit
from tankmon.config import config_from_args, parse_args


class TestControlUnit:
    def test_components_share_one_state(self):
        unit = ControlUnit(config_from_args(parse_args(["--serial-port", "loop://", "--t1", "2000"])))

        assert unit.loop.state is unit.state
        assert unit.ingress.state is unit.state
        assert unit.desk.state is unit.state
        assert unit.link.state is unit.state
        assert unit.loop.modes is unit.modes
        assert unit.loop.sink is unit.link
        assert unit.loop.policy.cfg.t1_ms == 2000

    def test_loop_and_desk_share_actuation_lock(self):
        unit = ControlUnit()
        assert unit.loop.actuation_lock is unit.desk.actuation_lock

    def test_history_size_from_config(self):
        unit = ControlUnit(config_from_args(parse_args(["--history", "7"])))
        assert unit.state.history_size == 7

    def test_stop_without_start(self):
        unit = ControlUnit()
        unit.stop(timeout_s=0.1)
        assert unit.stop_event.is_set()
