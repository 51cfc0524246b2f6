"""Mode parsing and the AUTOMATIC / MANUAL / UNCONNECTED transitions."""

import pytest

from tankmon.unit.modes import ModeController, ModeRequestError, parse_mode


@pytest.fixture
def modes(state, sink):
    return ModeController(state, sink)


class TestParseMode:
    @pytest.mark.parametrize("raw, expected", [
        ("AUTOMATIC", "AUTOMATIC"),
        ("manual", "MANUAL"),
        ("  Automatic ", "AUTOMATIC"),
        ("unconnected", "UNCONNECTED"),
    ])
    def test_accepts_known_modes(self, raw, expected):
        assert parse_mode(raw) == expected

    @pytest.mark.parametrize("raw", ["AUTO", "", "OFF", 1, None, ["MANUAL"]])
    def test_rejects_everything_else(self, raw):
        with pytest.raises(ModeRequestError):
            parse_mode(raw)

    def test_mode_request_error_is_value_error(self):
        assert issubclass(ModeRequestError, ValueError)


class TestOperatorRequests:
    @pytest.mark.parametrize("current", ["AUTOMATIC", "MANUAL", "UNCONNECTED"])
    def test_unconnected_is_rejected_in_every_mode(self, modes, state, current):
        state.set_mode(current)
        with pytest.raises(ModeRequestError, match="Cannot manually set UNCONNECTED mode"):
            modes.request_mode("UNCONNECTED")
        assert state.get_mode() == current

    def test_switch_to_manual_and_back(self, modes, state, sink):
        assert modes.request_mode("MANUAL") == "MANUAL"
        assert state.get_mode() == "MANUAL"
        assert modes.request_mode("automatic") == "AUTOMATIC"
        assert state.get_mode() == "AUTOMATIC"
        assert sink.modes == ["MANUAL", "AUTOMATIC"]

    def test_operator_may_leave_unconnected(self, modes, state):
        assert state.get_mode() == "UNCONNECTED"
        modes.request_mode("MANUAL")
        assert state.get_mode() == "MANUAL"

    def test_mode_is_kept_when_notify_fails(self, modes, state, sink):
        sink.fail = True
        assert modes.request_mode("MANUAL") == "MANUAL"
        assert state.get_mode() == "MANUAL"

    def test_works_without_sink(self, state):
        assert ModeController(state).request_mode("MANUAL") == "MANUAL"


class TestAutomaticTransitions:
    def test_telemetry_promotes_unconnected(self, modes, state):
        assert modes.on_telemetry() is True
        assert state.get_mode() == "AUTOMATIC"

    @pytest.mark.parametrize("current", ["AUTOMATIC", "MANUAL"])
    def test_telemetry_leaves_other_modes(self, modes, state, current):
        state.set_mode(current)
        assert modes.on_telemetry() is False
        assert state.get_mode() == current

    @pytest.mark.parametrize("current", ["AUTOMATIC", "MANUAL"])
    def test_enter_unconnected_from_operator_modes(self, modes, state, current):
        state.set_mode(current)
        assert modes.enter_unconnected() is True
        assert state.get_mode() == "UNCONNECTED"

    def test_enter_unconnected_twice_reports_once(self, modes, state):
        state.set_mode("AUTOMATIC")
        assert modes.enter_unconnected() is True
        assert modes.enter_unconnected() is False
