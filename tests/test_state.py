"""SharedState: clamping, bounded history, atomic level updates, mode writes."""

import threading

import pytest

from tankmon.unit.state import LevelReading, SharedState


class TestValveOpening:
    @pytest.mark.parametrize(
        "value, expected",
        [(-50, 0), (-1, 0), (0, 0), (1, 1), (50, 50), (99, 99), (100, 100), (101, 100), (1000, 100)],
    )
    def test_stored_value_is_clamped(self, state, value, expected):
        assert state.set_valve_opening(value) == expected
        assert state.get_valve_opening() == expected

    def test_float_input_is_rounded_then_clamped(self, state):
        assert state.set_valve_opening(49.6) == 50
        assert state.set_valve_opening(150.2) == 100

    @pytest.mark.parametrize("value, expected", [
        (float("nan"), 0),
        (float("inf"), 100),
        (float("-inf"), 0),
    ])
    def test_non_finite_input_never_raises(self, state, value, expected):
        state.set_valve_opening(40)
        assert state.set_valve_opening(value) == expected
        assert state.get_valve_opening() == expected

    def test_snapshot_history_len(self, state):
        state.set_level(1.0)
        state.set_level(2.0)
        assert state.snapshot().history_len == 2


class TestLevel:
    def test_initial_state(self, state):
        assert state.get_mode() == "UNCONNECTED"
        assert state.get_level() == 0.0
        assert state.get_valve_opening() == 0
        assert state.get_last_telemetry_at() == 0
        assert state.get_history() == []

    def test_set_level_updates_level_timestamp_and_history(self, state, clock):
        reading = state.set_level(23.5)

        assert reading == LevelReading(23.5, clock.now_ms)
        assert state.get_level() == 23.5
        assert state.get_last_telemetry_at() == clock.now_ms
        assert state.get_history() == [reading]

    def test_explicit_timestamp_wins_over_clock(self, state):
        state.set_level(10.0, now_ms=42)
        assert state.get_last_telemetry_at() == 42

    def test_negative_and_zero_levels_are_kept(self, state):
        state.set_level(-3.0)
        state.set_level(0.0)
        assert [r.level_cm for r in state.get_history()] == [-3.0, 0.0]
        assert state.get_last_telemetry_at() != 0

    def test_history_is_a_copy(self, state):
        state.set_level(1.0)
        h = state.get_history()
        h.clear()
        assert len(state.get_history()) == 1


class TestHistoryBound:
    def test_keeps_most_recent_in_arrival_order(self, clock):
        s = SharedState(history_size=5, clock=clock)
        for i in range(12):
            s.set_level(float(i))
            clock.advance(100)

        levels = [r.level_cm for r in s.get_history()]
        assert levels == [7.0, 8.0, 9.0, 10.0, 11.0]

    def test_never_exceeds_capacity(self, clock):
        s = SharedState(history_size=3, clock=clock)
        for i in range(10):
            s.set_level(float(i))
            assert len(s.get_history()) <= 3

    def test_default_capacity_is_100(self):
        assert SharedState().history_size == 100

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            SharedState(history_size=0)


class TestMode:
    def test_set_mode_replaces_unconditionally(self, state):
        state.set_mode("MANUAL")
        assert state.get_mode() == "MANUAL"
        state.set_mode("UNCONNECTED")
        assert state.get_mode() == "UNCONNECTED"

    def test_set_mode_rejects_unknown(self, state):
        with pytest.raises(ValueError):
            state.set_mode("AUTO")

    def test_transition_only_from_allowed(self, state):
        assert state.transition_mode("AUTOMATIC", allowed_from=("UNCONNECTED",)) is True
        assert state.get_mode() == "AUTOMATIC"
        # already AUTOMATIC: not in allowed_from
        assert state.transition_mode("AUTOMATIC", allowed_from=("UNCONNECTED",)) is False
        state.set_mode("MANUAL")
        assert state.transition_mode("AUTOMATIC", allowed_from=("UNCONNECTED",)) is False
        assert state.get_mode() == "MANUAL"


class TestConnectivity:
    def test_never_received(self, state):
        assert state.is_connected(10_000) is False

    def test_boundary(self, state, clock):
        state.set_level(0.0)
        assert state.is_connected(10_000) is True
        clock.advance(9_999)
        assert state.is_connected(10_000) is True
        clock.advance(1)
        assert state.is_connected(10_000) is False


class TestConcurrency:
    def test_no_torn_snapshots(self):
        """Readers only ever see level/timestamp pairs some writer actually wrote."""
        s = SharedState(history_size=50)
        writers, per_writer, readers = 4, 400, 4
        errors = []
        stop = threading.Event()

        # writer w writes level w*1e6 + i with timestamp (w*1e6 + i) + 1
        def writer(w: int) -> None:
            for i in range(per_writer):
                v = w * 1_000_000 + i
                s.set_level(float(v), now_ms=v + 1)

        def reader() -> None:
            while not stop.is_set():
                snap = s.snapshot()
                if snap.last_telemetry_at == 0:
                    continue
                if snap.last_telemetry_at != int(snap.level_cm) + 1:
                    errors.append(snap)
                for r in s.get_history():
                    if r.ts_ms != int(r.level_cm) + 1:
                        errors.append(r)

        rs = [threading.Thread(target=reader) for _ in range(readers)]
        ws = [threading.Thread(target=writer, args=(w + 1,)) for w in range(writers)]
        for t in rs + ws:
            t.start()
        for t in ws:
            t.join()
        stop.set()
        for t in rs:
            t.join()

        assert errors == []
        assert len(s.get_history()) == 50

    def test_per_writer_history_order_preserved(self):
        s = SharedState(history_size=1000)

        def writer(w: int) -> None:
            for i in range(200):
                s.set_level(float(w * 1000 + i), now_ms=1 + i)

        ts = [threading.Thread(target=writer, args=(w,)) for w in range(3)]
        for t in ts:
            t.start()
        for t in ts:
            t.join()

        history = s.get_history()
        assert len(history) == 600
        for w in range(3):
            mine = [int(r.level_cm) for r in history if w * 1000 <= r.level_cm < (w + 1) * 1000]
            assert mine == sorted(mine)
